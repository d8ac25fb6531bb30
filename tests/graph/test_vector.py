"""Unit tests for kgengine.graph.vector"""

from __future__ import annotations

import numpy as np
import pytest

from kgengine.graph.vector import VECTOR_SIZE, cosine_similarity, term_hash, vectorize


class TestTermHash:

    def test_empty(self):
        assert term_hash("") == 0

    def test_known_values(self):
        assert term_hash("a") == 97
        assert term_hash("ab") == 97 * 31 + 98
        assert term_hash("hello") == 99162322

    def test_wraps_to_32_bits_and_takes_absolute_value(self):
        # The 32-bit rolling hash of this word is exactly -2**31
        assert term_hash("polygenelubricants") == 2 ** 31

    def test_stable(self):
        assert term_hash("parser") == term_hash("parser")


class TestVectorize:

    def test_counts_per_bucket(self):
        vec = vectorize(["a", "a", "b"])
        assert vec.shape == (VECTOR_SIZE,)
        assert vec[97] == 2.0
        assert vec[98] == 1.0
        assert vec.sum() == 3.0

    def test_empty_bag(self):
        assert not vectorize([]).any()


class TestCosineSimilarity:

    def test_identical(self):
        vec = vectorize(["graph", "node"])
        assert cosine_similarity(vec, vec) == pytest.approx(1.0)

    def test_zero_vector(self):
        assert cosine_similarity(np.zeros(VECTOR_SIZE), vectorize(["x"])) == 0.0

    def test_orthogonal(self):
        assert cosine_similarity(vectorize(["a"]), vectorize(["b"])) == 0.0

    def test_partial_overlap(self):
        # "a" -> 97, "b" -> 98, "ab" -> 5: three distinct buckets
        score = cosine_similarity(vectorize(["a", "b"]), vectorize(["a", "ab"]))
        assert score == pytest.approx(0.5)
