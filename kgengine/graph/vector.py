"""
Hash-bucket term vectors and cosine similarity.

A deliberately coarse fingerprint: each term adds its count to bucket
``term_hash(term) % VECTOR_SIZE``.  Collisions are accepted.

``term_hash`` is the 32-bit rolling hash ``h = h * 31 + ord(ch)`` evaluated
over the term's code points with two's-complement int32 wrap-around after
every step, followed by ``abs()``.  It is stable across runs and platforms
(unlike the builtin ``hash`` for strings).
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

import numpy as np

VECTOR_SIZE = 100

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def term_hash(term: str) -> int:
    """Return the non-negative 32-bit rolling hash of *term*."""
    h = 0
    for ch in term:
        h = (h * 31 + ord(ch)) & _INT32_MASK
    if h & _INT32_SIGN:
        h -= 1 << 32
    return abs(h)


def vectorize(terms: Iterable[str], size: int = VECTOR_SIZE) -> np.ndarray:
    """Turn a bag of terms into a fixed-length count vector."""
    vec = np.zeros(size, dtype=np.float64)
    for term, freq in Counter(t for t in terms if t).items():
        vec[term_hash(term) % size] += freq
    return vec


def cosine_similarity(v1: np.ndarray, v2: np.ndarray) -> float:
    """Cosine similarity in [0, 1]; 0.0 when either vector is all zeros."""
    sq1 = float(np.dot(v1, v1))
    sq2 = float(np.dot(v2, v2))
    if sq1 == 0.0 or sq2 == 0.0:
        return 0.0
    score = float(np.dot(v1, v2)) / float(np.sqrt(sq1 * sq2))
    return max(0.0, min(1.0, score))
