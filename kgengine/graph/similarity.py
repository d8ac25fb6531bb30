"""
Pairwise semantic similarity between knowledge graph nodes.

Combines the hash-vector cosine score with structural signals taken from
the :class:`~kgengine.graph.index.GraphIndex`.  Results are memoized per
project by unordered node pair until the project is invalidated.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from .features import DEFAULT_KEYWORD_LIMIT, Features, extract_features
from .index import GraphIndex
from .vector import cosine_similarity, vectorize

logger = logging.getLogger(__name__)

MUTUAL_NEIGHBOR_STRENGTH = 0.1


@dataclass(frozen=True)
class SimilarityResult:
    similarity: float
    common_concepts: tuple[str, ...]
    semantic_distance: float
    relationship_strength: float

    def to_dict(self) -> dict:
        return {
            "similarity": self.similarity,
            "common_concepts": list(self.common_concepts),
            "semantic_distance": (
                None if math.isinf(self.semantic_distance) else self.semantic_distance
            ),
            "relationship_strength": self.relationship_strength,
        }


class SimilarityEngine:
    """
    Computes and caches :class:`SimilarityResult` values.

    The cache is keyed by ``(project_id, frozenset({a, b}))``.  Callers that
    change a node's connections must call :meth:`invalidate` for the project.
    Each invalidation bumps the project's generation; a result computed from
    an index stamped with an older generation is returned but not cached.
    """

    def __init__(self, keyword_limit: int = DEFAULT_KEYWORD_LIMIT) -> None:
        self._keyword_limit = keyword_limit
        self._cache: dict[str, dict[frozenset, SimilarityResult]] = {}
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def features(self, index: GraphIndex, node_id: str) -> Features:
        return extract_features(index.node(node_id), self._keyword_limit)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, index: GraphIndex, a: str, b: str) -> SimilarityResult:
        """
        Return the similarity verdict for nodes *a* and *b*.

        Raises
        ------
        NodeNotFound
            If either id is not in *index*.
        """
        node_a = index.node(a)
        index.node(b)
        project_id = node_a.project_id
        key = frozenset((a, b))
        with self._lock:
            cached = self._cache.get(project_id, {}).get(key)
        if cached is not None:
            return cached

        features_a = self.features(index, a)
        features_b = self.features(index, b)
        if a == b:
            similarity = 1.0
        else:
            similarity = cosine_similarity(
                vectorize(features_a.terms()), vectorize(features_b.terms())
            )
        shared = set(features_b.concepts)
        result = SimilarityResult(
            similarity=similarity,
            common_concepts=tuple(c for c in features_a.concepts if c in shared),
            semantic_distance=index.hop_distance(a, b),
            relationship_strength=self._relationship_strength(index, a, b),
        )
        with self._lock:
            # A snapshot loaded before the last invalidate must not be cached.
            if index.generation in (None, self._generations.get(project_id, 0)):
                self._cache.setdefault(project_id, {})[key] = result
        return result

    @staticmethod
    def _relationship_strength(index: GraphIndex, a: str, b: str) -> float:
        direct = index.edge_weight(a, b)
        if direct is not None:
            return direct
        return len(index.mutual_neighbors(a, b)) * MUTUAL_NEIGHBOR_STRENGTH

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def generation(self, project_id: str) -> int:
        """Number of times *project_id* has been invalidated."""
        with self._lock:
            return self._generations.get(str(project_id), 0)

    def invalidate(self, project_id: str) -> None:
        project_id = str(project_id)
        with self._lock:
            self._generations[project_id] = self._generations.get(project_id, 0) + 1
            dropped = self._cache.pop(project_id, None)
        if dropped:
            logger.debug("Dropped %d cached similarity pair(s) for project %s",
                         len(dropped), project_id)

    def cached_pairs(self, project_id: str) -> int:
        with self._lock:
            return len(self._cache.get(str(project_id), {}))
