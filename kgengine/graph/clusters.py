"""
Semantic cluster discovery.

Clusters grow from a seed node through 1-hop graph neighbourhoods.  A
neighbour joins when its similarity *to the seed* reaches the threshold, so
membership is a star guarantee around the seed, not a clique: two members
may be less similar to each other than the threshold.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass
from itertools import combinations

from ..errors import InvalidParameter
from .index import GraphIndex
from .similarity import SimilarityEngine

logger = logging.getLogger(__name__)

CENTRAL_CONCEPT_LIMIT = 5


@dataclass(frozen=True)
class Cluster:
    cluster_id: str
    node_ids: tuple[str, ...]
    central_concepts: tuple[str, ...]
    cohesion_score: float

    def to_dict(self) -> dict:
        return {
            "cluster_id": self.cluster_id,
            "node_ids": list(self.node_ids),
            "central_concepts": list(self.central_concepts),
            "cohesion_score": self.cohesion_score,
        }


class ClusterEngine:
    """Expands similarity-connected neighbourhoods into clusters."""

    def __init__(self, similarity: SimilarityEngine) -> None:
        self._similarity = similarity

    def find_clusters(self, index: GraphIndex, min_similarity: float) -> list[Cluster]:
        """
        Return clusters of two or more nodes, highest cohesion first.

        Parameters
        ----------
        index:
            Snapshot of the project graph.
        min_similarity:
            Threshold in [0, 1] a node must reach against the cluster seed.

        Raises
        ------
        InvalidParameter
            If *min_similarity* is outside [0, 1].
        """
        if not 0.0 <= min_similarity <= 1.0:
            raise InvalidParameter(
                f"min_similarity must be within [0, 1], got {min_similarity}"
            )
        visited: set[str] = set()
        clusters: list[Cluster] = []
        for seed in index.node_ids:
            if seed in visited:
                continue
            members = self._expand(index, seed, min_similarity, visited)
            if len(members) > 1:
                clusters.append(self._describe(index, seed, members))

        clusters.sort(key=lambda c: c.cohesion_score, reverse=True)
        logger.debug("Found %d cluster(s) at threshold %.2f", len(clusters), min_similarity)
        return clusters

    def _expand(
        self,
        index: GraphIndex,
        seed: str,
        min_similarity: float,
        visited: set[str],
    ) -> list[str]:
        members = [seed]
        visited.add(seed)
        queue = deque([seed])
        while queue:
            current = queue.popleft()
            for neighbor in index.neighbors(current):
                if neighbor in visited:
                    continue
                result = self._similarity.analyze(index, seed, neighbor)
                if result.similarity >= min_similarity:
                    members.append(neighbor)
                    visited.add(neighbor)
                    queue.append(neighbor)
        return members

    def _describe(self, index: GraphIndex, seed: str, members: list[str]) -> Cluster:
        concept_counts: Counter = Counter()
        for node_id in members:
            concept_counts.update(self._similarity.features(index, node_id).concepts)
        central = tuple(c for c, _ in concept_counts.most_common(CENTRAL_CONCEPT_LIMIT))

        # O(k^2) pair evaluations for a cluster of size k
        scores = [
            self._similarity.analyze(index, a, b).similarity
            for a, b in combinations(members, 2)
        ]
        cohesion = sum(scores) / len(scores) if scores else 0.0
        return Cluster(
            cluster_id=f"cluster_{seed}",
            node_ids=tuple(members),
            central_concepts=central,
            cohesion_score=cohesion,
        )
