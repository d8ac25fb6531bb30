"""
Global graph metrics for a project snapshot.

All metrics treat the graph as undirected and work from the symmetric
adjacency matrix produced by :meth:`GraphIndex.to_matrix`.

Scalability ceiling: average path lengths use Floyd–Warshall, which costs
O(n³) time and O(n²) memory.  The engine is meant for graphs of up to a few
thousand nodes per project.

Betweenness is approximate by contract: for every unordered pair exactly one
BFS shortest path is considered (not all of them), and each interior node
of that path is credited ``1 / paths_found`` (= 1).  Ties between equally
short paths are broken by graph insertion order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from .index import GraphIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Community:
    community_id: str
    node_ids: tuple[str, ...]
    modularity: float

    def to_dict(self) -> dict:
        return {
            "community_id": self.community_id,
            "node_ids": list(self.node_ids),
            "modularity": self.modularity,
        }


@dataclass(frozen=True)
class GraphMetrics:
    density: float = 0.0
    clustering: float = 0.0
    centrality_scores: dict[str, float] = field(default_factory=dict)
    path_lengths: dict[str, float] = field(default_factory=dict)
    communities: tuple[Community, ...] = ()

    def to_dict(self) -> dict:
        return {
            "density": self.density,
            "clustering": self.clustering,
            "centrality_scores": dict(self.centrality_scores),
            "path_lengths": dict(self.path_lengths),
            "communities": [c.to_dict() for c in self.communities],
        }


# ---------------------------------------------------------------------------
# Individual metrics
# ---------------------------------------------------------------------------

def graph_density(node_count: int, edge_count: int) -> float:
    """Ratio of undirected edges to the n(n-1)/2 possible ones; 0 for n < 2."""
    if node_count < 2:
        return 0.0
    return edge_count / (node_count * (node_count - 1) / 2)


def clustering_coefficient(matrix: np.ndarray) -> float:
    """
    Mean local clustering coefficient over all nodes.

    Nodes with fewer than two neighbours contribute 0 to the mean.
    """
    n = matrix.shape[0]
    if n == 0:
        return 0.0
    adj = (matrix > 0).astype(np.float64)
    np.fill_diagonal(adj, 0.0)
    degree = adj.sum(axis=1)
    # diag(A^3) counts each triangle through a node twice
    triangles = np.einsum("ij,jk,ki->i", adj, adj, adj) / 2.0
    possible = degree * (degree - 1) / 2.0
    local = np.divide(triangles, possible, out=np.zeros(n), where=degree >= 2)
    return float(local.sum() / n)


def approximate_betweenness(index: GraphIndex) -> dict[str, float]:
    """Approximate betweenness: one shortest path per unordered pair."""
    order = {nid: i for i, nid in enumerate(index.node_ids)}
    scores = {nid: 0.0 for nid in order}
    for source, i in order.items():
        for target, path in index.shortest_paths_from(source).items():
            if order[target] <= i:
                continue
            for interior in path[1:-1]:
                scores[interior] += 1.0
    return scores


def floyd_warshall(matrix: np.ndarray) -> np.ndarray:
    """All-pairs shortest distances, using edge weights as edge lengths."""
    n = matrix.shape[0]
    dist = np.where(matrix > 0, matrix, np.inf).astype(np.float64)
    np.fill_diagonal(dist, 0.0)
    for k in range(n):
        dist = np.minimum(dist, dist[:, k:k + 1] + dist[k:k + 1, :])
    return dist


def average_path_lengths(index: GraphIndex, matrix: np.ndarray) -> dict[str, float]:
    """Per-node mean distance to every reachable node (0 if none)."""
    dist = floyd_warshall(matrix)
    result: dict[str, float] = {}
    for i, nid in enumerate(index.node_ids):
        row = np.delete(dist[i], i)
        reachable = row[np.isfinite(row)]
        result[nid] = float(reachable.mean()) if reachable.size else 0.0
    return result


def type_communities(index: GraphIndex) -> tuple[Community, ...]:
    """
    Group nodes by ``node_type`` and score each group's modularity.

    This is a coarse grouping, not a modularity-maximizing search.  The score
    is ``L_c / m - (d_c / 2m)^2`` with ``L_c`` the group's internal edges,
    ``d_c`` its summed degree and ``m`` the total edge count.
    """
    groups: dict[str, list[str]] = {}
    for node in index.nodes:
        groups.setdefault(node.node_type, []).append(node.node_id)

    g = index.graph
    m = g.number_of_edges()
    communities = []
    for node_type, members in groups.items():
        if m == 0:
            modularity = 0.0
        else:
            internal = g.subgraph(members).number_of_edges()
            degree_sum = sum(d for _, d in g.degree(members))
            modularity = internal / m - (degree_sum / (2.0 * m)) ** 2
        communities.append(Community(
            community_id=f"community_{node_type}",
            node_ids=tuple(members),
            modularity=modularity,
        ))
    return tuple(communities)


# ---------------------------------------------------------------------------
# MetricsEngine
# ---------------------------------------------------------------------------

class MetricsEngine:
    """Computes :class:`GraphMetrics` for a :class:`GraphIndex`."""

    def compute(self, index: GraphIndex) -> GraphMetrics:
        n = len(index)
        if n < 2:
            # Nothing to relate: zero-valued structures rather than an error
            return GraphMetrics(
                centrality_scores={nid: 0.0 for nid in index.node_ids},
                path_lengths={nid: 0.0 for nid in index.node_ids},
                communities=type_communities(index),
            )

        matrix = index.to_matrix()
        metrics = GraphMetrics(
            density=graph_density(n, index.edge_count),
            clustering=clustering_coefficient(matrix),
            centrality_scores=approximate_betweenness(index),
            path_lengths=average_path_lengths(index, matrix),
            communities=type_communities(index),
        )
        logger.debug("Metrics for project %s: %d nodes, %d edges, density %.3f",
                     index.project_id, n, index.edge_count, metrics.density)
        return metrics
