"""
NetworkX-based adjacency view of one project's knowledge graph.

A :class:`GraphIndex` is built per query from an immutable snapshot of the
project's nodes.  Stored edges are directed; the index symmetrizes them into
an undirected simple graph (an A→B and a B→A edge collapse into one edge
carrying the larger weight).  Self-loops and edges to nodes outside the
project are left out of the graph.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

import networkx as nx
import numpy as np

from ..errors import InvalidParameter, NodeNotFound
from ..models import KnowledgeNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    """A stored directed edge, flattened with its source node id."""

    source: str
    target: str
    type: str
    weight: float

    def to_dict(self) -> dict:
        return {
            "from": self.source,
            "to": self.target,
            "type": self.type,
            "weight": self.weight,
        }


class GraphIndex:
    """
    Undirected adjacency index over a project snapshot.

    ``to_matrix`` materializes an n×n numpy array, so memory grows with the
    square of the node count.

    Parameters
    ----------
    nodes:
        All nodes of one project.
    project_id:
        Used in error messages only.
    generation:
        Cache generation of the project when the snapshot was loaded.  Results
        computed from a snapshot older than the current generation are not
        cached.  ``None`` always caches.
    """

    def __init__(
        self,
        nodes: Iterable[KnowledgeNode],
        project_id: Optional[str] = None,
        generation: Optional[int] = None,
    ) -> None:
        self.project_id = project_id
        self.generation = generation
        self._nodes: dict[str, KnowledgeNode] = {}
        for node in nodes:
            if node.node_id in self._nodes:
                logger.warning("Duplicate node id %s in project %s; keeping first",
                               node.node_id, project_id)
                continue
            self._nodes[node.node_id] = node

        self._g: nx.Graph = nx.Graph()
        self._g.add_nodes_from(self._nodes)
        self._dangling: list[Connection] = []
        for conn in self.connections():
            if conn.source == conn.target:
                continue
            if conn.target not in self._nodes:
                self._dangling.append(conn)
                continue
            if self._g.has_edge(conn.source, conn.target):
                data = self._g[conn.source][conn.target]
                data["weight"] = max(data["weight"], conn.weight)
            else:
                self._g.add_edge(conn.source, conn.target,
                                 weight=conn.weight, type=conn.type)
        if self._dangling:
            logger.debug("Ignoring %d dangling edge(s) in project %s",
                         len(self._dangling), project_id)

    # ------------------------------------------------------------------
    # Basic accessors
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    @property
    def graph(self) -> nx.Graph:
        return self._g

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def nodes(self) -> list[KnowledgeNode]:
        return list(self._nodes.values())

    @property
    def edge_count(self) -> int:
        """Number of undirected edges after symmetrization."""
        return self._g.number_of_edges()

    def node(self, node_id: str) -> KnowledgeNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id, self.project_id) from None

    def connections(self) -> list[Connection]:
        """Every stored directed edge, in node then list order."""
        return [
            Connection(node.node_id, edge.target_node_id, edge.type, edge.weight)
            for node in self._nodes.values()
            for edge in node.connections
        ]

    def dangling_edges(self) -> list[Connection]:
        return list(self._dangling)

    def asymmetric_edges(self) -> list[Connection]:
        """Stored edges whose target does not hold an edge back."""
        result = []
        for conn in self.connections():
            target = self._nodes.get(conn.target)
            if target is not None and target.edge_to(conn.source) is None:
                result.append(conn)
        return result

    # ------------------------------------------------------------------
    # Neighbourhood queries
    # ------------------------------------------------------------------

    def neighbors(self, node_id: str) -> list[str]:
        self.node(node_id)
        return list(self._g.neighbors(node_id))

    def mutual_neighbors(self, a: str, b: str) -> set[str]:
        return set(self.neighbors(a)) & set(self.neighbors(b))

    def edge_weight(self, a: str, b: str) -> Optional[float]:
        """Weight of the direct edge between *a* and *b*, either direction."""
        if self._g.has_edge(a, b):
            return float(self._g[a][b]["weight"])
        return None

    def find_related(self, node_id: str, max_depth: int = 2) -> list[KnowledgeNode]:
        """
        Return every node within *max_depth* hops, start node included.

        Nodes come out in BFS order, so the result for a given depth is
        always a prefix-closed superset of the result for a smaller depth.
        """
        if max_depth < 0:
            raise InvalidParameter(f"max_depth must be >= 0, got {max_depth}")
        self.node(node_id)
        reached = nx.single_source_shortest_path_length(
            self._g, node_id, cutoff=max_depth
        )
        return [self._nodes[nid] for nid in reached]

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def hop_distance(self, a: str, b: str) -> float:
        """Unweighted hop count between *a* and *b*; ``math.inf`` if disconnected."""
        self.node(a)
        self.node(b)
        try:
            return float(nx.shortest_path_length(self._g, a, b))
        except nx.NetworkXNoPath:
            return math.inf

    def shortest_path(self, a: str, b: str) -> list[str]:
        """One BFS shortest path from *a* to *b*, or ``[]`` if none exists."""
        self.node(a)
        self.node(b)
        try:
            return nx.shortest_path(self._g, a, b)
        except nx.NetworkXNoPath:
            return []

    def shortest_paths_from(self, node_id: str) -> dict[str, list[str]]:
        """One BFS shortest path from *node_id* to every reachable node."""
        self.node(node_id)
        return nx.single_source_shortest_path(self._g, node_id)

    # ------------------------------------------------------------------
    # Matrix view
    # ------------------------------------------------------------------

    def to_matrix(self) -> np.ndarray:
        """Symmetric weighted adjacency matrix in :attr:`node_ids` order."""
        if not self._nodes:
            return np.zeros((0, 0))
        return nx.to_numpy_array(self._g, nodelist=self.node_ids, weight="weight")
