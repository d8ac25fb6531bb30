"""
Knowledge graph health — a pull-based status report for one project.

Callers ask for the report when they need it (``KnowledgeGraphService.health``
or ``kgengine health``); nothing is broadcast.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from .graph.index import GraphIndex
from .graph.metrics import graph_density

logger = logging.getLogger(__name__)


@dataclass
class GraphHealth:
    """Structural health of one project's graph."""

    project_id: str = ""
    node_count: int = 0
    edge_count: int = 0
    stored_edge_count: int = 0
    dangling_edges: int = 0
    asymmetric_edges: int = 0
    isolated_nodes: int = 0
    density: float = 0.0
    last_evolved: Optional[str] = None
    cached_similarity_pairs: int = 0
    metrics_cached: bool = False

    @property
    def healthy(self) -> bool:
        return self.dangling_edges == 0


def check(
    index: GraphIndex,
    cached_similarity_pairs: int = 0,
    metrics_cached: bool = False,
) -> GraphHealth:
    """
    Build a :class:`GraphHealth` from a project snapshot.

    Parameters
    ----------
    index:
        Snapshot of the project graph.
    cached_similarity_pairs:
        Number of memoized similarity results for the project.
    metrics_cached:
        Whether metrics for the project are currently cached.
    """
    g = index.graph
    evolved = [
        str(n.metadata["lastEvolved"]) for n in index.nodes
        if n.metadata.get("lastEvolved")
    ]
    health = GraphHealth(
        project_id=str(index.project_id or ""),
        node_count=len(index),
        edge_count=index.edge_count,
        stored_edge_count=len(index.connections()),
        dangling_edges=len(index.dangling_edges()),
        asymmetric_edges=len(index.asymmetric_edges()),
        isolated_nodes=sum(1 for _, degree in g.degree() if degree == 0),
        density=graph_density(len(index), index.edge_count),
        last_evolved=max(evolved) if evolved else None,
        cached_similarity_pairs=cached_similarity_pairs,
        metrics_cached=metrics_cached,
    )
    if health.dangling_edges:
        logger.warning("Project %s has %d edge(s) to unknown nodes",
                       health.project_id, health.dangling_edges)
    return health


def format_health(health: GraphHealth) -> str:
    """
    Format a :class:`GraphHealth` into a human-readable report.

    Parameters
    ----------
    health:
        The health status to format.

    Returns
    -------
    str
        Multi-line human-readable report.
    """
    def _status(ok: bool) -> str:
        return "OK" if ok else "NOT OK"

    lines = [
        "",
        f"Knowledge Graph Health Report — project {health.project_id}",
        "=" * 40,
        "",
        "Structure:",
        f"  Status        : {_status(health.healthy)}",
        f"  Nodes         : {health.node_count}",
        f"  Edges         : {health.edge_count} undirected "
        f"({health.stored_edge_count} stored)",
        f"  Density       : {health.density:.3f}",
        f"  Isolated      : {health.isolated_nodes}",
        f"  Dangling      : {health.dangling_edges}",
        f"  One-way edges : {health.asymmetric_edges}",
        f"  Last evolved  : {health.last_evolved or 'never'}",
        "",
        "Caches:",
        f"  Similarity    : {health.cached_similarity_pairs} pair(s)",
        f"  Metrics       : {'cached' if health.metrics_cached else 'cold'}",
        "",
    ]
    return "\n".join(lines)


def to_json(health: GraphHealth) -> str:
    """Serialise a :class:`GraphHealth` to JSON."""
    data = asdict(health)
    data["healthy"] = health.healthy
    return json.dumps(data, indent=2)
