"""
Data model for the knowledge graph: nodes, their outbound edges and the
weight rules that every write path goes through.

Edges are stored directed (each node owns its outbound list) and are only
symmetrized when a :class:`~kgengine.graph.index.GraphIndex` is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_WEIGHT = 0.1
MAX_WEIGHT = 1.0


class NodeType:
    TASK = "task"
    CODE = "code"
    DOCUMENTATION = "documentation"
    AGENT = "agent"


class EdgeType:
    DEPENDS_ON = "depends_on"
    GENERATED_BY = "generated_by"
    DOCUMENTS = "documents"
    GENERATES = "generates"
    DOCUMENTED_BY = "documented_by"
    RELATES_TO = "relates_to"
    USES = "uses"


def clamp_weight(weight: float) -> float:
    """Clamp *weight* to [0.1, 1.0].  Weak edges are demoted, never zeroed."""
    return max(MIN_WEIGHT, min(MAX_WEIGHT, float(weight)))


# ---------------------------------------------------------------------------
# Edge / KnowledgeNode
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Edge:
    """A typed, weighted relationship owned by its source node."""

    target_node_id: str
    type: str
    weight: float = MAX_WEIGHT

    def to_dict(self) -> dict:
        return {
            "target_node_id": self.target_node_id,
            "type": self.type,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Edge":
        """Accepts both ``target_node_id`` and the legacy ``nodeId`` key."""
        target = data.get("target_node_id", data.get("nodeId"))
        if target is None:
            raise ValueError(f"Edge without target: {data!r}")
        weight = data.get("weight")
        return cls(
            target_node_id=str(target),
            type=str(data.get("type", EdgeType.RELATES_TO)),
            weight=clamp_weight(weight if weight is not None else MAX_WEIGHT),
        )


def merge_edge(connections: Iterable[Edge], edge: Edge) -> tuple[Edge, ...]:
    """
    Return *connections* with *edge* merged in.

    An existing edge to the same target keeps its type and takes the max of
    both weights; otherwise *edge* is appended.  The result never holds two
    edges to one target.
    """
    merged: list[Edge] = []
    found = False
    for existing in connections:
        if existing.target_node_id == edge.target_node_id:
            if found:
                continue
            found = True
            merged.append(replace(
                existing, weight=clamp_weight(max(existing.weight, edge.weight))
            ))
        else:
            merged.append(existing)
    if not found:
        merged.append(replace(edge, weight=clamp_weight(edge.weight)))
    return tuple(merged)


def dedupe_edges(connections: Iterable[Edge]) -> tuple[Edge, ...]:
    """Collapse duplicate targets using the :func:`merge_edge` rule."""
    result: tuple[Edge, ...] = ()
    for edge in connections:
        result = merge_edge(result, edge)
    return result


@dataclass(frozen=True)
class KnowledgeNode:
    """
    One artifact in a project's knowledge graph.

    Instances are immutable snapshots; write paths build a new node with
    :meth:`with_connections` and hand it to the store.
    """

    project_id: str
    node_id: str
    node_type: str
    node_data: dict = field(default_factory=dict)
    connections: tuple[Edge, ...] = ()
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "project_id", str(self.project_id))
        object.__setattr__(self, "node_id", str(self.node_id))
        object.__setattr__(self, "connections", dedupe_edges(self.connections))

    def edge_to(self, target_node_id: str) -> Optional[Edge]:
        for edge in self.connections:
            if edge.target_node_id == target_node_id:
                return edge
        return None

    def with_connections(
        self,
        connections: Iterable[Edge],
        metadata: Optional[dict] = None,
    ) -> "KnowledgeNode":
        return replace(
            self,
            connections=tuple(connections),
            metadata=dict(self.metadata if metadata is None else metadata),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "node_data": self.node_data,
            "connections": [e.to_dict() for e in self.connections],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "KnowledgeNode":
        """Build a node from snake_case or camelCase JSON."""
        def _get(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        connections: list[Edge] = []
        for raw in _get("connections", "connections", None) or []:
            try:
                connections.append(Edge.from_dict(raw))
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Dropping malformed edge %r: %s", raw, exc)

        return cls(
            id=data.get("id"),
            project_id=_get("project_id", "projectId", ""),
            node_id=_get("node_id", "nodeId", ""),
            node_type=_get("node_type", "nodeType", ""),
            node_data=dict(_get("node_data", "nodeData", None) or {}),
            connections=tuple(connections),
            metadata=dict(data.get("metadata") or {}),
        )
