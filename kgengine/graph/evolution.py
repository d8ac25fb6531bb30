"""
Graph evolution: promote confident suggestions to real edges and re-weight
existing edges from observed usage.

One pass reads a single snapshot of the project and writes every node at
most once.  Passes for the same project must not overlap; the service
serializes them with a per-project lock.

A store or usage-signal failure stops the pass where it is.  Nothing is
rolled back: the returned :class:`EvolutionResult` carries the counts of the
writes that already went through, ``completed=False`` and the error text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import NodeNotFound, StoreUnavailable, UsageSignalUnavailable
from ..models import Edge, KnowledgeNode, clamp_weight, merge_edge
from ..storage.base import KnowledgeStore
from ..usage import UsageSignal
from .index import GraphIndex
from .metrics import MetricsEngine
from .suggest import ConnectionSuggester

logger = logging.getLogger(__name__)

SUGGESTIONS_PER_NODE = 3
DEFAULT_AUTO_CONNECT_CONFIDENCE = 0.8
DEFAULT_STRENGTHEN_ABOVE = 0.7
DEFAULT_WEAKEN_BELOW = 0.3
STRENGTHEN_FACTOR = 1.1
WEAKEN_FACTOR = 0.9
RAPID_GROWTH_EDGES = 5
DENSE_GRAPH = 0.3

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class EvolutionResult:
    new_connections: int = 0
    strengthened_connections: int = 0
    weakened_connections: int = 0
    insights: list[str] = field(default_factory=list)
    completed: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "new_connections": self.new_connections,
            "strengthened_connections": self.strengthened_connections,
            "weakened_connections": self.weakened_connections,
            "insights": list(self.insights),
            "completed": self.completed,
            "error": self.error,
        }


class EvolutionEngine:
    """
    Runs evolution passes against a :class:`KnowledgeStore`.

    Parameters
    ----------
    store:
        Source and sink of the project's nodes.
    usage:
        External usage-frequency collaborator.
    suggester:
        Produces candidate edges per node.
    metrics:
        Used for the post-pass density insight.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        usage: UsageSignal,
        suggester: ConnectionSuggester,
        metrics: MetricsEngine,
        auto_connect_confidence: float = DEFAULT_AUTO_CONNECT_CONFIDENCE,
        strengthen_above: float = DEFAULT_STRENGTHEN_ABOVE,
        weaken_below: float = DEFAULT_WEAKEN_BELOW,
    ) -> None:
        self._store = store
        self._usage = usage
        self._suggester = suggester
        self._metrics = metrics
        self._auto_connect_confidence = auto_connect_confidence
        self._strengthen_above = strengthen_above
        self._weaken_below = weaken_below

    def reweight(self, weight: float, frequency: float) -> float:
        """Apply the usage rule to one edge weight."""
        if frequency > self._strengthen_above:
            return clamp_weight(min(1.0, weight * STRENGTHEN_FACTOR))
        if frequency < self._weaken_below:
            return clamp_weight(max(0.1, weight * WEAKEN_FACTOR))
        return clamp_weight(weight)

    def evolve(
        self,
        project_id: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> EvolutionResult:
        """
        Run one evolution pass over *project_id*.

        Raises
        ------
        StoreUnavailable
            Only if the initial snapshot cannot be loaded; later failures
            are reported through the result.
        """
        project_id = str(project_id)
        index = GraphIndex(self._store.get_nodes(project_id), project_id)
        result = EvolutionResult()
        added_pairs: set[frozenset] = set()
        total = len(index)

        for position, node in enumerate(index.nodes, start=1):
            try:
                new_edges = self._promote(index, node, added_pairs)
                evolved, strengthened, weakened = self._reweight_edges(project_id, node)
                for edge in new_edges:
                    evolved = merge_edge(evolved, edge)
                metadata = dict(node.metadata)
                metadata["lastEvolved"] = datetime.now(timezone.utc).isoformat()
                self._store.update_node(node.id, connections=evolved, metadata=metadata)
            except NodeNotFound:
                logger.warning("Node %s disappeared during evolution; skipping",
                               node.node_id)
                continue
            except (StoreUnavailable, UsageSignalUnavailable) as exc:
                logger.error("Evolution of project %s stopped at node %s: %s",
                             project_id, node.node_id, exc)
                result.completed = False
                result.error = str(exc)
                break

            result.new_connections += len(new_edges)
            result.strengthened_connections += strengthened
            result.weakened_connections += weakened
            for edge in new_edges:
                added_pairs.add(frozenset((node.node_id, edge.target_node_id)))
                result.insights.append(
                    f"Added {edge.type} connection: {node.node_id} -> {edge.target_node_id}"
                )
            if progress_callback:
                progress_callback(position, total, node.node_id)

        if result.new_connections > RAPID_GROWTH_EDGES:
            result.insights.append(
                f"Knowledge graph is expanding rapidly with "
                f"{result.new_connections} new connections"
            )
        if result.completed:
            self._density_insight(project_id, result)

        logger.info(
            "Evolved project %s: +%d new, %d strengthened, %d weakened%s",
            project_id, result.new_connections, result.strengthened_connections,
            result.weakened_connections, "" if result.completed else " (partial)",
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _promote(
        self,
        index: GraphIndex,
        node: KnowledgeNode,
        added_pairs: set[frozenset],
    ) -> list[Edge]:
        edges = []
        for suggestion in self._suggester.suggest(index, node.node_id, SUGGESTIONS_PER_NODE):
            if suggestion.confidence <= self._auto_connect_confidence:
                continue
            # Skip the reverse of an edge added earlier in this pass
            if frozenset((node.node_id, suggestion.target_node_id)) in added_pairs:
                continue
            edges.append(Edge(
                target_node_id=suggestion.target_node_id,
                type=suggestion.connection_type,
                weight=clamp_weight(suggestion.confidence),
            ))
        return edges

    def _reweight_edges(
        self,
        project_id: str,
        node: KnowledgeNode,
    ) -> tuple[tuple[Edge, ...], int, int]:
        evolved = []
        strengthened = weakened = 0
        for edge in node.connections:
            usage = self._usage.frequency(project_id, node.node_id, edge.target_node_id)
            weight = self.reweight(edge.weight, usage.frequency)
            if weight > edge.weight:
                strengthened += 1
            elif weight < edge.weight:
                weakened += 1
            evolved.append(replace(edge, weight=weight))
        return tuple(evolved), strengthened, weakened

    def _density_insight(self, project_id: str, result: EvolutionResult) -> None:
        try:
            index = GraphIndex(self._store.get_nodes(project_id), project_id)
        except StoreUnavailable as exc:
            logger.warning("Skipping density insight for project %s: %s", project_id, exc)
            return
        if self._metrics.compute(index).density > DENSE_GRAPH:
            result.insights.append(
                "Knowledge graph is becoming densely connected, "
                "indicating mature domain understanding"
            )
