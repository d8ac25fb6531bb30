"""
KnowledgeGraphService — the engine's entry points.

Every query loads the project's nodes from the store, builds a fresh
:class:`~kgengine.graph.index.GraphIndex` and delegates to the relevant
engine.  Queries are read-only and take no lock, so a query running next to
an evolution pass may see a mix of pre- and post-evolution state.

Write paths (evolution, direct edge additions, ingestion) hold a
per-project lock and invalidate the similarity and metrics caches of the
project before returning, including when they fail part way.  A query
whose snapshot was loaded before such an invalidation returns its result
without caching it.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from . import health as health_mod
from .config import Config
from .errors import InvalidParameter
from .graph.clusters import Cluster, ClusterEngine
from .graph.evolution import EvolutionEngine, EvolutionResult, ProgressCallback
from .graph.index import Connection, GraphIndex
from .graph.metrics import GraphMetrics, MetricsEngine
from .graph.similarity import SimilarityEngine, SimilarityResult
from .graph.suggest import ConnectionSuggester, Suggestion, load_rules
from .ingestion import TaskArtifact, ingest_task_output
from .models import Edge, KnowledgeNode, merge_edge
from .storage.base import KnowledgeStore
from .storage.sqlite_store import SQLiteStore
from .usage import HttpUsageSignal, StaticUsageSignal, UsageSignal

logger = logging.getLogger(__name__)


@dataclass
class ProjectKnowledge:
    nodes: list[KnowledgeNode] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    statistics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
            "statistics": self.statistics,
        }


class KnowledgeGraphService:
    """
    Facade over the graph engines for one store.

    Parameters
    ----------
    store:
        Node store shared by all projects.
    usage:
        Usage-frequency source for evolution.  Defaults to a
        :class:`StaticUsageSignal`, which leaves weights unchanged.
    config:
        Thresholds and rule-table overrides.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        usage: Optional[UsageSignal] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.config = config or Config()
        self._store = store
        self._usage = usage or StaticUsageSignal()
        self._similarity = SimilarityEngine(self.config.KEYWORD_LIMIT)
        self._clusters = ClusterEngine(self._similarity)
        self._metrics = MetricsEngine()
        self._suggester = ConnectionSuggester(
            self._similarity,
            rules=load_rules(self.config.CONNECTION_RULES),
            threshold=self.config.SUGGESTION_THRESHOLD,
        )
        self._evolution = EvolutionEngine(
            store,
            self._usage,
            self._suggester,
            self._metrics,
            auto_connect_confidence=self.config.AUTO_CONNECT_CONFIDENCE,
            strengthen_above=self.config.STRENGTHEN_ABOVE,
            weaken_below=self.config.WEAKEN_BELOW,
        )
        self._metrics_cache: dict[str, GraphMetrics] = {}
        self._cache_lock = threading.Lock()
        # Entries disappear once no write path holds the lock.
        self._project_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = \
            weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "KnowledgeGraphService":
        """Build a service over the configured SQLite store and usage source."""
        config = config or Config.load()
        if config.USAGE_URL:
            usage: UsageSignal = HttpUsageSignal(config.USAGE_URL, config.USAGE_TIMEOUT)
        else:
            usage = StaticUsageSignal()
        return cls(SQLiteStore(config.DB_PATH), usage, config)

    @property
    def store(self) -> KnowledgeStore:
        return self._store

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index(self, project_id) -> GraphIndex:
        project_id = str(project_id)
        # Read the generation before the snapshot so a concurrent write marks it stale.
        generation = self._similarity.generation(project_id)
        return GraphIndex(self._store.get_nodes(project_id), project_id,
                          generation=generation)

    @contextmanager
    def _write_lock(self, project_id: str):
        """Serialize write paths per project and invalidate caches on exit."""
        with self._locks_guard:
            lock = self._project_locks.setdefault(project_id, threading.Lock())
        with lock:
            try:
                yield
            finally:
                self.invalidate(project_id)

    def invalidate(self, project_id) -> None:
        """Drop every cached result for *project_id*."""
        project_id = str(project_id)
        self._similarity.invalidate(project_id)
        with self._cache_lock:
            self._metrics_cache.pop(project_id, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_project_knowledge(self, project_id) -> ProjectKnowledge:
        """All nodes, their stored edges and per-type counts."""
        index = self._index(project_id)
        connections = index.connections()
        return ProjectKnowledge(
            nodes=index.nodes,
            connections=connections,
            statistics={
                "total_nodes": len(index),
                "node_types": dict(Counter(n.node_type for n in index.nodes)),
                "connection_types": dict(Counter(c.type for c in connections)),
            },
        )

    def find_related_nodes(
        self,
        project_id,
        node_id: str,
        max_depth: int = 2,
    ) -> list[KnowledgeNode]:
        return self._index(project_id).find_related(node_id, max_depth)

    def analyze_semantic_similarity(
        self,
        project_id,
        node_id1: str,
        node_id2: str,
    ) -> SimilarityResult:
        return self._similarity.analyze(self._index(project_id), node_id1, node_id2)

    def find_semantic_clusters(
        self,
        project_id,
        min_similarity: Optional[float] = None,
    ) -> list[Cluster]:
        if min_similarity is None:
            min_similarity = self.config.DEFAULT_MIN_SIMILARITY
        return self._clusters.find_clusters(self._index(project_id), min_similarity)

    def suggest_connections(
        self,
        project_id,
        node_id: str,
        max_suggestions: int = 5,
    ) -> list[Suggestion]:
        return self._suggester.suggest(self._index(project_id), node_id, max_suggestions)

    def calculate_graph_metrics(self, project_id) -> GraphMetrics:
        project_id = str(project_id)
        with self._cache_lock:
            cached = self._metrics_cache.get(project_id)
        if cached is not None:
            return cached
        index = self._index(project_id)
        metrics = self._metrics.compute(index)
        with self._cache_lock:
            if index.generation == self._similarity.generation(project_id):
                self._metrics_cache[project_id] = metrics
        return metrics

    def health(self, project_id) -> health_mod.GraphHealth:
        project_id = str(project_id)
        with self._cache_lock:
            metrics_cached = project_id in self._metrics_cache
        return health_mod.check(
            self._index(project_id),
            cached_similarity_pairs=self._similarity.cached_pairs(project_id),
            metrics_cached=metrics_cached,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def evolve_knowledge_graph(
        self,
        project_id,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> EvolutionResult:
        """Run one evolution pass; at most one pass per project at a time."""
        project_id = str(project_id)
        with self._write_lock(project_id):
            return self._evolution.evolve(project_id, progress_callback)

    def add_connection(
        self,
        project_id,
        from_node_id: str,
        to_node_id: str,
        connection_type: str,
        weight: float = 1.0,
    ) -> KnowledgeNode:
        """
        Add (or reinforce) the edge *from_node_id* → *to_node_id*.

        An existing edge to the same target keeps its type and takes the
        larger weight.
        """
        if not 0.0 <= weight <= 1.0:
            raise InvalidParameter(f"weight must be within [0, 1], got {weight}")
        project_id = str(project_id)
        with self._write_lock(project_id):
            index = self._index(project_id)
            source = index.node(from_node_id)
            index.node(to_node_id)
            connections = merge_edge(
                source.connections, Edge(to_node_id, connection_type, weight)
            )
            metadata = {**source.metadata,
                        "lastUpdated": datetime.now(timezone.utc).isoformat()}
            return self._store.update_node(source.id, connections=connections,
                                           metadata=metadata)

    def accept_suggestion(
        self,
        project_id,
        node_id: str,
        suggestion: Suggestion,
    ) -> KnowledgeNode:
        return self.add_connection(
            project_id, node_id, suggestion.target_node_id,
            suggestion.connection_type, suggestion.confidence,
        )

    def ingest_task_output(self, task, output) -> list[KnowledgeNode]:
        """Store the nodes for one ``{task, output}`` pair."""
        if isinstance(task, dict):
            task = TaskArtifact.from_dict(task)
        with self._write_lock(str(task.project_id)):
            return ingest_task_output(self._store, task, output,
                                      keyword_limit=self.config.KEYWORD_LIMIT)
