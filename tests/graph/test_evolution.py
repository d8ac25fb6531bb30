"""
Unit tests for kgengine.graph.evolution

Graph layout::

    C1 --generated_by 0.5--> T1 <--documents 0.5-- D1        T2

T1 and T2 are tasks with identical features, so a pass promotes one edge
between them.  Usage marks C1 -> T1 as hot and D1 -> T1 as cold.
"""

from __future__ import annotations

import pytest

from kgengine.errors import NodeNotFound, StoreUnavailable, UsageSignalUnavailable
from kgengine.graph.evolution import EvolutionEngine
from kgengine.graph.metrics import MetricsEngine
from kgengine.graph.similarity import SimilarityEngine
from kgengine.graph.suggest import ConnectionSuggester
from kgengine.models import Edge, KnowledgeNode
from kgengine.service import KnowledgeGraphService
from kgengine.storage import InMemoryStore
from kgengine.usage import StaticUsageSignal, UsageSignal

_TASK_DATA = {
    "priority": "high",
    "status": "done",
    "description": "Implement parser for config files",
}


def _seed(store: InMemoryStore) -> None:
    store.create_node(KnowledgeNode("1", "T1", "task", node_data=dict(_TASK_DATA)))
    store.create_node(KnowledgeNode("1", "T2", "task", node_data=dict(_TASK_DATA)))
    store.create_node(KnowledgeNode(
        "1", "C1", "code",
        node_data={"functions": ["tokenize"], "imports": ["re"], "language": "python"},
        connections=(Edge("T1", "generated_by", 0.5),),
    ))
    store.create_node(KnowledgeNode(
        "1", "D1", "documentation",
        node_data={"sections": ["Architecture"], "keywords": ["lexer"]},
        connections=(Edge("T1", "documents", 0.5),),
    ))


def _usage() -> StaticUsageSignal:
    usage = StaticUsageSignal()
    usage.record("1", "C1", "T1", 0.9)
    usage.record("1", "D1", "T1", 0.1)
    return usage


def _nodes(store) -> dict[str, KnowledgeNode]:
    return {n.node_id: n for n in store.get_nodes("1")}


class _FailingStore(InMemoryStore):
    """Raises *error* on the *fail_on*-th call to update_node."""

    def __init__(self, fail_on: int, error: Exception) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.error = error
        self.calls = 0

    def update_node(self, id, connections=None, metadata=None):
        self.calls += 1
        if self.calls == self.fail_on:
            raise self.error
        return super().update_node(id, connections=connections, metadata=metadata)


class _BrokenUsage(UsageSignal):

    def frequency(self, project_id, from_node_id, to_node_id):
        raise UsageSignalUnavailable("usage service down")


# ---------------------------------------------------------------------------
# Reweighting rule
# ---------------------------------------------------------------------------

class TestReweight:

    def setup_method(self):
        suggester = ConnectionSuggester(SimilarityEngine())
        self.engine = EvolutionEngine(InMemoryStore(), StaticUsageSignal(),
                                      suggester, MetricsEngine())

    def test_strengthen(self):
        assert self.engine.reweight(0.5, 0.9) == pytest.approx(0.55)

    def test_strengthen_capped(self):
        assert self.engine.reweight(0.95, 0.9) == 1.0

    def test_weaken(self):
        assert self.engine.reweight(0.5, 0.1) == pytest.approx(0.45)

    def test_weaken_floored(self):
        assert self.engine.reweight(0.105, 0.1) == 0.1

    def test_neutral(self):
        assert self.engine.reweight(0.5, 0.5) == 0.5
        assert self.engine.reweight(0.5, 0.7) == 0.5
        assert self.engine.reweight(0.5, 0.3) == 0.5


# ---------------------------------------------------------------------------
# Evolution passes
# ---------------------------------------------------------------------------

class TestEvolvePass:

    def setup_method(self):
        self.store = InMemoryStore()
        _seed(self.store)
        self.service = KnowledgeGraphService(self.store, usage=_usage())

    def test_first_pass_counts(self):
        result = self.service.evolve_knowledge_graph("1")
        assert result.completed is True
        assert result.error is None
        assert result.new_connections == 1
        assert result.strengthened_connections == 1
        assert result.weakened_connections == 1

    def test_promoted_edge_stored_once(self):
        result = self.service.evolve_knowledge_graph("1")
        nodes = _nodes(self.store)
        edge = nodes["T1"].edge_to("T2")
        assert edge is not None
        assert edge.type == "depends_on"
        assert edge.weight == 1.0
        # The reverse suggestion is skipped within the same pass
        assert nodes["T2"].edge_to("T1") is None
        assert "Added depends_on connection: T1 -> T2" in result.insights

    def test_weights_updated(self):
        self.service.evolve_knowledge_graph("1")
        nodes = _nodes(self.store)
        assert nodes["C1"].edge_to("T1").weight == pytest.approx(0.55)
        assert nodes["D1"].edge_to("T1").weight == pytest.approx(0.45)

    def test_edge_types_preserved(self):
        self.service.evolve_knowledge_graph("1")
        nodes = _nodes(self.store)
        assert nodes["C1"].edge_to("T1").type == "generated_by"
        assert nodes["D1"].edge_to("T1").type == "documents"

    def test_last_evolved_stamped(self):
        self.service.evolve_knowledge_graph("1")
        assert all("lastEvolved" in n.metadata for n in self.store.get_nodes("1"))

    def test_density_insight(self):
        result = self.service.evolve_knowledge_graph("1")
        assert any("densely connected" in i for i in result.insights)

    def test_progress_callback(self):
        calls = []
        self.service.evolve_knowledge_graph(
            "1", progress_callback=lambda cur, total, nid: calls.append((cur, total, nid))
        )
        assert calls == [(1, 4, "T1"), (2, 4, "T2"), (3, 4, "C1"), (4, 4, "D1")]

    def test_second_pass_adds_nothing(self):
        self.service.evolve_knowledge_graph("1")
        result = self.service.evolve_knowledge_graph("1")
        assert result.new_connections == 0

    def test_no_duplicate_targets(self):
        for _ in range(3):
            self.service.evolve_knowledge_graph("1")
        for node in self.store.get_nodes("1"):
            targets = [e.target_node_id for e in node.connections]
            assert len(targets) == len(set(targets))

    def test_weights_move_monotonically_and_stay_in_range(self):
        hot, cold = [], []
        for _ in range(20):
            self.service.evolve_knowledge_graph("1")
            nodes = _nodes(self.store)
            hot.append(nodes["C1"].edge_to("T1").weight)
            cold.append(nodes["D1"].edge_to("T1").weight)
        assert hot == sorted(hot)
        assert cold == sorted(cold, reverse=True)
        assert hot[-1] == 1.0
        assert cold[-1] == 0.1

    def test_fixed_point(self):
        for _ in range(20):
            self.service.evolve_knowledge_graph("1")
        before = {nid: n.connections for nid, n in _nodes(self.store).items()}
        result = self.service.evolve_knowledge_graph("1")
        after = {nid: n.connections for nid, n in _nodes(self.store).items()}
        assert result.new_connections == 0
        assert result.strengthened_connections == 0
        assert result.weakened_connections == 0
        assert before == after

    def test_empty_project(self):
        result = self.service.evolve_knowledge_graph("99")
        assert result.completed is True
        assert result.new_connections == 0
        assert result.insights == []


class TestPartialFailure:

    def test_store_failure_reports_partial_progress(self):
        store = _FailingStore(fail_on=2, error=StoreUnavailable("disk full"))
        _seed(store)
        service = KnowledgeGraphService(store, usage=_usage())
        result = service.evolve_knowledge_graph("1")
        assert result.completed is False
        assert "disk full" in result.error
        # T1 was written before the failure at T2
        assert result.new_connections == 1
        assert result.strengthened_connections == 0
        assert _nodes(store)["T1"].edge_to("T2") is not None
        assert not any("densely connected" in i for i in result.insights)

    def test_usage_failure_stops_pass(self):
        store = InMemoryStore()
        _seed(store)
        service = KnowledgeGraphService(store, usage=_BrokenUsage())
        result = service.evolve_knowledge_graph("1")
        assert result.completed is False
        assert "usage service down" in result.error
        assert result.new_connections == 1
        # C1 failed before its write, so its weight is untouched
        assert _nodes(store)["C1"].edge_to("T1").weight == 0.5

    def test_vanished_node_is_skipped(self):
        store = _FailingStore(fail_on=2, error=NodeNotFound("T2", "1"))
        _seed(store)
        service = KnowledgeGraphService(store, usage=_usage())
        result = service.evolve_knowledge_graph("1")
        assert result.completed is True
        assert result.strengthened_connections == 1
        assert result.weakened_connections == 1

    def test_caches_invalidated_after_failure(self):
        store = _FailingStore(fail_on=2, error=StoreUnavailable("disk full"))
        _seed(store)
        service = KnowledgeGraphService(store, usage=_usage())
        service.evolve_knowledge_graph("1")
        assert service.health("1").cached_similarity_pairs == 0
