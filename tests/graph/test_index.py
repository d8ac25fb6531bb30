"""
Unit tests for kgengine.graph.index

Graph layout used throughout::

    C1 --generated_by--> T1 <--documents-- D1        X   (isolated)
                                                     X --> ghost (dangling)
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from kgengine.errors import InvalidParameter, NodeNotFound
from kgengine.graph.index import GraphIndex
from kgengine.models import Edge, KnowledgeNode


def _make_index() -> GraphIndex:
    nodes = [
        KnowledgeNode("1", "T1", "task"),
        KnowledgeNode("1", "C1", "code", connections=(Edge("T1", "generated_by", 1.0),)),
        KnowledgeNode("1", "D1", "documentation", connections=(Edge("T1", "documents", 0.5),)),
        KnowledgeNode("1", "X", "agent", connections=(Edge("ghost", "uses", 0.4),)),
    ]
    return GraphIndex(nodes, "1")


class TestGraphIndexBasic:

    def setup_method(self):
        self.index = _make_index()

    def test_len_and_contains(self):
        assert len(self.index) == 4
        assert "C1" in self.index
        assert "ghost" not in self.index

    def test_edge_count_skips_dangling(self):
        assert self.index.edge_count == 2

    def test_connections_keep_stored_direction(self):
        conns = self.index.connections()
        assert [(c.source, c.target) for c in conns] == [
            ("C1", "T1"), ("D1", "T1"), ("X", "ghost"),
        ]
        assert conns[0].to_dict()["from"] == "C1"

    def test_dangling_edges(self):
        dangling = self.index.dangling_edges()
        assert len(dangling) == 1
        assert dangling[0].target == "ghost"

    def test_asymmetric_edges(self):
        pairs = {(c.source, c.target) for c in self.index.asymmetric_edges()}
        assert pairs == {("C1", "T1"), ("D1", "T1")}

    def test_unknown_node(self):
        with pytest.raises(NodeNotFound):
            self.index.node("nope")

    def test_edges_visible_from_both_ends(self):
        assert set(self.index.neighbors("T1")) == {"C1", "D1"}
        assert self.index.neighbors("C1") == ["T1"]
        assert self.index.edge_weight("T1", "D1") == 0.5
        assert self.index.edge_weight("C1", "D1") is None

    def test_mutual_neighbors(self):
        assert self.index.mutual_neighbors("C1", "D1") == {"T1"}


class TestSymmetrization:

    def test_reverse_edges_collapse_to_max_weight(self):
        index = GraphIndex([
            KnowledgeNode("1", "A", "task", connections=(Edge("B", "uses", 0.4),)),
            KnowledgeNode("1", "B", "task", connections=(Edge("A", "uses", 0.9),)),
        ])
        assert index.edge_count == 1
        assert index.edge_weight("A", "B") == 0.9
        assert index.asymmetric_edges() == []

    def test_self_loop_ignored(self):
        index = GraphIndex([
            KnowledgeNode("1", "A", "task", connections=(Edge("A", "uses", 1.0),)),
        ])
        assert index.edge_count == 0
        assert index.neighbors("A") == []

    def test_duplicate_node_ids_keep_first(self):
        index = GraphIndex([
            KnowledgeNode("1", "A", "task"),
            KnowledgeNode("1", "A", "code"),
        ])
        assert len(index) == 1
        assert index.node("A").node_type == "task"


class TestFindRelated:

    def setup_method(self):
        self.index = _make_index()

    def _ids(self, node_id, depth):
        return [n.node_id for n in self.index.find_related(node_id, depth)]

    def test_depth_zero_is_start_node(self):
        assert self._ids("T1", 0) == ["T1"]

    def test_depth_one(self):
        assert set(self._ids("T1", 1)) == {"T1", "C1", "D1"}

    def test_incoming_edges_are_followed(self):
        # C1 only stores an edge to T1, yet D1 is reachable through T1
        assert set(self._ids("C1", 2)) == {"C1", "T1", "D1"}

    def test_monotonic_in_depth(self):
        previous: set = set()
        for depth in range(4):
            current = set(self._ids("C1", depth))
            assert previous <= current
            previous = current

    def test_isolated_node(self):
        assert self._ids("X", 5) == ["X"]

    def test_negative_depth(self):
        with pytest.raises(InvalidParameter):
            self.index.find_related("T1", -1)

    def test_unknown_start(self):
        with pytest.raises(NodeNotFound):
            self.index.find_related("nope", 1)


class TestPaths:

    def setup_method(self):
        self.index = _make_index()

    def test_hop_distance(self):
        assert self.index.hop_distance("C1", "D1") == 2.0
        assert self.index.hop_distance("C1", "C1") == 0.0

    def test_hop_distance_disconnected(self):
        assert self.index.hop_distance("C1", "X") == math.inf

    def test_shortest_path(self):
        assert self.index.shortest_path("C1", "D1") == ["C1", "T1", "D1"]
        assert self.index.shortest_path("C1", "X") == []

    def test_shortest_paths_from(self):
        paths = self.index.shortest_paths_from("C1")
        assert paths["D1"] == ["C1", "T1", "D1"]
        assert "X" not in paths


class TestMatrix:

    def test_symmetric_weighted(self):
        index = _make_index()
        matrix = index.to_matrix()
        assert matrix.shape == (4, 4)
        assert np.array_equal(matrix, matrix.T)
        t1, d1 = index.node_ids.index("T1"), index.node_ids.index("D1")
        assert matrix[t1, d1] == 0.5

    def test_empty(self):
        assert GraphIndex([]).to_matrix().shape == (0, 0)
