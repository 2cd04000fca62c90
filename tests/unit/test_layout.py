"""Unit tests for the layout (leveling and column) module."""

import logging

from conftest import make_edges, make_nodes
from layoutflow.layout import (
    ColumnBalancer,
    LevelAssigner,
    TopologyNode,
    TopologyResult,
    compute_topology,
    symmetric_columns,
)
from layoutflow.models import Edge


class TestTopologyDataclasses:
    """Tests for TopologyNode and TopologyResult."""

    def test_topology_node_defaults(self):
        """Test TopologyNode default values."""
        node = TopologyNode(id="A")
        assert node.level == 0
        assert node.column == 0
        assert node.children == []
        assert node.parents == []

    def test_topology_result_defaults(self):
        """Test TopologyResult default values."""
        result = TopologyResult()
        assert result.nodes == {}
        assert result.levels == []
        assert result.back_edges == set()
        assert result.has_cycles is False
        assert result.used_fallback_root is False


class TestLevelAssigner:
    """Tests for LevelAssigner."""

    def test_chain_levels(self, chain_graph):
        """Test A -> B -> C gets levels 0, 1, 2."""
        nodes, edges = chain_graph
        result = LevelAssigner().assign(nodes, edges)
        assert [result.level_of(n) for n in "ABC"] == [0, 1, 2]
        assert result.roots == ["A"]
        assert result.levels == [["A"], ["B"], ["C"]]

    def test_fork_levels(self, fork_graph):
        """Test both children of a root share level 1."""
        nodes, edges = fork_graph
        result = LevelAssigner().assign(nodes, edges)
        assert result.level_of("A") == 0
        assert result.level_of("B") == 1
        assert result.level_of("C") == 1

    def test_reconvergence_takes_longest_path(self):
        """Test a node reached by a short and a long path sits below the long one."""
        nodes = make_nodes("A", "B", "C", "D")
        edges = make_edges(("A", "B"), ("B", "C"), ("C", "D"), ("A", "D"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.level_of("D") == 3

    def test_children_and_parents(self, diamond_graph):
        """Test adjacency lists derived from edges."""
        nodes, edges = diamond_graph
        result = LevelAssigner().assign(nodes, edges)
        assert result.nodes["Start"].children == ["Left", "Right"]
        assert result.nodes["End"].parents == ["Left", "Right"]

    def test_multiple_roots(self):
        """Test that every node without parents is a level-0 root."""
        nodes = make_nodes("A", "B", "C")
        edges = make_edges(("A", "C"), ("B", "C"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.roots == ["A", "B"]
        assert result.level_of("C") == 1

    def test_cycle_terminates_with_back_edge(self):
        """Test a cycle below a root is broken at its closing edge."""
        nodes = make_nodes("A", "B", "C")
        edges = make_edges(("A", "B"), ("B", "C"), ("C", "B"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.back_edges == {("C", "B")}
        assert result.has_cycles
        assert [result.level_of(n) for n in "ABC"] == [0, 1, 2]

    def test_no_root_falls_back_to_first_node(self, cyclic_graph, caplog):
        """Test a pure cycle uses the first input node as root."""
        nodes, edges = cyclic_graph
        with caplog.at_level(logging.WARNING, logger="layoutflow.layout"):
            result = LevelAssigner().assign(nodes, edges)
        assert result.used_fallback_root
        assert result.roots == ["A"]
        assert [result.level_of(n) for n in "ABC"] == [0, 1, 2]
        assert result.back_edges == {("C", "A")}
        assert "No root node found" in caplog.text
        assert result.warnings

    def test_unreachable_cycle_gets_its_own_root(self):
        """Test a separate cycle component is still leveled."""
        nodes = make_nodes("A", "B", "X", "Y")
        edges = make_edges(("A", "B"), ("X", "Y"), ("Y", "X"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.level_of("X") == 0
        assert result.level_of("Y") == 1
        assert "X" in result.roots
        assert not result.used_fallback_root

    def test_self_loop_is_ignored(self):
        """Test that a self-loop neither blocks root status nor adds a level."""
        nodes = make_nodes("A", "B")
        edges = make_edges(("A", "A"), ("A", "B"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.roots == ["A"]
        assert result.level_of("B") == 1
        assert not result.has_cycles

    def test_unknown_endpoint_is_skipped(self, caplog):
        """Test that malformed edges are skipped, not fatal."""
        nodes = make_nodes("A", "B")
        edges = [Edge("good", "A", "B"), Edge("bad", "A", "Ghost")]
        with caplog.at_level(logging.WARNING, logger="layoutflow.layout"):
            result = LevelAssigner().assign(nodes, edges)
        assert result.skipped_edges == ["bad"]
        assert result.level_of("B") == 1
        assert "Ghost" in caplog.text

    def test_isolated_nodes_are_roots(self):
        """Test nodes without any edge sit on level 0."""
        result = LevelAssigner().assign(make_nodes("A", "B"), [])
        assert result.levels == [["A", "B"]]

    def test_empty_graph(self):
        """Test an empty input."""
        result = LevelAssigner().assign([], [])
        assert result.nodes == {}
        assert result.levels == []

    def test_duplicate_edges(self):
        """Test parallel edges behave like one."""
        nodes = make_nodes("A", "B")
        edges = make_edges(("A", "B"), ("A", "B"))
        result = LevelAssigner().assign(nodes, edges)
        assert result.level_of("B") == 1


class TestSymmetricColumns:
    """Tests for symmetric_columns."""

    def test_small_counts(self):
        """Test the column sets for 0 to 4 nodes."""
        assert symmetric_columns(0) == []
        assert symmetric_columns(1) == [0]
        assert symmetric_columns(2) == [-1, 1]
        assert symmetric_columns(3) == [-1, 0, 1]
        assert symmetric_columns(4) == [-3, -1, 1, 3]

    def test_symmetry_and_distinctness(self):
        """Test every count yields distinct columns that sum to zero."""
        for count in range(1, 12):
            columns = symmetric_columns(count)
            assert len(set(columns)) == count
            assert sorted(columns) == sorted(-c for c in columns)

    def test_gaps_are_equal(self):
        """Test neighbouring columns are the same distance apart."""
        for count in range(2, 12):
            columns = symmetric_columns(count)
            assert len({b - a for a, b in zip(columns, columns[1:])}) == 1


class TestColumnBalancer:
    """Tests for ColumnBalancer."""

    def test_chain_columns_are_zero(self, chain_graph):
        """Test single-node levels sit on column 0."""
        nodes, edges = chain_graph
        result = compute_topology(nodes, edges)
        assert [result.column_of(n) for n in "ABC"] == [0, 0, 0]

    def test_fork_columns(self, fork_graph):
        """Test two children spread to -1 and +1."""
        nodes, edges = fork_graph
        result = compute_topology(nodes, edges)
        assert {result.column_of("B"), result.column_of("C")} == {-1, 1}
        assert result.column_of("A") == 0

    def test_four_children_are_evenly_spaced(self):
        """Test an even-sized level keeps equal gaps around its parent."""
        nodes = make_nodes("A", "B", "C", "D", "E")
        edges = make_edges(("A", "B"), ("A", "C"), ("A", "D"), ("A", "E"))
        result = compute_topology(nodes, edges)
        assert [result.column_of(n) for n in "BCDE"] == [-3, -1, 1, 3]

    def test_children_follow_parent_order(self):
        """Test grandchildren are ordered like their parents."""
        nodes = make_nodes("R", "L", "M", "RL", "RR")
        # Children of the right branch are listed first in input
        edges = make_edges(("R", "RR"), ("R", "L"), ("RR", "RL"), ("L", "M"))
        result = compute_topology(nodes, edges)
        left_parent = result.column_of("L")
        right_parent = result.column_of("RR")
        left_child = result.column_of("M")
        right_child = result.column_of("RL")
        assert (left_parent < right_parent) == (left_child < right_child)

    def test_levels_are_in_column_order(self, diamond_graph):
        """Test topology.levels lists each level left to right."""
        nodes, edges = diamond_graph
        result = compute_topology(nodes, edges)
        middle = result.levels[1]
        assert [result.column_of(n) for n in middle] == sorted(
            result.column_of(n) for n in middle
        )

    def test_assign_returns_same_result(self, chain_graph):
        """Test ColumnBalancer fills in the given result."""
        nodes, edges = chain_graph
        topology = LevelAssigner().assign(nodes, edges)
        assert ColumnBalancer().assign(topology) is topology
