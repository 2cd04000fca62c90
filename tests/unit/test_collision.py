"""Unit tests for the collision module."""

import logging

import pytest

from layoutflow.collision import (
    MAX_MOVE_PER_ITERATION,
    MIN_SEPARATION,
    SAFETY_FACTOR,
    CollisionMetrics,
    CollisionResolver,
    calculate_overlap_area,
    detect_collisions,
    separating_vector,
)
from layoutflow.models import OVERLAP_TOLERANCE, Bounds, Node


def overlapping_pair(**kwargs):
    """Two 100x100 boxes overlapping by (10, 10)."""
    a = Node("A", 100, 100, x=0, y=0, **kwargs.get("a", {}))
    b = Node("B", 100, 100, x=90, y=90, **kwargs.get("b", {}))
    return a, b


class TestSeparatingVector:
    """Tests for separating_vector."""

    def test_no_overlap(self):
        """Test disjoint boxes have no vector."""
        assert separating_vector(Bounds(0, 0, 10, 10), Bounds(20, 0, 10, 10)) is None

    def test_smaller_overlap_axis_wins(self):
        """Test the axis of least overlap is chosen."""
        # Overlap 2 in x, 8 in y
        assert separating_vector(Bounds(0, 0, 10, 10), Bounds(8, 2, 10, 10)) == (-2, 0)
        # Overlap 8 in x, 2 in y
        assert separating_vector(Bounds(0, 0, 10, 10), Bounds(2, 8, 10, 10)) == (0, -2)

    def test_tie_goes_to_x(self):
        """Test equal overlaps separate along x."""
        dx, dy = separating_vector(Bounds(0, 0, 10, 10), Bounds(5, 5, 10, 10))
        assert dy == 0
        assert dx == -5

    def test_direction_pushes_away(self):
        """Test the vector points away from the other box."""
        dx, _ = separating_vector(Bounds(8, 0, 10, 10), Bounds(0, 0, 10, 10))
        assert dx > 0


class TestDetection:
    """Tests for detect_collisions and calculate_overlap_area."""

    def test_detects_pairs(self):
        """Test overlapping pairs are listed with their vectors."""
        a, b = overlapping_pair()
        c = Node("C", 10, 10, x=1000, y=1000)
        collisions = detect_collisions([a, b, c], padding=0)
        assert len(collisions) == 1
        assert (collisions[0].first, collisions[0].second) == ("A", "B")
        assert collisions[0].depth == pytest.approx(10)

    def test_padding_creates_collisions(self):
        """Test inflated bounds collide even when boxes do not."""
        a = Node("A", 10, 10, x=0, y=0)
        b = Node("B", 10, 10, x=20, y=0)
        assert detect_collisions([a, b], padding=0) == []
        assert len(detect_collisions([a, b], padding=16)) == 1

    def test_overlap_area(self):
        """Test summed overlap area."""
        a, b = overlapping_pair()
        assert calculate_overlap_area([a, b], padding=0) == pytest.approx(100)


class TestCollisionResolver:
    """Tests for CollisionResolver."""

    def test_equal_weights_split_the_push(self):
        """Test two equal nodes overlapping by (10, 10) each move about half."""
        a, b = overlapping_pair()
        metrics = CollisionResolver(padding=0).resolve([a, b])
        # Tie between axes goes to x; each moves half of 10 times the safety factor
        assert a.x == pytest.approx(-5 * SAFETY_FACTOR)
        assert b.x == pytest.approx(90 + 5 * SAFETY_FACTOR)
        assert a.y == 0
        assert b.y == 90
        assert metrics.converged
        assert metrics.total_collisions == 1
        assert metrics.resolved_collisions == 1
        assert metrics.residual_collisions == 0
        assert metrics.max_displacement == pytest.approx(5 * SAFETY_FACTOR)

    def test_heavier_node_moves_less(self):
        """Test displacement is shared inversely to weight."""
        a, b = overlapping_pair(a={"weight": 3})
        CollisionResolver(padding=0).resolve([a, b])
        moved_a = abs(a.x)
        moved_b = abs(b.x - 90)
        assert moved_a == pytest.approx(moved_b / 3)

    def test_fixed_node_never_moves(self):
        """Test the partner of a fixed node absorbs the whole push."""
        a, b = overlapping_pair(a={"fixed": True})
        metrics = CollisionResolver(padding=0).resolve([a, b])
        assert (a.x, a.y) == (0, 0)
        assert b.x == pytest.approx(90 + 10 * SAFETY_FACTOR)
        assert metrics.converged

    def test_two_fixed_nodes_are_skipped(self):
        """Test pairs of fixed nodes are left overlapping."""
        a, b = overlapping_pair(a={"fixed": True}, b={"fixed": True})
        metrics = CollisionResolver(padding=0).resolve([a, b])
        assert metrics == CollisionMetrics()
        assert (b.x, b.y) == (90, 90)

    def test_step_is_capped(self):
        """Test no node moves more than the cap per iteration."""
        a = Node("A", 100, 100, x=0, y=0)
        b = Node("B", 100, 100, x=0, y=0)
        metrics = CollisionResolver(padding=0, max_iterations=1).resolve([a, b])
        assert abs(a.x) == pytest.approx(MAX_MOVE_PER_ITERATION)
        assert abs(b.x) == pytest.approx(MAX_MOVE_PER_ITERATION)
        assert metrics.max_displacement == pytest.approx(MAX_MOVE_PER_ITERATION)

    def test_coincident_nodes_separate(self):
        """Test identical positions are pushed apart in opposite directions."""
        a = Node("A", 100, 100, x=0, y=0)
        b = Node("B", 100, 100, x=0, y=0)
        metrics = CollisionResolver(padding=16).resolve([a, b])
        assert metrics.converged
        assert not a.inflated_bounds(16).overlaps(b.inflated_bounds(16))
        assert a.x < b.x

    def test_no_collisions_is_a_no_op(self):
        """Test already separated nodes stay put."""
        a = Node("A", 10, 10, x=0, y=0)
        b = Node("B", 10, 10, x=500, y=0)
        metrics = CollisionResolver().resolve([a, b])
        assert metrics.iterations == 0
        assert metrics.converged
        assert (a.x, b.x) == (0, 500)

    def test_budget_exhaustion_is_reported(self, caplog):
        """Test a non-converged run returns best effort with residual overlap."""
        nodes = [Node(f"n{i}", 100, 100, x=0, y=0) for i in range(6)]
        with caplog.at_level(logging.WARNING, logger="layoutflow.collision"):
            metrics = CollisionResolver(padding=16, max_iterations=1).resolve(nodes)
        assert not metrics.converged
        assert metrics.residual_collisions > 0
        assert metrics.iterations == 1
        assert "did not converge" in caplog.text

    def test_cluster_converges(self):
        """Test a dense cluster ends collision-free before the budget runs out."""
        nodes = [Node(f"n{i}", 80, 40, x=i * 5, y=i * 3) for i in range(8)]
        metrics = CollisionResolver(padding=16, max_iterations=500).resolve(nodes)
        assert metrics.converged
        assert metrics.iterations < 500
        assert metrics.residual_collisions == 0
        assert detect_collisions(nodes, padding=16) == []
        assert calculate_overlap_area(nodes, padding=16) == 0

    def test_rounding_overlap_is_not_a_collision(self):
        """Test boxes overlapping by a rounding error are left alone."""
        a = Node("A", 100, 40, x=0, y=0)
        b = Node("B", 100, 40, x=132 - OVERLAP_TOLERANCE / 10, y=0)
        assert detect_collisions([a, b], padding=16) == []
        metrics = CollisionResolver(padding=16).resolve([a, b])
        assert metrics.total_collisions == 0
        assert metrics.converged

    def test_shallow_overlap_gets_minimum_push(self):
        """Test an overlap far below one unit still separates in one iteration."""
        a = Node("A", 100, 40, x=0, y=0)
        b = Node("B", 100, 40, x=132 - 1e-4, y=0)
        metrics = CollisionResolver(padding=16).resolve([a, b])
        assert metrics.converged
        assert metrics.iterations == 1
        assert b.x - a.x == pytest.approx(132 + MIN_SEPARATION)
