"""Unit tests for the anchors module."""

import pytest

from layoutflow.anchors import (
    AnchorAllocator,
    generate_anchor_points,
    preferred_sides,
    side_fractions,
)
from layoutflow.models import AnchorSide, Bounds, Node


@pytest.fixture
def allocator():
    """Default AnchorAllocator."""
    return AnchorAllocator()


def left_right_pair():
    """Two nodes side by side, target to the right."""
    return Node("A", 100, 60, x=0, y=0), Node("B", 100, 60, x=300, y=0)


class TestGeneration:
    """Tests for anchor point generation."""

    def test_side_fractions(self):
        """Test positions along a side with corner margins."""
        assert side_fractions(3, 0.15) == pytest.approx([0.15, 0.5, 0.85])
        assert side_fractions(1, 0.15) == [0.5]
        assert side_fractions(2, 0.25) == pytest.approx([0.25, 0.75])

    def test_three_per_side(self):
        """Test 12 anchors in top, right, bottom, left order."""
        points = generate_anchor_points(Bounds(0, 0, 100, 60))
        assert len(points) == 12
        sides = [p.side for p in points]
        assert sides == [AnchorSide.TOP] * 3 + [AnchorSide.RIGHT] * 3 + [
            AnchorSide.BOTTOM
        ] * 3 + [AnchorSide.LEFT] * 3

    def test_points_lie_on_the_boundary(self):
        """Test coordinates of each side's points."""
        points = generate_anchor_points(Bounds(0, 0, 100, 60))
        top = [p for p in points if p.side == AnchorSide.TOP]
        right = [p for p in points if p.side == AnchorSide.RIGHT]
        assert [p.x for p in top] == pytest.approx([15, 50, 85])
        assert all(p.y == 0 for p in top)
        assert all(p.x == 100 for p in right)
        assert [p.y for p in right] == pytest.approx([9, 30, 51])

    def test_no_point_in_a_corner(self):
        """Test the margin keeps anchors out of the corners."""
        corners = {(0, 0), (100, 0), (0, 60), (100, 60)}
        points = generate_anchor_points(Bounds(0, 0, 100, 60))
        assert not any((p.x, p.y) in corners for p in points)


class TestPreferredSides:
    """Tests for the direction bias."""

    @pytest.mark.parametrize(
        "dx, dy, expected",
        [
            (300, 10, (AnchorSide.RIGHT, AnchorSide.LEFT)),
            (-300, 10, (AnchorSide.LEFT, AnchorSide.RIGHT)),
            (10, 300, (AnchorSide.BOTTOM, AnchorSide.TOP)),
            (10, -300, (AnchorSide.TOP, AnchorSide.BOTTOM)),
        ],
    )
    def test_dominant_direction(self, dx, dy, expected):
        """Test sides facing along the dominant axis."""
        source = Node("A", 10, 10, x=0, y=0)
        target = Node("B", 10, 10, x=dx, y=dy)
        assert preferred_sides(source, target) == expected


class TestAllocator:
    """Tests for AnchorAllocator."""

    def test_selects_facing_middle_points(self, allocator):
        """Test the closest facing pair is chosen for aligned nodes."""
        source, target = left_right_pair()
        s, t = allocator.register_connection("e1", source, target)
        assert s.side == AnchorSide.RIGHT
        assert t.side == AnchorSide.LEFT
        # Facing points at equal height are the shortest pairs
        assert (s.x, t.x) == (50, 250)
        assert s.y == t.y
        assert s.occupied and t.occupied
        assert s.connection_id == t.connection_id == "e1"

    def test_second_edge_avoids_occupied_points(self, allocator):
        """Test a parallel edge gets different anchors."""
        source, target = left_right_pair()
        first = allocator.register_connection("e1", source, target)
        second = allocator.register_connection("e2", source, target)
        assert second[0] is not first[0]
        assert second[1] is not first[1]
        assert not any(p is q for p in first for q in second)

    def test_reuses_points_when_side_is_full(self, allocator):
        """Test occupied points are penalized, not excluded."""
        source, target = left_right_pair()
        for i in range(4):
            s, t = allocator.register_connection(f"e{i}", source, target)
            assert s.side == AnchorSide.RIGHT
            assert t.side == AnchorSide.LEFT
        assert len(allocator.connections) == 4

    def test_ranked_side_pairs(self, allocator):
        """Test every side combination is ranked, facing sides first."""
        source, target = left_right_pair()
        pairs = allocator.ranked_side_pairs(source, target)
        sides = [(s.side, t.side) for s, t in pairs]
        assert len(set(sides)) == 16
        assert sides[0] == (AnchorSide.RIGHT, AnchorSide.LEFT)
        # Both sides face away from the other node
        assert sides[-1] == (AnchorSide.LEFT, AnchorSide.RIGHT)
        assert not any(p.occupied for pair in pairs for p in pair)

    def test_assign_connection_replaces_old_points(self, allocator):
        """Test claiming a specific pair releases the pair held before."""
        source, target = left_right_pair()
        old = allocator.register_connection("e1", source, target)
        top_source = [p for p in allocator.anchors_for(source) if p.side == AnchorSide.TOP][0]
        top_target = [p for p in allocator.anchors_for(target) if p.side == AnchorSide.TOP][0]

        s, t = allocator.assign_connection("e1", source, target, top_source, top_target)
        assert s is top_source and t is top_target
        assert s.occupied and t.connection_id == "e1"
        assert not old[0].occupied and not old[1].occupied
        assert allocator.connections["e1"].source_anchor is top_source

    def test_unregister_releases_points(self, allocator):
        """Test removing an edge frees its anchors."""
        source, target = left_right_pair()
        s, t = allocator.register_connection("e1", source, target)
        assert allocator.unregister_connection("e1")
        assert not s.occupied and not t.occupied
        assert s.connection_id is None
        assert not allocator.unregister_connection("e1")

    def test_unregister_keeps_shared_point_for_other_holder(self, allocator):
        """Test a point shared by two edges stays taken by the remaining one."""
        source, target = left_right_pair()
        for i in range(4):
            allocator.register_connection(f"e{i}", source, target)
        shared = allocator.connections["e3"].source_anchor
        holders = [c for c in allocator.connections.values() if c.source_anchor is shared]
        assert len(holders) == 2
        allocator.unregister_connection("e3")
        assert shared.occupied
        assert shared.connection_id == holders[0].connection_id

    def test_re_register_replaces_old_points(self, allocator):
        """Test registering an existing id releases its previous pair first."""
        source, target = left_right_pair()
        first = allocator.register_connection("e1", source, target)
        second = allocator.register_connection("e1", source, target)
        assert first == second
        assert len(allocator.connections) == 1
        assert allocator.get_stats().occupied_points == 2

    def test_moved_node_regenerates_anchors(self, allocator):
        """Test anchors follow node bounds and stale connections are released."""
        source, target = left_right_pair()
        old_source, _ = allocator.register_connection("e1", source, target)
        source.x = 40
        anchors = allocator.anchors_for(source)
        assert old_source not in anchors
        assert "e1" not in allocator.connections
        assert all(not p.occupied for p in allocator.anchors_for(target))

    def test_self_loop_anchors(self, allocator):
        """Test a self-loop leaves right and enters top."""
        node = Node("A", 100, 60, x=0, y=0)
        s, t = allocator.register_connection("loop", node, node)
        assert s.side == AnchorSide.RIGHT
        assert t.side == AnchorSide.TOP

    def test_single_anchor_per_side(self):
        """Test N=1 uses the side centers."""
        allocator = AnchorAllocator(points_per_side=1)
        source, target = left_right_pair()
        s, t = allocator.register_connection("e1", source, target)
        assert (s.x, s.y) == (50, 0)
        assert len(allocator.anchors_for(source)) == 4

    def test_stats_and_clear(self, allocator):
        """Test occupancy stats and clearing."""
        source, target = left_right_pair()
        allocator.register_connection("e1", source, target)
        stats = allocator.get_stats()
        assert stats.elements == 2
        assert stats.connections == 1
        assert stats.total_points == 24
        assert stats.occupied_points == 2
        assert stats.occupancy_rate == pytest.approx(2 / 24 * 100)

        allocator.clear_all()
        stats = allocator.get_stats()
        assert stats.elements == 0
        assert stats.occupancy_rate == 0
