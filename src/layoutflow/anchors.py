"""
Anchor point allocation.

Every node gets a fixed set of connection points, N per side, inset from
the corners by a fraction of the side length. For each edge the allocator
picks one point on the source and one on the target, preferring the sides
that face each other and spreading edges across points: an occupied point
costs a large penalty but is still chosen when nothing better exists.
"""

import logging
from dataclasses import dataclass
from itertools import product
from typing import Dict, List, Optional, Tuple

from .models import AnchorPoint, AnchorSide, Bounds, Node

logger = logging.getLogger(__name__)

# =============================================================================
# ANCHOR CONFIGURATION
# =============================================================================

DEFAULT_POINTS_PER_SIDE = 3

# Fraction of each side kept free of anchors at both corners
DEFAULT_MARGIN = 0.15

# Added to a candidate pair's distance for each occupied point in it.
# Far larger than any distance in a diagram so free points always win.
OCCUPIED_PENALTY = 1000.0

# Added per side whose outward normal points away from the other node
AWAY_PENALTY = 50.0

# Anchors are listed in this side order for every node
SIDE_ORDER = (AnchorSide.TOP, AnchorSide.RIGHT, AnchorSide.BOTTOM, AnchorSide.LEFT)

# =============================================================================


@dataclass
class AnchorConnection:
    """The pair of anchors held by one edge."""

    connection_id: str
    source_id: str
    target_id: str
    source_anchor: AnchorPoint
    target_anchor: AnchorPoint


@dataclass
class AnchorStats:
    """Occupancy summary."""

    elements: int
    connections: int
    total_points: int
    occupied_points: int
    occupancy_rate: float  # Percent


def side_fractions(points_per_side: int, margin: float) -> List[float]:
    """Positions along a side, as fractions of its length."""
    if points_per_side == 1:
        return [0.5]
    span = 1.0 - 2 * margin
    step = span / (points_per_side - 1)
    return [margin + i * step for i in range(points_per_side)]


def generate_anchor_points(
    bounds: Bounds,
    points_per_side: int = DEFAULT_POINTS_PER_SIDE,
    margin: float = DEFAULT_MARGIN,
) -> List[AnchorPoint]:
    """
    Boundary points for a box: top (left to right), right (top to bottom),
    bottom (left to right), left (top to bottom).
    """
    fractions = side_fractions(points_per_side, margin)
    points: List[AnchorPoint] = []
    for side in SIDE_ORDER:
        for t in fractions:
            if side == AnchorSide.TOP:
                points.append(AnchorPoint(bounds.x + bounds.width * t, bounds.y, side))
            elif side == AnchorSide.RIGHT:
                points.append(AnchorPoint(bounds.x2, bounds.y + bounds.height * t, side))
            elif side == AnchorSide.BOTTOM:
                points.append(AnchorPoint(bounds.x + bounds.width * t, bounds.y2, side))
            else:
                points.append(AnchorPoint(bounds.x, bounds.y + bounds.height * t, side))
    return points


def preferred_sides(source: Node, target: Node) -> Tuple[AnchorSide, AnchorSide]:
    """
    Sides facing each other along the dominant direction between centers.

    Mostly horizontal separation uses left/right; otherwise top/bottom.
    """
    dx = target.x - source.x
    dy = target.y - source.y
    if abs(dx) > abs(dy):
        source_side = AnchorSide.RIGHT if dx > 0 else AnchorSide.LEFT
    else:
        source_side = AnchorSide.BOTTOM if dy > 0 else AnchorSide.TOP
    return source_side, source_side.opposite


def _faces_away(node: Node, other: Node, side: AnchorSide) -> bool:
    nx, ny = side.normal
    return (other.x - node.x) * nx + (other.y - node.y) * ny < 0


class AnchorAllocator:
    """
    Tracks anchor points per node and which edge holds which point.

    Attributes:
        points_per_side: Anchors generated on each side.
        margin: Corner inset as a fraction of the side length.
    """

    def __init__(
        self,
        points_per_side: int = DEFAULT_POINTS_PER_SIDE,
        margin: float = DEFAULT_MARGIN,
    ):
        self.points_per_side = points_per_side
        self.margin = margin
        self.anchors: Dict[str, List[AnchorPoint]] = {}
        self.connections: Dict[str, AnchorConnection] = {}
        self._bounds: Dict[str, Bounds] = {}

    def anchors_for(self, node: Node) -> List[AnchorPoint]:
        """
        Anchor points for a node, regenerated if its bounds changed.

        Regenerating releases every connection that held a point on the old
        anchors.
        """
        bounds = node.bounds()
        if self._bounds.get(node.id) == bounds:
            return self.anchors[node.id]

        if node.id in self.anchors:
            stale = [
                conn.connection_id
                for conn in self.connections.values()
                if node.id in (conn.source_id, conn.target_id)
            ]
            for connection_id in stale:
                self.unregister_connection(connection_id)
            logger.debug(
                "Regenerated anchors for %r; released %d connections", node.id, len(stale)
            )

        self.anchors[node.id] = generate_anchor_points(bounds, self.points_per_side, self.margin)
        self._bounds[node.id] = bounds
        return self.anchors[node.id]

    def select_best_anchors(
        self,
        source: Node,
        target: Node,
        sides: Optional[Tuple[AnchorSide, AnchorSide]] = None,
    ) -> Tuple[AnchorPoint, AnchorPoint]:
        """
        Best (source, target) anchor pair without claiming it.

        Candidates come from ``sides`` when given, else from the preferred
        sides (all points if a side has none). Score is the distance between
        the two points plus OCCUPIED_PENALTY for every occupied point in the
        pair.
        """
        if sides is not None:
            source_side, target_side = sides
        elif source.id == target.id:
            source_side, target_side = AnchorSide.RIGHT, AnchorSide.TOP
        else:
            source_side, target_side = preferred_sides(source, target)

        source_points = self.anchors_for(source)
        target_points = self.anchors_for(target)
        source_candidates = [p for p in source_points if p.side == source_side] or source_points
        target_candidates = [p for p in target_points if p.side == target_side] or target_points
        return self._best_pair(source_candidates, target_candidates)[0]

    def ranked_side_pairs(
        self, source: Node, target: Node
    ) -> List[Tuple[AnchorPoint, AnchorPoint]]:
        """
        Best anchor pair for every combination of sides, cheapest first.

        Each pair scores as in select_best_anchors, plus AWAY_PENALTY for
        each side whose outward normal points away from the other node.
        """
        source_points = self.anchors_for(source)
        target_points = self.anchors_for(target)
        scored = []
        for source_side, target_side in product(SIDE_ORDER, SIDE_ORDER):
            pair, score = self._best_pair(
                [p for p in source_points if p.side == source_side],
                [p for p in target_points if p.side == target_side],
            )
            if pair is None:
                continue
            if _faces_away(source, target, source_side):
                score += AWAY_PENALTY
            if _faces_away(target, source, target_side):
                score += AWAY_PENALTY
            scored.append((score, pair))
        scored.sort(key=lambda item: item[0])
        return [pair for _, pair in scored]

    def register_connection(
        self, connection_id: str, source: Node, target: Node
    ) -> Tuple[AnchorPoint, AnchorPoint]:
        """
        Claim the best anchor pair for an edge.

        Re-registering an existing connection releases its old points first.

        Returns:
            (source_anchor, target_anchor), both marked occupied.
        """
        if connection_id in self.connections:
            self.unregister_connection(connection_id)

        source_anchor, target_anchor = self.select_best_anchors(source, target)
        return self.assign_connection(
            connection_id, source, target, source_anchor, target_anchor
        )

    def assign_connection(
        self,
        connection_id: str,
        source: Node,
        target: Node,
        source_anchor: AnchorPoint,
        target_anchor: AnchorPoint,
    ) -> Tuple[AnchorPoint, AnchorPoint]:
        """Claim a specific anchor pair for an edge, replacing any it held."""
        if connection_id in self.connections:
            self.unregister_connection(connection_id)

        for anchor in (source_anchor, target_anchor):
            anchor.occupied = True
            anchor.connection_id = connection_id

        self.connections[connection_id] = AnchorConnection(
            connection_id, source.id, target.id, source_anchor, target_anchor
        )
        return source_anchor, target_anchor

    def unregister_connection(self, connection_id: str) -> bool:
        """
        Release the points held by an edge.

        A point shared with another connection stays occupied and passes to
        that connection.

        Returns:
            True if the connection was known.
        """
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return False
        for anchor in (connection.source_anchor, connection.target_anchor):
            holder = self._holder_of(anchor)
            anchor.occupied = holder is not None
            anchor.connection_id = holder
        return True

    def clear_all(self) -> None:
        self.anchors.clear()
        self.connections.clear()
        self._bounds.clear()

    def get_stats(self) -> AnchorStats:
        total = sum(len(points) for points in self.anchors.values())
        occupied = sum(1 for points in self.anchors.values() for p in points if p.occupied)
        return AnchorStats(
            elements=len(self.anchors),
            connections=len(self.connections),
            total_points=total,
            occupied_points=occupied,
            occupancy_rate=(occupied / total * 100) if total else 0.0,
        )

    def _best_pair(
        self, source_candidates: List[AnchorPoint], target_candidates: List[AnchorPoint]
    ) -> Tuple[Optional[Tuple[AnchorPoint, AnchorPoint]], float]:
        best: Optional[Tuple[AnchorPoint, AnchorPoint]] = None
        best_score = float("inf")
        for s, t in product(source_candidates, target_candidates):
            if s is t:
                continue
            score = s.point.distance_to(t.point)
            score += OCCUPIED_PENALTY * (int(s.occupied) + int(t.occupied))
            if score < best_score:
                best_score = score
                best = (s, t)
        return best, best_score

    def _holder_of(self, anchor: AnchorPoint) -> Optional[str]:
        for conn in self.connections.values():
            if conn.source_anchor is anchor or conn.target_anchor is anchor:
                return conn.connection_id
        return None
