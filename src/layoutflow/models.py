"""
Data models for diagram layout.

This module contains the dataclasses that flow through the layout pipeline.
Callers build Node and Edge values from their own diagram model; the pipeline
fills in positions and waypoints and hands back new copies.

Coordinate convention: a node's ``x``/``y`` is the CENTER of its bounding box.
Every component (collision, anchors, routing, metrics) relies on this.

Classes:
    EdgeType: How an edge's waypoints should be read (straight or orthogonal).
    Point: A 2D point in diagram units.
    Bounds: An axis-aligned rectangle given by its top-left corner and size.
    Node: A box to be positioned.
    Edge: A connection between two nodes.
    AnchorSide: Side of a node an anchor point sits on.
    AnchorPoint: A candidate connection point on a node boundary.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

DEFAULT_WEIGHT = 1.0

# Overlaps no deeper than this on either axis count as touching
OVERLAP_TOLERANCE = 1e-6


class EdgeType(Enum):
    """How an edge's polyline is drawn."""

    STRAIGHT = "straight"
    ORTHOGONAL = "orthogonal"


@dataclass(frozen=True)
class Point:
    """A 2D point in diagram units."""

    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return ((other.x - self.x) ** 2 + (other.y - self.y) ** 2) ** 0.5


@dataclass(frozen=True)
class Bounds:
    """
    Axis-aligned rectangle.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Horizontal extent.
        height: Vertical extent.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def inflate(self, margin: float) -> "Bounds":
        """Return a copy grown by ``margin`` on every side."""
        return Bounds(
            self.x - margin,
            self.y - margin,
            self.width + 2 * margin,
            self.height + 2 * margin,
        )

    def overlap_depths(self, other: "Bounds") -> Tuple[float, float]:
        """Overlap along x and y; either is <= 0 when the boxes are apart."""
        return (
            min(self.x2, other.x2) - max(self.x, other.x),
            min(self.y2, other.y2) - max(self.y, other.y),
        )

    def overlaps(self, other: "Bounds") -> bool:
        """
        True when the interiors intersect.

        Touching edges and overlaps within OVERLAP_TOLERANCE do not count.
        """
        depth_x, depth_y = self.overlap_depths(other)
        return depth_x > OVERLAP_TOLERANCE and depth_y > OVERLAP_TOLERANCE

    def intersection_area(self, other: "Bounds") -> float:
        if not self.overlaps(other):
            return 0.0
        depth_x, depth_y = self.overlap_depths(other)
        return depth_x * depth_y

    def contains(self, point: Point) -> bool:
        return self.x <= point.x <= self.x2 and self.y <= point.y <= self.y2

    def union(self, other: "Bounds") -> "Bounds":
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        return Bounds(
            left, top, max(self.x2, other.x2) - left, max(self.y2, other.y2) - top
        )


@dataclass
class Node:
    """
    A box to be positioned.

    Attributes:
        id: Unique identifier, stable across re-layouts.
        width: Box width.
        height: Box height.
        x: Center x coordinate (written by the pipeline unless ``fixed``).
        y: Center y coordinate (written by the pipeline unless ``fixed``).
        weight: How strongly the node resists being pushed during collision
            resolution. Heavier nodes move less.
        fixed: If True the node is never moved by the pipeline.
    """

    id: str
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0
    weight: float = DEFAULT_WEIGHT
    fixed: bool = False

    @property
    def center(self) -> Point:
        return Point(self.x, self.y)

    @property
    def effective_weight(self) -> float:
        """Weight used for displacement sharing; non-positive weights fall back."""
        if self.weight and self.weight > 0:
            return self.weight
        return DEFAULT_WEIGHT

    def bounds(self) -> Bounds:
        return Bounds(
            self.x - self.width / 2, self.y - self.height / 2, self.width, self.height
        )

    def inflated_bounds(self, margin: float) -> Bounds:
        return self.bounds().inflate(margin)


@dataclass
class Edge:
    """
    A directed connection between two nodes.

    Attributes:
        id: Unique identifier.
        source: Id of the source node.
        target: Id of the target node.
        waypoints: Rendered polyline, absent until routed. When present it
            starts on the source boundary and ends on the target boundary.
        type: How the polyline should be drawn.
        label: Opaque caller text; the layout never reads it.
    """

    id: str
    source: str
    target: str
    waypoints: Optional[List[Point]] = None
    type: EdgeType = EdgeType.STRAIGHT
    label: Optional[str] = None

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


class AnchorSide(Enum):
    """Which side of a node an anchor point is on."""

    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"

    @property
    def opposite(self) -> "AnchorSide":
        return _OPPOSITE_SIDES[self]

    @property
    def is_horizontal(self) -> bool:
        """True for sides that run horizontally (top and bottom)."""
        return self in (AnchorSide.TOP, AnchorSide.BOTTOM)

    @property
    def normal(self) -> Tuple[float, float]:
        """Unit vector pointing out of the node through this side."""
        return _SIDE_NORMALS[self]


_OPPOSITE_SIDES = {
    AnchorSide.TOP: AnchorSide.BOTTOM,
    AnchorSide.BOTTOM: AnchorSide.TOP,
    AnchorSide.LEFT: AnchorSide.RIGHT,
    AnchorSide.RIGHT: AnchorSide.LEFT,
}

_SIDE_NORMALS = {
    AnchorSide.TOP: (0.0, -1.0),
    AnchorSide.BOTTOM: (0.0, 1.0),
    AnchorSide.LEFT: (-1.0, 0.0),
    AnchorSide.RIGHT: (1.0, 0.0),
}


@dataclass
class AnchorPoint:
    """A connection point on a node's boundary."""

    x: float
    y: float
    side: AnchorSide
    occupied: bool = False
    connection_id: Optional[str] = None

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


@dataclass
class NodeSpacing:
    """Pairwise center-distance statistics."""

    min: float = 0.0
    avg: float = 0.0
    max: float = 0.0

