"""
Plane geometry helpers shared by the layout components.

Segment intersection uses orientation tests; everything works on
float coordinates in diagram units.
"""

import math
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import Bounds, Edge, Node, NodeSpacing, Point

Segment = Tuple[Point, Point]

EPSILON = 1e-9


def orientation(p: Point, q: Point, r: Point) -> int:
    """
    Orientation of the ordered triple (p, q, r).

    Returns:
        0 if collinear, 1 if clockwise, 2 if counterclockwise.
    """
    value = (q.y - p.y) * (r.x - q.x) - (q.x - p.x) * (r.y - q.y)
    if abs(value) < EPSILON:
        return 0
    return 1 if value > 0 else 2


def _on_segment(p: Point, q: Point, r: Point) -> bool:
    """True if q lies on segment pr, given that p, q, r are collinear."""
    return (
        min(p.x, r.x) - EPSILON <= q.x <= max(p.x, r.x) + EPSILON
        and min(p.y, r.y) - EPSILON <= q.y <= max(p.y, r.y) + EPSILON
    )


def segments_intersect(p1: Point, q1: Point, p2: Point, q2: Point) -> bool:
    """True if segment p1q1 intersects segment p2q2 (touching counts)."""
    o1 = orientation(p1, q1, p2)
    o2 = orientation(p1, q1, q2)
    o3 = orientation(p2, q2, p1)
    o4 = orientation(p2, q2, q1)

    if o1 != o2 and o3 != o4:
        return True

    if o1 == 0 and _on_segment(p1, p2, q1):
        return True
    if o2 == 0 and _on_segment(p1, q2, q1):
        return True
    if o3 == 0 and _on_segment(p2, p1, q2):
        return True
    if o4 == 0 and _on_segment(p2, q1, q2):
        return True
    return False


def line_intersects_bounds(start: Point, end: Point, bounds: Bounds) -> bool:
    """
    True if the segment from ``start`` to ``end`` touches the rectangle.

    A segment with an endpoint inside the rectangle counts as intersecting.
    """
    if bounds.contains(start) or bounds.contains(end):
        return True

    top_left = Point(bounds.x, bounds.y)
    top_right = Point(bounds.x2, bounds.y)
    bottom_right = Point(bounds.x2, bounds.y2)
    bottom_left = Point(bounds.x, bounds.y2)
    sides = (
        (top_left, top_right),
        (top_right, bottom_right),
        (bottom_right, bottom_left),
        (bottom_left, top_left),
    )
    return any(segments_intersect(start, end, a, b) for a, b in sides)


def polyline_segments(points: Sequence[Point]) -> List[Segment]:
    return [(points[i], points[i + 1]) for i in range(len(points) - 1)]


def polyline_length(points: Sequence[Point]) -> float:
    return sum(a.distance_to(b) for a, b in polyline_segments(points))


def polylines_cross(a: Sequence[Point], b: Sequence[Point]) -> bool:
    """True if any segment of polyline ``a`` intersects any segment of ``b``."""
    for p1, q1 in polyline_segments(a):
        for p2, q2 in polyline_segments(b):
            if segments_intersect(p1, q1, p2, q2):
                return True
    return False


def count_polyline_crossings(routes: Iterable[Tuple[Edge, Sequence[Point]]]) -> int:
    """
    Count crossing pairs among routed edges.

    Each pair of edges counts at most once. Edges sharing an endpoint node
    are skipped since they always meet at that node.
    """
    routes = [(edge, points) for edge, points in routes if points and len(points) >= 2]
    crossings = 0
    for (edge_a, pts_a), (edge_b, pts_b) in combinations(routes, 2):
        if _share_node(edge_a, edge_b):
            continue
        if polylines_cross(pts_a, pts_b):
            crossings += 1
    return crossings


def count_straight_crossings(edges: Sequence[Edge], nodes_by_id: dict) -> int:
    """Count crossings of the center-to-center lines of ``edges``."""
    routes = []
    for edge in edges:
        source = nodes_by_id.get(edge.source)
        target = nodes_by_id.get(edge.target)
        if source is None or target is None or edge.is_self_loop:
            continue
        routes.append((edge, [source.center, target.center]))
    return count_polyline_crossings(routes)


def _share_node(a: Edge, b: Edge) -> bool:
    return bool({a.source, a.target} & {b.source, b.target})


def overlap_area(nodes: Sequence[Node], padding: float = 0.0) -> float:
    """Summed pairwise intersection area of the nodes' inflated bounds."""
    total = 0.0
    boxes = [node.inflated_bounds(padding) for node in nodes]
    for a, b in combinations(boxes, 2):
        total += a.intersection_area(b)
    return total


def node_spacing(nodes: Sequence[Node]) -> NodeSpacing:
    """Min/avg/max pairwise center distance; all zero for fewer than two nodes."""
    distances = [a.center.distance_to(b.center) for a, b in combinations(nodes, 2)]
    if not distances:
        return NodeSpacing()
    return NodeSpacing(
        min=min(distances),
        avg=sum(distances) / len(distances),
        max=max(distances),
    )


def union_bounds(nodes: Sequence[Node]) -> Optional[Bounds]:
    """Bounding box of all nodes, or None for an empty sequence."""
    result: Optional[Bounds] = None
    for node in nodes:
        box = node.bounds()
        result = box if result is None else result.union(box)
    return result


def perpendicular_unit(start: Point, end: Point) -> Tuple[float, float]:
    """Unit vector perpendicular to start->end (zero vector for a degenerate line)."""
    dx = end.x - start.x
    dy = end.y - start.y
    length = math.hypot(dx, dy)
    if length < EPSILON:
        return 0.0, 0.0
    return -dy / length, dx / length
