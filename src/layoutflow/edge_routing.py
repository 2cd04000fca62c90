"""
Edge routing module for diagram layout.

Implements obstacle-aware routing with:
- Anchor points on node sides, chosen by the AnchorAllocator
- A sparse routing grid with inflated node obstacles
- A* pathfinding (4-connected, Manhattan heuristic, turn penalty)
- Retries on other anchor sides, then on a tighter grid, when A* fails
- Path cleanup: collinear point removal and orthogonal corner insertion
- A fixed-shape detour when A* cannot find a path
- Small lateral offsets that keep same-direction straight edges apart
"""

import heapq
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .anchors import AnchorAllocator
from .cancellation import CancellationToken, check_cancelled
from .geometry import (
    count_polyline_crossings,
    count_straight_crossings,
    line_intersects_bounds,
    perpendicular_unit,
    polyline_length,
    union_bounds,
)
from .models import AnchorPoint, Bounds, Edge, EdgeType, Node, Point

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTING CONFIGURATION - Adjust these values to tune routing behavior
# =============================================================================

# --- Grid ---

# Side length of one routing grid cell
GRID_CELL_SIZE = 20

# Margin added around obstacles when marking the grid and testing lines
CLEARANCE = 16

# Extra space around the nodes' bounding box covered by the grid
GRID_MARGIN = 100

# Cost multiplier for free cells next to an obstacle, keeps paths off walls
NEAR_OBSTACLE_COST = 1.5

# Clearance of the second grid, used when the normal grid walls off a route.
# Its cells are blocked only when their center lies inside an obstacle.
TIGHT_CLEARANCE = 4

# --- A* ---

# Cost of one step into a cell of cost 1.0
STEP_COST = 1.0

# Added whenever the path changes direction; favors long straight runs
TURN_PENALTY = 0.5

# Default cap on nodes expanded per search attempt before giving up
MAX_EXPANSIONS = 50000

# How often (in expansions) A* checks the cancellation token
CANCEL_CHECK_INTERVAL = 1000

# Alternative anchor side pairs tried on each grid after the allocated pair
SIDE_RETRIES = 3

# --- Shapes ---

# Perpendicular distance between neighbouring same-direction straight edges
LATERAL_OFFSET = 8

# Straight edges in one direction group cycle through this many offset slots
LATERAL_SLOTS = 5

# Fallback detour: bend position along the main axis and side-step distance
DETOUR_BEND_RATIO = 0.6
DETOUR_OFFSET = 30

# Size of the loop drawn for self-referencing edges
SELF_LOOP_SIZE = 30

# =============================================================================

Cell = Tuple[int, int]

# 4-directional neighbors: right, left, down, up
_DIRS = [(1, 0), (-1, 0), (0, 1), (0, -1)]


@dataclass
class GridCell:
    """A routing grid cell. Cells not stored in the grid are free with cost 1."""

    blocked: bool = False
    cost: float = 1.0
    owners: Set[str] = field(default_factory=set)  # Nodes whose obstacle covers it


@dataclass
class PathResult:
    """A* result."""

    cells: List[Cell]
    cost: float
    expansions: int


@dataclass
class RoutingMetrics:
    """Outcome of an EdgeRouter run."""

    total_edges: int = 0
    rerouted_edges: int = 0
    fallback_edges: List[str] = field(default_factory=list)
    retried_edges: List[str] = field(default_factory=list)  # Routed after the first attempt failed
    skipped_edges: List[str] = field(default_factory=list)
    crossings_before: int = 0
    crossings_after: int = 0
    avg_path_length: float = 0.0
    expansions: int = 0

    @property
    def crossing_reduction(self) -> int:
        return self.crossings_before - self.crossings_after


class RoutingGrid:
    """
    Uniform grid over the canvas with obstacle cells.

    Uses a sparse representation: only cells touched by an obstacle (or its
    one-cell fringe) are stored.
    """

    def __init__(
        self,
        bounds: Bounds,
        cell_size: float = GRID_CELL_SIZE,
        block_by_center: bool = False,
    ):
        """
        Initialize the routing grid.

        Args:
            bounds: Canvas area to cover.
            cell_size: Side length of each cell.
            block_by_center: Block only cells whose center lies strictly
                inside an obstacle instead of every cell it touches.
        """
        self.origin_x = bounds.x
        self.origin_y = bounds.y
        self.cell_size = cell_size
        self.block_by_center = block_by_center
        self.cols = max(1, int(math.ceil(bounds.width / cell_size)))
        self.rows = max(1, int(math.ceil(bounds.height / cell_size)))
        self.cells: Dict[Cell, GridCell] = {}

    @classmethod
    def for_nodes(
        cls,
        nodes: Sequence[Node],
        cell_size: float = GRID_CELL_SIZE,
        clearance: float = CLEARANCE,
        margin: float = GRID_MARGIN,
        block_by_center: bool = False,
    ) -> "RoutingGrid":
        """Grid over all nodes plus margin, with every node marked as an obstacle."""
        canvas = union_bounds(nodes) or Bounds(0, 0, 0, 0)
        grid = cls(canvas.inflate(margin), cell_size, block_by_center)
        for node in nodes:
            grid.mark_obstacle(node.id, node.inflated_bounds(clearance))
        return grid

    def cell_at(self, point: Point) -> Cell:
        """Cell containing a point, clamped into the grid."""
        col = int(math.floor((point.x - self.origin_x) / self.cell_size))
        row = int(math.floor((point.y - self.origin_y) / self.cell_size))
        return (
            min(max(col, 0), self.cols - 1),
            min(max(row, 0), self.rows - 1),
        )

    def cell_center(self, cell: Cell) -> Point:
        col, row = cell
        return Point(
            self.origin_x + (col + 0.5) * self.cell_size,
            self.origin_y + (row + 0.5) * self.cell_size,
        )

    def in_bounds(self, cell: Cell) -> bool:
        col, row = cell
        return 0 <= col < self.cols and 0 <= row < self.rows

    def mark_obstacle(self, owner: str, bounds: Bounds) -> None:
        """
        Block every cell whose area overlaps ``bounds`` (or, on a
        block-by-center grid, whose center lies strictly inside it).

        Free cells in a one-cell ring around the blocked cells get a higher
        cost.
        """
        left = (bounds.x - self.origin_x) / self.cell_size
        right = (bounds.x2 - self.origin_x) / self.cell_size
        top = (bounds.y - self.origin_y) / self.cell_size
        bottom = (bounds.y2 - self.origin_y) / self.cell_size
        if self.block_by_center:
            col_min = int(math.floor(left - 0.5)) + 1
            col_max = int(math.ceil(right - 0.5)) - 1
            row_min = int(math.floor(top - 0.5)) + 1
            row_max = int(math.ceil(bottom - 0.5)) - 1
        else:
            col_min = int(math.floor(left))
            col_max = int(math.ceil(right)) - 1
            row_min = int(math.floor(top))
            row_max = int(math.ceil(bottom)) - 1

        for col in range(col_min - 1, col_max + 2):
            for row in range(row_min - 1, row_max + 2):
                cell = (col, row)
                if not self.in_bounds(cell):
                    continue
                grid_cell = self.cells.setdefault(cell, GridCell())
                if col_min <= col <= col_max and row_min <= row <= row_max:
                    grid_cell.blocked = True
                    grid_cell.owners.add(owner)
                elif not grid_cell.blocked:
                    grid_cell.cost = max(grid_cell.cost, NEAR_OBSTACLE_COST)

    def is_blocked(self, cell: Cell) -> bool:
        grid_cell = self.cells.get(cell)
        return grid_cell is not None and grid_cell.blocked

    def is_free(self, cell: Cell, ignore: Set[str] = frozenset()) -> bool:
        """
        True if a path may enter ``cell``.

        Cells blocked only by obstacles listed in ``ignore`` (an edge's own
        endpoints) count as free.
        """
        if not self.in_bounds(cell):
            return False
        grid_cell = self.cells.get(cell)
        if grid_cell is None or not grid_cell.blocked:
            return True
        return grid_cell.owners <= ignore

    def cost(self, cell: Cell) -> float:
        grid_cell = self.cells.get(cell)
        return grid_cell.cost if grid_cell is not None else 1.0


# =============================================================================
# A* SEARCH
# =============================================================================


def _heuristic(a: Cell, b: Cell) -> float:
    """Manhattan distance in cells; admissible since every step costs >= STEP_COST."""
    return (abs(a[0] - b[0]) + abs(a[1] - b[1])) * STEP_COST


def step_cost(grid: RoutingGrid, cell: Cell, turned: bool) -> float:
    return STEP_COST * grid.cost(cell) + (TURN_PENALTY if turned else 0.0)


def path_cost(grid: RoutingGrid, cells: Sequence[Cell]) -> float:
    """Cost of walking ``cells`` in order, as A* scores it."""
    total = 0.0
    previous_dir = None
    for a, b in zip(cells, cells[1:]):
        direction = (b[0] - a[0], b[1] - a[1])
        turned = previous_dir is not None and direction != previous_dir
        total += step_cost(grid, b, turned)
        previous_dir = direction
    return total


def find_path(
    grid: RoutingGrid,
    start: Cell,
    goal: Cell,
    ignore: Set[str] = frozenset(),
    max_expansions: int = MAX_EXPANSIONS,
    cancel_token: Optional[CancellationToken] = None,
) -> Tuple[Optional[PathResult], int]:
    """
    Find the cheapest 4-connected path from ``start`` to ``goal``.

    The search state is (cell, incoming direction) so turns can be charged.
    The start and goal cells may themselves be blocked (they sit next to
    node boundaries); every other cell on the path is free.

    Args:
        grid: Routing grid.
        start: Start cell.
        goal: Goal cell.
        ignore: Obstacle owners that do not block (the edge's endpoints).
        max_expansions: Give up after expanding this many states.
        cancel_token: Optional token checked periodically.

    Returns:
        (PathResult or None, number of expansions used)
    """
    start_state = (start, -1)
    counter = 0
    open_set: List[Tuple[float, int, float, Cell, int]] = []
    heapq.heappush(open_set, (_heuristic(start, goal), counter, 0.0, start, -1))

    best_cost: Dict[Tuple[Cell, int], float] = {start_state: 0.0}
    came_from: Dict[Tuple[Cell, int], Optional[Tuple[Cell, int]]] = {start_state: None}
    expansions = 0

    while open_set:
        _, _, cost, cell, direction = heapq.heappop(open_set)
        state = (cell, direction)
        if cost > best_cost.get(state, float("inf")):
            continue  # Stale entry

        if cell == goal:
            cells: List[Cell] = []
            current: Optional[Tuple[Cell, int]] = state
            while current is not None:
                cells.append(current[0])
                current = came_from[current]
            cells.reverse()
            return PathResult(cells=cells, cost=cost, expansions=expansions), expansions

        expansions += 1
        if expansions > max_expansions:
            return None, expansions
        if expansions % CANCEL_CHECK_INTERVAL == 0:
            check_cancelled(cancel_token)

        for dir_index, (dx, dy) in enumerate(_DIRS):
            neighbor = (cell[0] + dx, cell[1] + dy)
            # Allow stepping onto the goal even if blocked
            if neighbor != goal and not grid.is_free(neighbor, ignore):
                continue
            if not grid.in_bounds(neighbor):
                continue

            turned = direction != -1 and dir_index != direction
            new_cost = cost + step_cost(grid, neighbor, turned)
            next_state = (neighbor, dir_index)
            if new_cost < best_cost.get(next_state, float("inf")):
                best_cost[next_state] = new_cost
                came_from[next_state] = state
                counter += 1
                priority = new_cost + _heuristic(neighbor, goal)
                heapq.heappush(open_set, (priority, counter, new_cost, neighbor, dir_index))

    return None, expansions


def _may_connect(grid: RoutingGrid, start: Cell, goal: Cell, ignore: Set[str]) -> bool:
    """False when the start or goal cell is sealed in by blocked neighbours."""
    if abs(start[0] - goal[0]) + abs(start[1] - goal[1]) <= 1:
        return True
    return all(
        any(grid.is_free((cell[0] + dx, cell[1] + dy), ignore) for dx, dy in _DIRS)
        for cell in (start, goal)
    )


# =============================================================================
# PATH CLEANUP
# =============================================================================


def simplify_path(points: Sequence[Point], tolerance: float = 1e-6) -> List[Point]:
    """Remove duplicate and collinear interior points."""
    deduped: List[Point] = []
    for point in points:
        if deduped and abs(point.x - deduped[-1].x) < tolerance and abs(point.y - deduped[-1].y) < tolerance:
            continue
        deduped.append(point)

    if len(deduped) <= 2:
        return deduped

    simplified = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        prev = simplified[-1]
        curr = deduped[i]
        next_pt = deduped[i + 1]
        cross = (curr.x - prev.x) * (next_pt.y - curr.y) - (curr.y - prev.y) * (next_pt.x - curr.x)
        if abs(cross) > tolerance:
            simplified.append(curr)
    simplified.append(deduped[-1])
    return simplified


def orthogonalize(
    points: Sequence[Point],
    start_vertical: bool = False,
    end_vertical: bool = False,
) -> List[Point]:
    """
    Insert corners so every segment is horizontal or vertical.

    The first two segments keep the start orientation and the last two the
    end orientation, which folds the small jog between an anchor's exit
    point and the nearest cell center into the adjacent run.

    Args:
        points: Polyline to fix.
        start_vertical: Leave the first point vertically (top/bottom anchor).
        end_vertical: Enter the last point vertically (top/bottom anchor).
    """
    if len(points) < 2:
        return list(points)

    result = [points[0]]
    last_index = len(points) - 1
    for index in range(1, len(points)):
        a = result[-1]
        b = points[index]
        if abs(a.x - b.x) > 1e-6 and abs(a.y - b.y) > 1e-6:
            if index <= 2:
                vertical_first = start_vertical
            elif index >= last_index - 1:
                vertical_first = not end_vertical
            else:
                vertical_first = False
            corner = Point(a.x, b.y) if vertical_first else Point(b.x, a.y)
            result.append(corner)
        result.append(b)
    return result


def is_orthogonal(points: Sequence[Point], tolerance: float = 1e-6) -> bool:
    return all(
        abs(a.x - b.x) < tolerance or abs(a.y - b.y) < tolerance
        for a, b in zip(points, points[1:])
    )


def _sign(value: float) -> float:
    return 1.0 if value >= 0 else -1.0


# =============================================================================
# ROUTER
# =============================================================================


class EdgeRouter:
    """
    Produces waypoints for every edge.

    Straight edges whose line between anchors crosses another node's
    inflated bounds are routed with A*; the rest stay straight with a small
    lateral offset. The router writes ``waypoints`` and ``type`` into the
    edges it is given.

    Attributes:
        cell_size: Routing grid cell size.
        clearance: Obstacle inflation.
        max_expansions: A* budget per search attempt.
        anchors: Anchor allocator shared across the run.
    """

    def __init__(
        self,
        cell_size: float = GRID_CELL_SIZE,
        clearance: float = CLEARANCE,
        max_expansions: int = MAX_EXPANSIONS,
        anchors: Optional[AnchorAllocator] = None,
    ):
        self.cell_size = cell_size
        self.clearance = clearance
        self.max_expansions = max_expansions
        self.anchors = anchors if anchors is not None else AnchorAllocator()
        self.grid: Optional[RoutingGrid] = None
        self.tight_grid: Optional[RoutingGrid] = None

    def route_edges(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        cancel_token: Optional[CancellationToken] = None,
    ) -> RoutingMetrics:
        """
        Route all edges against the given node positions.

        Args:
            nodes: Positioned nodes; all of them are obstacles.
            edges: Edges to route in place.
            cancel_token: Optional token checked between edges and during A*.

        Returns:
            RoutingMetrics for the run.
        """
        metrics = RoutingMetrics(total_edges=len(edges))
        nodes_by_id = {node.id: node for node in nodes}
        obstacles = {node.id: node.inflated_bounds(self.clearance) for node in nodes}
        self.grid = None
        self.tight_grid = None

        metrics.crossings_before = count_straight_crossings(edges, nodes_by_id)

        straight: List[Tuple[Edge, AnchorPoint, AnchorPoint]] = []
        for edge in edges:
            check_cancelled(cancel_token)
            source = nodes_by_id.get(edge.source)
            target = nodes_by_id.get(edge.target)
            if source is None or target is None:
                logger.warning(
                    "Skipping route for edge %r: unknown endpoint (%r -> %r)",
                    edge.id,
                    edge.source,
                    edge.target,
                )
                edge.waypoints = None
                metrics.skipped_edges.append(edge.id)
                continue

            source_anchor, target_anchor = self.anchors.register_connection(edge.id, source, target)

            if edge.is_self_loop:
                edge.waypoints = self._self_loop(source_anchor, target_anchor)
                edge.type = EdgeType.ORTHOGONAL
                continue

            start, end = source_anchor.point, target_anchor.point
            if not self.needs_rerouting(start, end, obstacles, {edge.source, edge.target}):
                straight.append((edge, source_anchor, target_anchor))
                continue

            logger.debug("Edge %r crosses an obstacle; routing with A*", edge.id)
            metrics.rerouted_edges += 1
            edge.type = EdgeType.ORTHOGONAL
            waypoints = self._route_with_astar(
                edge, nodes, source, target, source_anchor, target_anchor, metrics, cancel_token
            )
            if waypoints is None:
                logger.warning("No path found for edge %r; using fallback detour", edge.id)
                metrics.fallback_edges.append(edge.id)
                waypoints = self.fallback_route(source_anchor, target_anchor)
            edge.waypoints = waypoints

        self._apply_lateral_offsets(straight)

        routed = [(edge, edge.waypoints) for edge in edges if edge.waypoints]
        metrics.crossings_after = count_polyline_crossings(routed)
        if routed:
            metrics.avg_path_length = sum(polyline_length(pts) for _, pts in routed) / len(routed)

        logger.info(
            "Routed %d edges (%d rerouted, %d fallback, %d skipped); crossings %d -> %d",
            metrics.total_edges,
            metrics.rerouted_edges,
            len(metrics.fallback_edges),
            len(metrics.skipped_edges),
            metrics.crossings_before,
            metrics.crossings_after,
        )
        return metrics

    def needs_rerouting(
        self,
        start: Point,
        end: Point,
        obstacles: Dict[str, Bounds],
        exclude: Set[str],
    ) -> bool:
        """True if the segment crosses any obstacle not listed in ``exclude``."""
        return any(
            line_intersects_bounds(start, end, bounds)
            for node_id, bounds in obstacles.items()
            if node_id not in exclude
        )

    def _route_with_astar(
        self,
        edge: Edge,
        nodes: Sequence[Node],
        source: Node,
        target: Node,
        source_anchor: AnchorPoint,
        target_anchor: AnchorPoint,
        metrics: RoutingMetrics,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[List[Point]]:
        """
        Search for a route, retrying before giving up.

        The allocated anchor pair is tried first, then up to SIDE_RETRIES
        pairs on other sides, all on the normal grid. If none connects, the
        same pairs are tried on a grid with TIGHT_CLEARANCE that leaves the
        narrow corridors between packed nodes open. The edge keeps the
        anchors of the first attempt that succeeds; on total failure it keeps
        its allocated pair and the caller falls back.
        """
        # Release the edge's points so alternatives can claim them
        self.anchors.unregister_connection(edge.id)
        candidates = self._candidate_pairs(source, target, source_anchor, target_anchor)

        attempt = 0
        for grid, clearance in self._grids(nodes):
            for candidate_source, candidate_target in candidates:
                attempt += 1
                waypoints = self._search(
                    grid, clearance, edge, candidate_source, candidate_target, metrics, cancel_token
                )
                if waypoints is None:
                    continue
                self.anchors.assign_connection(edge.id, source, target, candidate_source, candidate_target)
                if attempt > 1:
                    logger.debug("Edge %r routed on attempt %d", edge.id, attempt)
                    metrics.retried_edges.append(edge.id)
                return waypoints

        self.anchors.assign_connection(edge.id, source, target, source_anchor, target_anchor)
        return None

    def _candidate_pairs(
        self,
        source: Node,
        target: Node,
        source_anchor: AnchorPoint,
        target_anchor: AnchorPoint,
    ) -> List[Tuple[AnchorPoint, AnchorPoint]]:
        candidates = [(source_anchor, target_anchor)]
        tried = {(source_anchor.side, target_anchor.side)}
        for pair in self.anchors.ranked_side_pairs(source, target):
            if len(candidates) > SIDE_RETRIES:
                break
            sides = (pair[0].side, pair[1].side)
            if sides in tried:
                continue
            tried.add(sides)
            candidates.append(pair)
        return candidates

    def _grids(self, nodes: Sequence[Node]) -> Iterator[Tuple[RoutingGrid, float]]:
        """Normal grid, then the tight one; each is built on first use."""
        if self.grid is None:
            self.grid = RoutingGrid.for_nodes(nodes, self.cell_size, self.clearance)
        yield self.grid, self.clearance

        tight = min(TIGHT_CLEARANCE, self.clearance)
        if self.tight_grid is None:
            self.tight_grid = RoutingGrid.for_nodes(
                nodes, self.cell_size, tight, block_by_center=True
            )
        yield self.tight_grid, tight

    def _search(
        self,
        grid: RoutingGrid,
        clearance: float,
        edge: Edge,
        source_anchor: AnchorPoint,
        target_anchor: AnchorPoint,
        metrics: RoutingMetrics,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[List[Point]]:
        # Step out of each endpoint's clearance zone perpendicular to its side
        exit_point = self._offset_from_anchor(source_anchor, clearance)
        entry_point = self._offset_from_anchor(target_anchor, clearance)
        start_cell = grid.cell_at(exit_point)
        goal_cell = grid.cell_at(entry_point)
        ignore = {edge.source, edge.target}

        if not _may_connect(grid, start_cell, goal_cell, ignore):
            return None

        result, expansions = find_path(
            grid,
            start_cell,
            goal_cell,
            ignore=ignore,
            max_expansions=self.max_expansions,
            cancel_token=cancel_token,
        )
        metrics.expansions += expansions
        if result is None:
            return None

        points = [source_anchor.point, exit_point]
        points.extend(grid.cell_center(cell) for cell in result.cells)
        points.extend([entry_point, target_anchor.point])

        points = simplify_path(points)
        points = orthogonalize(
            points,
            start_vertical=source_anchor.side.is_horizontal,
            end_vertical=target_anchor.side.is_horizontal,
        )
        return simplify_path(points)

    def _offset_from_anchor(self, anchor: AnchorPoint, clearance: float) -> Point:
        nx_, ny = anchor.side.normal
        distance = clearance + self.cell_size / 2
        return Point(anchor.x + nx_ * distance, anchor.y + ny * distance)

    def fallback_route(self, source_anchor: AnchorPoint, target_anchor: AnchorPoint) -> List[Point]:
        """
        Fixed-shape orthogonal detour.

        A Z-shape bending at DETOUR_BEND_RATIO of the main axis. When the two
        anchors are nearly aligned the middle leg would vanish, so the route
        side-steps DETOUR_OFFSET instead.
        """
        start, end = source_anchor.point, target_anchor.point
        dx = end.x - start.x
        dy = end.y - start.y

        if abs(dx) > abs(dy):
            if abs(dy) >= DETOUR_OFFSET:
                mid_x = start.x + dx * DETOUR_BEND_RATIO
                return [start, Point(mid_x, start.y), Point(mid_x, end.y), end]
            lane_y = start.y + DETOUR_OFFSET * (1.0 if dy > 0 else -1.0)
            x1 = start.x + dx * (1 - DETOUR_BEND_RATIO) / 2
            x2 = end.x - dx * (1 - DETOUR_BEND_RATIO) / 2
            return simplify_path(
                [start, Point(x1, start.y), Point(x1, lane_y), Point(x2, lane_y), Point(x2, end.y), end]
            )

        if abs(dx) >= DETOUR_OFFSET:
            mid_y = start.y + dy * DETOUR_BEND_RATIO
            return [start, Point(start.x, mid_y), Point(end.x, mid_y), end]
        lane_x = start.x + DETOUR_OFFSET * (1.0 if dx > 0 else -1.0)
        y1 = start.y + dy * (1 - DETOUR_BEND_RATIO) / 2
        y2 = end.y - dy * (1 - DETOUR_BEND_RATIO) / 2
        return simplify_path(
            [start, Point(start.x, y1), Point(lane_x, y1), Point(lane_x, y2), Point(end.x, y2), end]
        )

    def _self_loop(self, source_anchor: AnchorPoint, target_anchor: AnchorPoint) -> List[Point]:
        """Loop out of the right side and back in through the top."""
        start, end = source_anchor.point, target_anchor.point
        loop_x = start.x + SELF_LOOP_SIZE
        loop_y = end.y - SELF_LOOP_SIZE
        return [start, Point(loop_x, start.y), Point(loop_x, loop_y), Point(end.x, loop_y), end]

    def _apply_lateral_offsets(self, straight: List[Tuple[Edge, AnchorPoint, AnchorPoint]]) -> None:
        """
        Straight two-point waypoints, spread apart within direction groups.

        Edges are grouped by the octant of their direction. The k-th edge of
        a group of n is shifted perpendicular by LATERAL_OFFSET times
        (k mod 5) - (min(n, 5) - 1) / 2, so the offsets of a group are
        centered on its axis and a lone edge is not shifted.
        """
        groups: Dict[int, List[Tuple[Edge, AnchorPoint, AnchorPoint]]] = {}
        for item in straight:
            _, source_anchor, target_anchor = item
            groups.setdefault(self._direction_bucket(source_anchor.point, target_anchor.point), []).append(item)

        for members in groups.values():
            center = (min(len(members), LATERAL_SLOTS) - 1) / 2
            for index, (edge, source_anchor, target_anchor) in enumerate(members):
                start, end = source_anchor.point, target_anchor.point
                multiplier = (index % LATERAL_SLOTS) - center
                px, py = perpendicular_unit(start, end)
                ox = px * LATERAL_OFFSET * multiplier
                oy = py * LATERAL_OFFSET * multiplier
                edge.waypoints = [
                    Point(start.x + ox, start.y + oy),
                    Point(end.x + ox, end.y + oy),
                ]
                edge.type = EdgeType.STRAIGHT

    @staticmethod
    def _direction_bucket(start: Point, end: Point) -> int:
        angle = math.atan2(end.y - start.y, end.x - start.x)
        return int(round(angle / (math.pi / 4))) % 8
