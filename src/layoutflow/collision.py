"""
Collision resolution for node bounding boxes.

Overlapping boxes are pushed apart along the axis of least overlap (the
minimum translation vector). The push is shared between the two nodes in
inverse proportion to their weights; a fixed node never moves and its
partner takes the whole push.
"""

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

from .cancellation import CancellationToken, check_cancelled
from .geometry import overlap_area
from .models import Bounds, Node

logger = logging.getLogger(__name__)

# =============================================================================
# COLLISION CONFIGURATION
# =============================================================================

# Margin added around every node before testing overlap
DEFAULT_PADDING = 16

# Largest distance a node may be pushed by one pair in one iteration
MAX_MOVE_PER_ITERATION = 20.0

# Multiplier on the separating vector; pushes go slightly past the overlap
SAFETY_FACTOR = 1.05

# Smallest total push for an overlapping pair
MIN_SEPARATION = 0.01

# An iteration whose largest move is below this is considered settled
CONVERGENCE_THRESHOLD = 1.0

DEFAULT_MAX_ITERATIONS = 50

# =============================================================================


@dataclass
class Collision:
    """
    An overlapping pair.

    ``dx``/``dy`` is the separating vector: how far ``first`` must move (with
    ``second`` staying put) for the inflated boxes to stop overlapping. Only
    one component is non-zero.
    """

    first: str
    second: str
    dx: float
    dy: float

    @property
    def depth(self) -> float:
        return abs(self.dx) + abs(self.dy)


@dataclass
class CollisionMetrics:
    """Outcome of a CollisionResolver run."""

    total_collisions: int = 0
    resolved_collisions: int = 0
    residual_collisions: int = 0
    iterations: int = 0
    max_displacement: float = 0.0
    converged: bool = True


def separating_vector(a: Bounds, b: Bounds) -> Optional[Tuple[float, float]]:
    """
    Minimum translation for ``a`` that removes its overlap with ``b``.

    The axis with the smaller overlap wins; ties go to the x axis.

    Returns:
        (dx, dy) for ``a``, or None if the boxes do not overlap.
    """
    if not a.overlaps(b):
        return None

    overlap_x, overlap_y = a.overlap_depths(b)

    if overlap_x <= overlap_y:
        direction = -1.0 if a.center_x <= b.center_x else 1.0
        return direction * overlap_x, 0.0
    direction = -1.0 if a.center_y <= b.center_y else 1.0
    return 0.0, direction * overlap_y


def detect_collisions(nodes: Sequence[Node], padding: float = DEFAULT_PADDING) -> List[Collision]:
    """Every overlapping pair of inflated node bounds, in input order."""
    collisions = []
    for a, b in combinations(nodes, 2):
        vector = separating_vector(a.inflated_bounds(padding), b.inflated_bounds(padding))
        if vector is not None:
            collisions.append(Collision(a.id, b.id, vector[0], vector[1]))
    return collisions


def calculate_overlap_area(nodes: Sequence[Node], padding: float = DEFAULT_PADDING) -> float:
    """Summed pairwise intersection area of the inflated node bounds."""
    return overlap_area(nodes, padding)


class CollisionResolver:
    """
    Iterative weighted push-apart.

    Attributes:
        padding: Margin added around each node.
        max_iterations: Iteration budget.
    """

    def __init__(
        self,
        padding: float = DEFAULT_PADDING,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.padding = padding
        self.max_iterations = max_iterations

    def resolve(
        self,
        nodes: List[Node],
        cancel_token: Optional[CancellationToken] = None,
    ) -> CollisionMetrics:
        """
        Move nodes until no inflated boxes overlap or the budget runs out.

        Args:
            nodes: Nodes to move in place. Fixed nodes are never moved.
            cancel_token: Optional token checked once per iteration.

        Returns:
            CollisionMetrics for the run.
        """
        metrics = CollisionMetrics()
        pairs = [(a, b) for a, b in combinations(nodes, 2) if not (a.fixed and b.fixed)]
        metrics.total_collisions = self._count_overlapping(pairs)

        if metrics.total_collisions == 0:
            return metrics

        for iteration in range(1, self.max_iterations + 1):
            check_cancelled(cancel_token)
            metrics.iterations = iteration
            moved = 0
            iteration_max_move = 0.0

            for a, b in pairs:
                vector = separating_vector(
                    a.inflated_bounds(self.padding), b.inflated_bounds(self.padding)
                )
                if vector is None:
                    continue
                move_a, move_b = self._push_apart(a, b, vector)
                moved += 1
                iteration_max_move = max(iteration_max_move, move_a, move_b)

            metrics.max_displacement = max(metrics.max_displacement, iteration_max_move)
            logger.debug(
                "Collision iteration %d: %d pairs moved, max move %.2f",
                iteration,
                moved,
                iteration_max_move,
            )

            if moved == 0:
                break
            # Small moves can still knock a neighbour into overlap
            if iteration_max_move < CONVERGENCE_THRESHOLD and self._count_overlapping(pairs) == 0:
                break

        metrics.residual_collisions = self._count_overlapping(pairs)
        metrics.resolved_collisions = max(
            0, metrics.total_collisions - metrics.residual_collisions
        )
        metrics.converged = metrics.residual_collisions == 0
        if not metrics.converged:
            logger.warning(
                "Collision resolution did not converge after %d iterations; "
                "%d overlapping pairs remain",
                metrics.iterations,
                metrics.residual_collisions,
            )
        else:
            logger.info(
                "Resolved %d collisions in %d iterations",
                metrics.total_collisions,
                metrics.iterations,
            )
        return metrics

    def _push_apart(self, a: Node, b: Node, vector: Tuple[float, float]) -> Tuple[float, float]:
        """
        Share the separating vector between ``a`` and ``b``.

        Returns:
            The distances actually moved by a and b.
        """
        if a.fixed:
            share_a, share_b = 0.0, 1.0
        elif b.fixed:
            share_a, share_b = 1.0, 0.0
        else:
            weight_a = a.effective_weight
            weight_b = b.effective_weight
            total = weight_a + weight_b
            # Heavier nodes move less
            share_a = weight_b / total
            share_b = weight_a / total

        dx, dy = vector
        length = abs(dx) + abs(dy)
        unit_x = dx / length
        unit_y = dy / length

        push = max(length * SAFETY_FACTOR, length + MIN_SEPARATION)
        move_a = min(push * share_a, MAX_MOVE_PER_ITERATION)
        move_b = min(push * share_b, MAX_MOVE_PER_ITERATION)

        a.x += unit_x * move_a
        a.y += unit_y * move_a
        b.x -= unit_x * move_b
        b.y -= unit_y * move_b
        return move_a, move_b

    def _count_overlapping(self, pairs: List[Tuple[Node, Node]]) -> int:
        return sum(
            1
            for a, b in pairs
            if a.inflated_bounds(self.padding).overlaps(b.inflated_bounds(self.padding))
        )
