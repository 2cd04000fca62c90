"""
Layout stability across re-layouts.

Re-running the layout after a small edit should not make the diagram jump.
StabilityManager keeps a bounded history of node positions per diagram
(in a LayoutHistoryStore) and blends each new result toward the last one:

    blended = previous + (new - previous) * alpha

with alpha and an optional displacement cap taken from the smoothing mode.
Nodes that are new or fixed keep their freshly computed position.

Usage:
    >>> store = LayoutHistoryStore()
    >>> manager = StabilityManager(store)
    >>> manager.apply_smoothing("diagram-1", nodes, SMOOTHING_MODES["interactive"])
    >>> manager.save_snapshot("diagram-1", nodes, edges)
"""

import hashlib
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from .config import SmoothingOptions
from .models import Edge, Node

logger = logging.getLogger(__name__)

# =============================================================================
# STABILITY CONFIGURATION
# =============================================================================

# Snapshots kept per diagram; the oldest is evicted first
MAX_HISTORY = 10

# A node moving further than this counts as a significant move
STABILITY_THRESHOLD = 50.0

# Mean displacement at which the stability index reaches 0
REFERENCE_DISTANCE = 200.0

# Share of nodes that must move significantly for a significant change
SIGNIFICANT_CHANGE_RATIO = 0.3

# Pull toward previous positions per optimize_for_stability iteration
ATTRACTION_FACTOR = 0.1
OPTIMIZE_ITERATIONS = 5

# =============================================================================


@dataclass
class PositionSnapshot:
    """Node positions after one completed layout run."""

    timestamp: float
    positions: Dict[str, Tuple[float, float]]
    diagram_hash: Optional[str] = None
    node_count: int = 0
    edge_count: int = 0


@dataclass
class StabilityMetrics:
    """Displacement of the current positions relative to a snapshot."""

    total_displacement: float = 0.0
    max_displacement: float = 0.0
    mean_displacement: float = 0.0
    stability_index: float = 1.0
    changed_nodes: int = 0  # Moved beyond STABILITY_THRESHOLD, or new
    compared_nodes: int = 0  # Present in both


@dataclass
class HistoryStats:
    diagrams: int
    snapshots: int
    oldest_timestamp: Optional[float]


def create_diagram_hash(nodes: Sequence[Node], edges: Sequence[Edge]) -> str:
    """
    Structural fingerprint of a diagram.

    Built from the sorted node ids and the sorted ``source->target`` pairs,
    so it changes when nodes or connections are added or removed but not
    when nodes only move.
    """
    node_part = ",".join(sorted(node.id for node in nodes))
    edge_part = ",".join(sorted(f"{edge.source}->{edge.target}" for edge in edges))
    digest = hashlib.sha1(f"{node_part}|{edge_part}".encode("utf-8"))
    return digest.hexdigest()[:16]


def stability_index(mean_displacement: float) -> float:
    return max(0.0, 1.0 - mean_displacement / REFERENCE_DISTANCE)


def calculate_stability_metrics(
    previous: Optional[PositionSnapshot], nodes: Sequence[Node]
) -> StabilityMetrics:
    """
    Compare node positions against a snapshot.

    Nodes absent from the snapshot are counted as changed but contribute no
    displacement. With no snapshot every node is new and the index is 1.
    """
    if previous is None:
        return StabilityMetrics(changed_nodes=len(nodes))

    metrics = StabilityMetrics()
    for node in nodes:
        old = previous.positions.get(node.id)
        if old is None:
            metrics.changed_nodes += 1
            continue
        distance = math.hypot(node.x - old[0], node.y - old[1])
        metrics.compared_nodes += 1
        metrics.total_displacement += distance
        metrics.max_displacement = max(metrics.max_displacement, distance)
        if distance > STABILITY_THRESHOLD:
            metrics.changed_nodes += 1

    if metrics.compared_nodes:
        metrics.mean_displacement = metrics.total_displacement / metrics.compared_nodes
    metrics.stability_index = stability_index(metrics.mean_displacement)
    return metrics


class LayoutHistoryStore:
    """
    Per-diagram bounded snapshot history.

    Each diagram id has its own deque, so different diagrams never
    interfere. A lock guards the map for callers that lay out the same
    diagram from several threads.
    """

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self._histories: Dict[str, Deque[PositionSnapshot]] = {}
        self._lock = threading.Lock()

    def append(self, diagram_id: str, snapshot: PositionSnapshot) -> None:
        with self._lock:
            history = self._histories.get(diagram_id)
            if history is None:
                history = deque(maxlen=self.max_history)
                self._histories[diagram_id] = history
            history.append(snapshot)

    def latest(self, diagram_id: str) -> Optional[PositionSnapshot]:
        with self._lock:
            history = self._histories.get(diagram_id)
            return history[-1] if history else None

    def history(self, diagram_id: str) -> List[PositionSnapshot]:
        with self._lock:
            return list(self._histories.get(diagram_id, ()))

    def clear(self, diagram_id: Optional[str] = None) -> None:
        """Drop one diagram's history, or all of it."""
        with self._lock:
            if diagram_id is None:
                self._histories.clear()
            else:
                self._histories.pop(diagram_id, None)

    def stats(self) -> HistoryStats:
        with self._lock:
            snapshots = [s for history in self._histories.values() for s in history]
            return HistoryStats(
                diagrams=len(self._histories),
                snapshots=len(snapshots),
                oldest_timestamp=min((s.timestamp for s in snapshots), default=None),
            )


class StabilityManager:
    """
    Blends new layouts toward previous ones.

    Attributes:
        history: Snapshot store; a private one is created if none is given.
    """

    def __init__(self, history: Optional[LayoutHistoryStore] = None):
        self.history = history if history is not None else LayoutHistoryStore()

    def apply_smoothing(
        self, diagram_id: str, nodes: List[Node], options: SmoothingOptions
    ) -> int:
        """
        Move nodes toward their last recorded positions, in place.

        Args:
            diagram_id: Diagram identity.
            nodes: Freshly positioned nodes.
            options: Blend factor and displacement cap.

        Returns:
            Number of nodes that were blended.
        """
        previous = self.history.latest(diagram_id)
        if previous is None:
            return 0

        blended = 0
        for node in nodes:
            old = previous.positions.get(node.id)
            if node.fixed or old is None:
                continue
            dx = (node.x - old[0]) * options.alpha
            dy = (node.y - old[1]) * options.alpha
            distance = math.hypot(dx, dy)
            cap = options.max_displacement
            if cap is not None and distance > cap:
                # Keep direction, shorten to the cap
                scale = cap / distance
                dx *= scale
                dy *= scale
            logger.debug(
                "Smoothing %r: (%.1f, %.1f) -> (%.1f, %.1f)",
                node.id,
                node.x,
                node.y,
                old[0] + dx,
                old[1] + dy,
            )
            node.x = old[0] + dx
            node.y = old[1] + dy
            blended += 1

        logger.info(
            "Smoothed %d/%d nodes for %r (mode %s, alpha %.2f)",
            blended,
            len(nodes),
            diagram_id,
            options.mode,
            options.alpha,
        )
        return blended

    def save_snapshot(
        self, diagram_id: str, nodes: Sequence[Node], edges: Sequence[Edge]
    ) -> PositionSnapshot:
        snapshot = PositionSnapshot(
            timestamp=time.time(),
            positions={node.id: (node.x, node.y) for node in nodes},
            diagram_hash=create_diagram_hash(nodes, edges),
            node_count=len(nodes),
            edge_count=len(edges),
        )
        self.history.append(diagram_id, snapshot)
        return snapshot

    def previous_snapshot(self, diagram_id: str) -> Optional[PositionSnapshot]:
        return self.history.latest(diagram_id)

    def detect_structural_change(self, diagram_id: str, diagram_hash: str) -> bool:
        """True if nodes or connections changed since the last run, or there is none."""
        previous = self.history.latest(diagram_id)
        if previous is None:
            return True
        return previous.diagram_hash != diagram_hash

    def calculate_stability_metrics(
        self, diagram_id: str, nodes: Sequence[Node]
    ) -> StabilityMetrics:
        return calculate_stability_metrics(self.history.latest(diagram_id), nodes)

    def has_significant_change(
        self,
        diagram_id: str,
        nodes: Sequence[Node],
        threshold: float = STABILITY_THRESHOLD,
    ) -> bool:
        """
        True when more than 30% of nodes are new or moved beyond ``threshold``.

        Always true without history.
        """
        previous = self.history.latest(diagram_id)
        if previous is None or not nodes:
            return previous is None

        changed = 0
        for node in nodes:
            old = previous.positions.get(node.id)
            if old is None or math.hypot(node.x - old[0], node.y - old[1]) > threshold:
                changed += 1
        return changed / len(nodes) > SIGNIFICANT_CHANGE_RATIO

    def optimize_for_stability(
        self,
        diagram_id: str,
        nodes: List[Node],
        max_iterations: int = OPTIMIZE_ITERATIONS,
    ) -> StabilityMetrics:
        """
        Pull nodes toward their previous positions, in place.

        Each iteration moves every non-fixed known node ATTRACTION_FACTOR of
        the way back. The positions with the best stability index seen are
        kept.

        Returns:
            Stability metrics of the kept positions.
        """
        previous = self.history.latest(diagram_id)
        best = calculate_stability_metrics(previous, nodes)
        if previous is None:
            return best

        best_positions = {node.id: (node.x, node.y) for node in nodes}
        for _ in range(max_iterations):
            for node in nodes:
                old = previous.positions.get(node.id)
                if node.fixed or old is None:
                    continue
                node.x += (old[0] - node.x) * ATTRACTION_FACTOR
                node.y += (old[1] - node.y) * ATTRACTION_FACTOR

            current = calculate_stability_metrics(previous, nodes)
            # Mean displacement breaks ties once the index has bottomed out at 0
            if (current.stability_index, -current.mean_displacement) > (
                best.stability_index,
                -best.mean_displacement,
            ):
                best = current
                best_positions = {node.id: (node.x, node.y) for node in nodes}

        for node in nodes:
            node.x, node.y = best_positions[node.id]
        return best

    def clear_history(self, diagram_id: Optional[str] = None) -> None:
        self.history.clear(diagram_id)

    def history_stats(self) -> HistoryStats:
        return self.history.stats()
