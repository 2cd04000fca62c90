"""
Layout quality metrics.

MetricsCollector wraps pipeline runs and records what each run produced:
phase timings, residual overlap, edge crossings, edge length, node spacing
and stability. It flags suspicious results (logged at WARNING, never
raised) and keeps a bounded rolling history per diagram from which it
derives trend reports.

It is purely observational: nothing here changes node or edge geometry.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from .collision import CollisionMetrics
from .edge_routing import RoutingMetrics
from .geometry import count_polyline_crossings, node_spacing, overlap_area, polyline_length
from .models import Edge, Node, NodeSpacing
from .stability import StabilityMetrics

logger = logging.getLogger(__name__)

# =============================================================================
# METRICS CONFIGURATION
# =============================================================================

# Runs kept per diagram
MAX_HISTORY = 100

# Debug geometry snapshots kept per diagram
MAX_DEBUG_SNAPSHOTS = 10

# --- Issue thresholds ---

SLOW_LAYOUT_MS = 5000.0
LOW_STABILITY_INDEX = 0.5
# Crossings above this share of the edge count are flagged
CROSSING_RATIO_LIMIT = 0.5

# --- Trends ---

# Relative change between history halves below which a metric is stable
TREND_THRESHOLD = 0.10

# Window for get_stats averages
STATS_WINDOW = 10

# =============================================================================


class Trend(Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


@dataclass
class LayoutMetrics:
    """
    Everything measured about one pipeline run.

    Attributes:
        diagram_id: Diagram identity the run was made for.
        timestamp: Wall-clock time the run finished.
        total_time_ms: Duration of the whole run.
        phase_times_ms: Duration per phase ("positioning", "collision",
            "stability", "routing").
        node_count: Nodes laid out.
        edge_count: Edges given.
        overlap_area: Summed pairwise inflated-bounds intersection area;
            0 after a successful collision pass.
        num_crossings: Crossing pairs among routed edges.
        mean_edge_length: Mean polyline length of routed edges.
        node_spacing: Pairwise center distance statistics.
        stability_index: 1 means nothing moved since the previous run.
        strategy: Placement strategy used.
        structural_change: Nodes or connections changed since the previous run.
        collision: Collision resolver metrics for the main pass.
        settle_collision: Metrics of the pass that re-separates nodes after
            smoothing, if it ran.
        routing: Edge router metrics.
        stability: Displacement relative to the previous run.
        success: False only if the run produced no usable result.
        degraded: True if any fallback was taken.
        warnings: Degradations encountered during the run.
        issues: Quality flags raised by the collector.
    """

    diagram_id: str = "default"
    timestamp: float = 0.0
    total_time_ms: float = 0.0
    phase_times_ms: Dict[str, float] = field(default_factory=dict)
    node_count: int = 0
    edge_count: int = 0
    overlap_area: float = 0.0
    num_crossings: int = 0
    mean_edge_length: float = 0.0
    node_spacing: NodeSpacing = field(default_factory=NodeSpacing)
    stability_index: float = 1.0
    strategy: str = "hierarchical"
    structural_change: bool = False
    collision: Optional[CollisionMetrics] = None
    settle_collision: Optional[CollisionMetrics] = None
    routing: Optional[RoutingMetrics] = None
    stability: Optional[StabilityMetrics] = None
    success: bool = True
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


@dataclass
class PerformanceReport:
    """Averages and trends over a run history."""

    run_count: int = 0
    avg_time_ms: float = 0.0
    avg_stability: float = 0.0
    avg_overlap: float = 0.0
    success_rate: float = 0.0
    time_trend: Trend = Trend.STABLE
    stability_trend: Trend = Trend.STABLE
    overlap_trend: Trend = Trend.STABLE


@dataclass
class DebugSnapshot:
    """Node geometry at one phase of a run."""

    phase: str
    timestamp: float
    nodes: Dict[str, Tuple[float, float, float, float]]  # id -> (x, y, width, height)
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectorStats:
    total_layouts: int
    avg_time_ms: float
    success_rate: float
    diagrams_with_snapshots: int


def measure_layout(
    nodes: Sequence[Node], edges: Sequence[Edge], padding: float
) -> Tuple[float, int, float, NodeSpacing]:
    """
    Geometry measurements of a finished layout.

    Returns:
        (overlap area, crossing count, mean edge length, node spacing)
    """
    routed = [(edge, edge.waypoints) for edge in edges if edge.waypoints]
    lengths = [polyline_length(points) for _, points in routed]
    mean_length = sum(lengths) / len(lengths) if lengths else 0.0
    return (
        overlap_area(nodes, padding),
        count_polyline_crossings(routed),
        mean_length,
        node_spacing(nodes),
    )


def compute_trend(values: Sequence[float], higher_is_better: bool) -> Trend:
    """
    Compare the mean of the first half of ``values`` to the second half.

    A relative change under TREND_THRESHOLD is stable. When the first half
    averages 0 the direction of change alone decides.
    """
    if len(values) < 2:
        return Trend.STABLE
    half = len(values) // 2
    old = sum(values[:half]) / half
    new = sum(values[half:]) / (len(values) - half)

    if old == 0:
        if new == 0:
            return Trend.STABLE
        increased = new > 0
    else:
        change = (new - old) / abs(old)
        if abs(change) < TREND_THRESHOLD:
            return Trend.STABLE
        increased = change > 0

    if increased == higher_is_better:
        return Trend.IMPROVING
    return Trend.DEGRADING


class MetricsCollector:
    """
    Records layout runs per diagram.

    Attributes:
        max_history: Runs kept per diagram.
        max_debug_snapshots: Debug snapshots kept per diagram.
    """

    def __init__(
        self,
        max_history: int = MAX_HISTORY,
        max_debug_snapshots: int = MAX_DEBUG_SNAPSHOTS,
    ):
        self.max_history = max_history
        self.max_debug_snapshots = max_debug_snapshots
        self._history: Dict[str, Deque[LayoutMetrics]] = {}
        self._snapshots: Dict[str, Deque[DebugSnapshot]] = {}
        self._timers: Dict[str, float] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def start_timer(self, name: str) -> None:
        self._timers[name] = time.perf_counter()

    def stop_timer(self, name: str) -> Optional[float]:
        """
        Stop a named timer.

        Returns:
            Elapsed milliseconds, or None if the timer was never started.
        """
        started = self._timers.pop(name, None)
        if started is None:
            logger.warning("Timer %r was not started", name)
            return None
        return (time.perf_counter() - started) * 1000.0

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def flag_issues(self, metrics: LayoutMetrics) -> List[str]:
        """Quality problems in a run; each is also logged at WARNING."""
        issues = []
        if metrics.overlap_area > 0:
            issues.append(f"nodes overlap (area {metrics.overlap_area:.1f})")
        if metrics.total_time_ms > SLOW_LAYOUT_MS:
            issues.append(f"slow layout ({metrics.total_time_ms:.0f} ms)")
        if metrics.stability_index < LOW_STABILITY_INDEX:
            issues.append(f"low stability index ({metrics.stability_index:.2f})")
        if metrics.edge_count and metrics.num_crossings > CROSSING_RATIO_LIMIT * metrics.edge_count:
            issues.append(
                f"many edge crossings ({metrics.num_crossings} for {metrics.edge_count} edges)"
            )
        if not metrics.success:
            issues.append("layout failed")

        for issue in issues:
            logger.warning("Layout %r: %s", metrics.diagram_id, issue)
        return issues

    def record(self, metrics: LayoutMetrics) -> LayoutMetrics:
        """Flag issues on ``metrics`` and append it to its diagram's history."""
        metrics.issues = self.flag_issues(metrics)
        with self._lock:
            history = self._history.get(metrics.diagram_id)
            if history is None:
                history = deque(maxlen=self.max_history)
                self._history[metrics.diagram_id] = history
            history.append(metrics)
        logger.info(
            "Layout %r: %d nodes, %d edges in %.1f ms (overlap %.1f, crossings %d, stability %.2f)",
            metrics.diagram_id,
            metrics.node_count,
            metrics.edge_count,
            metrics.total_time_ms,
            metrics.overlap_area,
            metrics.num_crossings,
            metrics.stability_index,
        )
        return metrics

    def get_history(self, diagram_id: Optional[str] = None) -> List[LayoutMetrics]:
        """Recorded runs for one diagram, or all runs ordered by time."""
        with self._lock:
            if diagram_id is not None:
                return list(self._history.get(diagram_id, ()))
            runs = [m for history in self._history.values() for m in history]
        return sorted(runs, key=lambda m: m.timestamp)

    def performance_report(self, diagram_id: Optional[str] = None) -> PerformanceReport:
        runs = self.get_history(diagram_id)
        if not runs:
            return PerformanceReport()

        times = [m.total_time_ms for m in runs]
        stabilities = [m.stability_index for m in runs]
        overlaps = [m.overlap_area for m in runs]
        return PerformanceReport(
            run_count=len(runs),
            avg_time_ms=sum(times) / len(runs),
            avg_stability=sum(stabilities) / len(runs),
            avg_overlap=sum(overlaps) / len(runs),
            success_rate=sum(1 for m in runs if m.success) / len(runs),
            time_trend=compute_trend(times, higher_is_better=False),
            stability_trend=compute_trend(stabilities, higher_is_better=True),
            overlap_trend=compute_trend(overlaps, higher_is_better=False),
        )

    # -------------------------------------------------------------------------
    # Debug snapshots
    # -------------------------------------------------------------------------

    def capture_debug_snapshot(
        self,
        diagram_id: str,
        phase: str,
        nodes: Sequence[Node],
        data: Optional[Dict[str, Any]] = None,
    ) -> DebugSnapshot:
        snapshot = DebugSnapshot(
            phase=phase,
            timestamp=time.time(),
            nodes={node.id: (node.x, node.y, node.width, node.height) for node in nodes},
            data=dict(data or {}),
        )
        with self._lock:
            snapshots = self._snapshots.get(diagram_id)
            if snapshots is None:
                snapshots = deque(maxlen=self.max_debug_snapshots)
                self._snapshots[diagram_id] = snapshots
            snapshots.append(snapshot)
        return snapshot

    def export_debug_snapshots(self, diagram_id: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            keys = [diagram_id] if diagram_id is not None else list(self._snapshots)
            return {
                key: [asdict(s) for s in self._snapshots.get(key, ())]
                for key in keys
            }

    # -------------------------------------------------------------------------
    # Export / housekeeping
    # -------------------------------------------------------------------------

    def export_metrics(self, diagram_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Recorded runs as plain dicts."""
        return [_to_plain(asdict(m)) for m in self.get_history(diagram_id)]

    def clear_data(self, diagram_id: Optional[str] = None) -> None:
        with self._lock:
            if diagram_id is None:
                self._history.clear()
                self._snapshots.clear()
            else:
                self._history.pop(diagram_id, None)
                self._snapshots.pop(diagram_id, None)

    def get_stats(self) -> CollectorStats:
        runs = self.get_history()
        recent = runs[-STATS_WINDOW:]
        with self._lock:
            with_snapshots = sum(1 for s in self._snapshots.values() if s)
        return CollectorStats(
            total_layouts=len(runs),
            avg_time_ms=sum(m.total_time_ms for m in recent) / len(recent) if recent else 0.0,
            success_rate=sum(1 for m in recent if m.success) / len(recent) if recent else 0.0,
            diagrams_with_snapshots=with_snapshots,
        )


def _to_plain(value: Any) -> Any:
    """Replace Enum members in nested dicts/lists with their values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value
