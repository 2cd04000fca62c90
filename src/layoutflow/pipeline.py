"""
Main layout pipeline module.

Combines leveling, positioning, collision resolution, smoothing and edge
routing to turn a plain graph of sized boxes into positions and polylines.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Union

from .anchors import AnchorAllocator
from .cancellation import CancellationToken, check_cancelled
from .collision import CollisionResolver
from .config import LayoutConfig
from .edge_routing import EdgeRouter
from .layout import TopologyResult, compute_topology
from .metrics import LayoutMetrics, MetricsCollector, measure_layout
from .models import Edge, Node
from .positioning import PositionResolver
from .stability import (
    LayoutHistoryStore,
    StabilityManager,
    calculate_stability_metrics,
    create_diagram_hash,
)
from .tracer import LayoutTrace

logger = logging.getLogger(__name__)


@dataclass
class LayoutOutcome:
    """
    Result of a layout run.

    Attributes:
        nodes: New node list with positions filled in.
        edges: New edge list with waypoints and type filled in (edges with
            unknown endpoints keep ``waypoints=None``).
        metrics: What the run measured.
        topology: Levels, columns, roots and back edges.
    """

    nodes: List[Node]
    edges: List[Edge]
    metrics: LayoutMetrics
    topology: TopologyResult = field(default_factory=TopologyResult)

    def node(self, node_id: str) -> Node:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def edge(self, edge_id: str) -> Edge:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        raise KeyError(edge_id)


class LayoutPipeline:
    """
    Lay out diagrams.

    A pipeline keeps the position history of every diagram it has laid out
    (for smoothing) and the metrics of every run. Pass a shared
    LayoutHistoryStore or MetricsCollector to reuse them across pipelines.

    Example:
        >>> pipeline = LayoutPipeline(LayoutConfig(smoothing_mode="interactive"))
        >>> outcome = pipeline.run(
        ...     [Node("A", 120, 60), Node("B", 120, 60)],
        ...     [Edge("e1", "A", "B")],
        ...     diagram_id="flow-1",
        ... )
        >>> outcome.node("B").y
        200.0
    """

    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        history: Optional[LayoutHistoryStore] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize the layout pipeline.

        Args:
            config: Layout options; defaults are used if omitted.
            history: Position history used for smoothing.
            metrics: Collector that records every run.
        """
        self.config = config if config is not None else LayoutConfig()
        self.stability = StabilityManager(history)
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self._trace: Optional[LayoutTrace] = None

    @property
    def history(self) -> LayoutHistoryStore:
        return self.stability.history

    def run(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        diagram_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        debug: bool = False,
    ) -> LayoutOutcome:
        """
        Lay out a graph.

        The given nodes and edges are not modified; the outcome holds new
        copies. Graph defects (no root, cycles, unknown endpoints, blocked
        routes) degrade the result and are reported in the metrics instead
        of raising.

        Args:
            nodes: Nodes with id and size; x/y are kept only for fixed nodes.
            edges: Edges between node ids.
            diagram_id: Identity for history and metrics (config default if omitted).
            cancel_token: Optional token; cancelling it raises LayoutCancelled.
            debug: Record a LayoutTrace, retrievable with get_trace().

        Returns:
            LayoutOutcome with positioned nodes, routed edges and metrics.
        """
        config = self.config
        diagram_id = diagram_id or config.diagram_id
        work_nodes = [replace(node) for node in nodes]
        work_edges = [
            replace(edge, waypoints=list(edge.waypoints) if edge.waypoints else None)
            for edge in edges
        ]

        trace = LayoutTrace(diagram_id=diagram_id) if debug else None
        self._trace = trace
        metrics = LayoutMetrics(
            diagram_id=diagram_id,
            node_count=len(work_nodes),
            edge_count=len(work_edges),
        )
        started = time.perf_counter()

        # Levels, columns and positions
        with self._timed(metrics, "positioning"):
            topology = compute_topology(work_nodes, work_edges, cancel_token)
            strategy = PositionResolver(config).apply(work_nodes, topology)
        metrics.strategy = strategy
        metrics.warnings.extend(topology.warnings)
        if topology.used_fallback_root or topology.skipped_edges:
            metrics.degraded = True
        if trace is not None:
            trace.strategy = strategy
            trace.add_stage(
                "topology",
                {
                    "levels": topology.levels,
                    "roots": topology.roots,
                    "back_edges": sorted(topology.back_edges),
                    "skipped_edges": topology.skipped_edges,
                },
            )
            trace.add_stage("positions", {"strategy": strategy}, work_nodes)
        self._debug_snapshot(debug, diagram_id, "post-leveling", work_nodes)
        check_cancelled(cancel_token)

        # Collision
        resolver = CollisionResolver(config.padding, config.max_iterations)
        with self._timed(metrics, "collision"):
            metrics.collision = resolver.resolve(work_nodes, cancel_token)
        if not metrics.collision.converged:
            metrics.degraded = True
            metrics.warnings.append(
                f"collision resolution did not converge "
                f"({metrics.collision.residual_collisions} overlapping pairs remain)"
            )
        if trace is not None:
            trace.add_stage("collision", _as_data(metrics.collision), work_nodes)
        self._debug_snapshot(debug, diagram_id, "post-collision", work_nodes)
        check_cancelled(cancel_token)

        # Stability
        with self._timed(metrics, "stability"):
            previous = self.stability.previous_snapshot(diagram_id)
            metrics.structural_change = self.stability.detect_structural_change(
                diagram_id, create_diagram_hash(work_nodes, work_edges)
            )
            blended = self.stability.apply_smoothing(diagram_id, work_nodes, config.smoothing)
            if blended and config.settle_after_smoothing:
                metrics.settle_collision = resolver.resolve(work_nodes, cancel_token)
                if not metrics.settle_collision.converged:
                    metrics.degraded = True
                    metrics.warnings.append("nodes still overlap after smoothing")
            metrics.stability = calculate_stability_metrics(previous, work_nodes)
            metrics.stability_index = metrics.stability.stability_index
        if trace is not None:
            trace.add_stage(
                "stability",
                {
                    "mode": config.smoothing.mode,
                    "alpha": config.smoothing.alpha,
                    "blended_nodes": blended,
                    "structural_change": metrics.structural_change,
                    "stability_index": metrics.stability_index,
                },
                work_nodes,
            )
        self._debug_snapshot(debug, diagram_id, "post-stability", work_nodes)
        check_cancelled(cancel_token)

        # Routing
        router = EdgeRouter(
            cell_size=config.grid_cell_size,
            clearance=config.clearance,
            max_expansions=config.max_expansions,
            anchors=AnchorAllocator(config.anchors_per_side, config.anchor_margin),
        )
        with self._timed(metrics, "routing"):
            metrics.routing = router.route_edges(work_nodes, work_edges, cancel_token)
        if metrics.routing.fallback_edges:
            metrics.degraded = True
            metrics.warnings.append(
                f"fallback routes used for edges {metrics.routing.fallback_edges}"
            )
        if trace is not None:
            trace.add_stage("routing", _as_data(metrics.routing), work_nodes)
        self._debug_snapshot(debug, diagram_id, "post-routing", work_nodes)

        self.stability.save_snapshot(diagram_id, work_nodes, work_edges)

        (
            metrics.overlap_area,
            metrics.num_crossings,
            metrics.mean_edge_length,
            metrics.node_spacing,
        ) = measure_layout(work_nodes, work_edges, config.padding)
        metrics.total_time_ms = (time.perf_counter() - started) * 1000.0
        metrics.timestamp = time.time()
        self.metrics.record(metrics)
        self._debug_snapshot(debug, diagram_id, "final", work_nodes, {"issues": metrics.issues})

        logger.info(
            "Laid out %r: %d nodes, %d edges (%s%s)",
            diagram_id,
            len(work_nodes),
            len(work_edges),
            strategy,
            ", degraded" if metrics.degraded else "",
        )
        return LayoutOutcome(work_nodes, work_edges, metrics, topology)

    def get_trace(self) -> Optional[LayoutTrace]:
        """Trace of the last run made with ``debug=True``, else None."""
        return self._trace

    @contextmanager
    def _timed(self, metrics: LayoutMetrics, phase: str) -> Iterator[None]:
        """Time a phase into ``metrics``; the timer is stopped even if the phase raises."""
        name = f"{metrics.diagram_id}/{phase}"
        self.metrics.start_timer(name)
        try:
            yield
        finally:
            metrics.phase_times_ms[phase] = self.metrics.stop_timer(name) or 0.0

    def _debug_snapshot(
        self,
        debug: bool,
        diagram_id: str,
        phase: str,
        nodes: Sequence[Node],
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if debug:
            self.metrics.capture_debug_snapshot(diagram_id, phase, nodes, dict(data or {}))


def _as_data(value: Any) -> dict:
    return dict(vars(value))


def compute_layout(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    config: Optional[Union[LayoutConfig, Mapping[str, Any]]] = None,
    **kwargs: Any,
) -> LayoutOutcome:
    """
    Lay out a graph once with a fresh pipeline.

    Args:
        nodes: Nodes to position.
        edges: Edges to route.
        config: LayoutConfig, or a mapping of options for LayoutConfig.from_dict.
        **kwargs: Passed to LayoutPipeline.run (diagram_id, cancel_token, debug).

    Returns:
        LayoutOutcome of the run.
    """
    if config is None or isinstance(config, LayoutConfig):
        layout_config = config
    else:
        layout_config = LayoutConfig.from_dict(config)
    return LayoutPipeline(layout_config).run(nodes, edges, **kwargs)
