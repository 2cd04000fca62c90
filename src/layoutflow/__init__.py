"""
layoutflow - Automatic diagram layout and edge routing

Turns a plain graph of sized boxes into a collision-free, stable,
orthogonally routed 2D layout.

Example:
    >>> from layoutflow import Edge, Node, compute_layout
    >>> outcome = compute_layout(
    ...     [Node("A", 120, 60), Node("B", 120, 60), Node("C", 120, 60)],
    ...     [Edge("e1", "A", "B"), Edge("e2", "B", "C")],
    ... )
    >>> [(n.id, n.x, n.y) for n in outcome.nodes]
    [('A', 400.0, 80.0), ('B', 400.0, 200.0), ('C', 400.0, 320.0)]

Debug Mode Example:
    >>> pipeline = LayoutPipeline()
    >>> outcome = pipeline.run(nodes, edges, debug=True)
    >>> print(pipeline.get_trace().summary())
"""

import logging

from .anchors import AnchorAllocator
from .cancellation import CancellationToken, LayoutCancelled
from .collision import (
    CollisionMetrics,
    CollisionResolver,
    calculate_overlap_area,
    detect_collisions,
)
from .config import SMOOTHING_MODES, ConfigError, LayoutConfig, SmoothingOptions
from .edge_routing import EdgeRouter, RoutingGrid, RoutingMetrics
from .layout import ColumnBalancer, LevelAssigner, TopologyNode, TopologyResult
from .metrics import LayoutMetrics, MetricsCollector, PerformanceReport, Trend
from .models import AnchorPoint, AnchorSide, Bounds, Edge, EdgeType, Node, Point
from .pipeline import LayoutOutcome, LayoutPipeline, compute_layout
from .positioning import PositionResolver
from .stability import (
    LayoutHistoryStore,
    PositionSnapshot,
    StabilityManager,
    StabilityMetrics,
    create_diagram_hash,
)
from .tracer import LayoutTrace, NodeMove, PipelineStage

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Main API
    "LayoutPipeline",
    "LayoutOutcome",
    "compute_layout",
    # Models
    "Node",
    "Edge",
    "EdgeType",
    "Point",
    "Bounds",
    "AnchorPoint",
    "AnchorSide",
    # Configuration and errors
    "LayoutConfig",
    "SmoothingOptions",
    "SMOOTHING_MODES",
    "ConfigError",
    "CancellationToken",
    "LayoutCancelled",
    # Components
    "LevelAssigner",
    "ColumnBalancer",
    "TopologyNode",
    "TopologyResult",
    "PositionResolver",
    "CollisionResolver",
    "CollisionMetrics",
    "detect_collisions",
    "calculate_overlap_area",
    "AnchorAllocator",
    "EdgeRouter",
    "RoutingGrid",
    "RoutingMetrics",
    "StabilityManager",
    "StabilityMetrics",
    "LayoutHistoryStore",
    "PositionSnapshot",
    "create_diagram_hash",
    "MetricsCollector",
    "LayoutMetrics",
    "PerformanceReport",
    "Trend",
    # Debug/Tracing (for development and debugging)
    "LayoutTrace",
    "PipelineStage",
    "NodeMove",
]
