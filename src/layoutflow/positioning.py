"""
Position calculation for diagram layout.

This module maps the abstract topology onto the plane:
- (level, column) to absolute center coordinates for the hierarchical strategy
- A circular pre-pass that places small graphs evenly on a circle
- Strategy selection between the two

The PositionResolver class is used by the LayoutPipeline to write positions
into its working copy of the nodes. Fixed nodes keep their coordinates.
"""

import logging
import math
from typing import Dict, List, Tuple

from .config import LayoutConfig
from .layout import TopologyResult
from .models import Node

logger = logging.getLogger(__name__)

# Radius of the circular layout is CIRCLE_BASE_RADIUS + CIRCLE_RADIUS_PER_NODE * n
CIRCLE_BASE_RADIUS = 200.0
CIRCLE_RADIUS_PER_NODE = 15.0


def resolve_position(level: int, column: int, config: LayoutConfig) -> Tuple[float, float]:
    """
    Center coordinates for a (level, column) cell.

    Args:
        level: Topological level (row).
        column: Signed column within the level.
        config: Spacing configuration.

    Returns:
        (x, y) center of the node.
    """
    x = config.start_x + column * config.column_spacing
    y = config.start_y + level * config.level_spacing
    return x, y


def circular_positions(node_ids: List[str], config: LayoutConfig) -> Dict[str, Tuple[float, float]]:
    """
    Place nodes evenly on a circle.

    The first node sits at the top of the circle, at (start_x, start_y); the
    rest follow clockwise in input order.
    """
    count = len(node_ids)
    if count == 0:
        return {}
    radius = CIRCLE_BASE_RADIUS + CIRCLE_RADIUS_PER_NODE * count
    center_x = config.start_x
    center_y = config.start_y + radius

    positions = {}
    for index, node_id in enumerate(node_ids):
        angle = -math.pi / 2 + 2 * math.pi * index / count
        positions[node_id] = (
            center_x + radius * math.cos(angle),
            center_y + radius * math.sin(angle),
        )
    return positions


def choose_strategy(config: LayoutConfig, node_count: int) -> str:
    """Resolve ``auto`` to a concrete strategy by node count."""
    if config.strategy != "auto":
        return config.strategy
    if node_count <= config.circular_max_nodes:
        return "circular"
    return "hierarchical"


class PositionResolver:
    """
    Writes center coordinates into nodes.

    Attributes:
        config: Spacing and strategy configuration.
    """

    def __init__(self, config: LayoutConfig):
        self.config = config

    def apply(self, nodes: List[Node], topology: TopologyResult) -> str:
        """
        Position every non-fixed node.

        Args:
            nodes: Working copies to write into.
            topology: Levels and columns from the ColumnBalancer.

        Returns:
            The strategy actually used ("hierarchical" or "circular").
        """
        strategy = choose_strategy(self.config, len(nodes))

        if strategy == "circular":
            positions = circular_positions([node.id for node in nodes], self.config)
        else:
            positions = {
                node_id: resolve_position(topo.level, topo.column, self.config)
                for node_id, topo in topology.nodes.items()
            }

        for node in nodes:
            if node.fixed or node.id not in positions:
                continue
            node.x, node.y = positions[node.id]

        logger.info("Positioned %d nodes using %s strategy", len(nodes), strategy)
        return strategy
