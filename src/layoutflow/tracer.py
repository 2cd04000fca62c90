"""
Debug tracing infrastructure for layoutflow.

This module provides data structures for capturing detailed traces of the
layout pipeline. When debug mode is enabled, the pipeline records every
stage of processing together with the node geometry at that point, and
every node move made by collision resolution and smoothing.

This is primarily useful for:
1. Debugging layout issues (understanding why a node ended up where it did)
2. Understanding the pipeline flow (seeing intermediate states)
3. Writing targeted tests (verifying specific layout decisions)

Usage:
    >>> pipeline = LayoutPipeline()
    >>> outcome = pipeline.run(nodes, edges, debug=True)
    >>> trace = pipeline.get_trace()
    >>> print(trace.summary())
    >>> trace.dump_to_file("layout_trace.txt")
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import Node

Geometry = Dict[str, Tuple[float, float, float, float]]


@dataclass
class NodeMove:
    """
    Record of one node changing position between two stages.

    Attributes:
        node_id: The node that moved
        stage: Stage at whose end the move was observed
        old: Position before the stage
        new: Position after the stage
    """

    node_id: str
    stage: str
    old: Tuple[float, float]
    new: Tuple[float, float]

    @property
    def distance(self) -> float:
        return ((self.new[0] - self.old[0]) ** 2 + (self.new[1] - self.old[1]) ** 2) ** 0.5

    def __str__(self) -> str:
        return (
            f"{self.node_id}: ({self.old[0]:.1f},{self.old[1]:.1f}) -> "
            f"({self.new[0]:.1f},{self.new[1]:.1f}) [{self.stage}]"
        )


@dataclass
class PipelineStage:
    """
    Snapshot of state at a pipeline stage.

    The layout pipeline has these stages:
    1. topology - Levels, columns, roots and back edges
    2. positions - Coordinates from levels and columns (or the circle)
    3. collision - After collision resolution
    4. stability - After smoothing toward the previous run
    5. routing - After anchors and waypoints are assigned

    Attributes:
        name: Name of this pipeline stage
        data: Dictionary of relevant data at this stage
        geometry: Node id -> (x, y, width, height) at this stage
    """

    name: str
    data: Dict[str, Any]
    geometry: Optional[Geometry] = None

    def __str__(self) -> str:
        lines = [f"=== Stage: {self.name} ==="]
        for key, value in self.data.items():
            # Truncate long values
            str_val = str(value)
            if len(str_val) > 100:
                str_val = str_val[:100] + "..."
            lines.append(f"  {key}: {str_val}")
        if self.geometry:
            lines.append("  Nodes (first 15):")
            for node_id, (x, y, w, h) in list(self.geometry.items())[:15]:
                lines.append(f"    {node_id}: center=({x:.1f},{y:.1f}) size={w:g}x{h:g}")
        return "\n".join(lines)


@dataclass
class LayoutTrace:
    """
    Complete trace of a layout run.

    Attributes:
        stages: List of pipeline stages with their data
        moves: Node moves observed between consecutive stages
        diagram_id: Diagram the run was made for
        strategy: Placement strategy used
    """

    stages: List[PipelineStage] = field(default_factory=list)
    moves: List[NodeMove] = field(default_factory=list)
    diagram_id: str = ""
    strategy: str = ""

    def add_stage(
        self,
        name: str,
        data: Dict[str, Any],
        nodes: Optional[Sequence[Node]] = None,
    ) -> None:
        """
        Add a pipeline stage snapshot.

        When nodes are given, their geometry is captured and any node whose
        position differs from the previous captured stage is recorded as a
        NodeMove.

        Args:
            name: Name of the stage (e.g., "collision")
            data: Dictionary of relevant data at this stage
            nodes: Optional nodes to snapshot
        """
        geometry = None
        if nodes is not None:
            geometry = {node.id: (node.x, node.y, node.width, node.height) for node in nodes}
            previous = self._last_geometry()
            if previous is not None:
                for node_id, (x, y, _, _) in geometry.items():
                    if node_id in previous:
                        old_x, old_y = previous[node_id][0], previous[node_id][1]
                        if (old_x, old_y) != (x, y):
                            self.moves.append(NodeMove(node_id, name, (old_x, old_y), (x, y)))

        self.stages.append(PipelineStage(name, data.copy(), geometry))

    def _last_geometry(self) -> Optional[Geometry]:
        for stage in reversed(self.stages):
            if stage.geometry is not None:
                return stage.geometry
        return None

    def get_stage(self, name: str) -> Optional[PipelineStage]:
        """Get a specific pipeline stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def get_geometry_at_stage(self, name: str) -> Optional[Geometry]:
        stage = self.get_stage(name)
        if stage and stage.geometry:
            return stage.geometry
        return None

    def get_moves_for(self, node_id: str) -> List[NodeMove]:
        return [m for m in self.moves if m.node_id == node_id]

    def get_moves_by_stage(self, stage_name: str) -> List[NodeMove]:
        return [m for m in self.moves if m.stage == stage_name]

    def summary(self) -> str:
        """
        Generate a human-readable summary of the trace.

        Returns a string with:
        - Diagram id and strategy
        - Pipeline stages overview
        - Node move statistics
        """
        lines = [
            "=" * 60,
            "LAYOUT TRACE SUMMARY",
            "=" * 60,
            "",
            f"Diagram: {self.diagram_id}",
            f"Strategy: {self.strategy}",
            "",
            f"Pipeline stages: {len(self.stages)}",
        ]

        for stage in self.stages:
            has_geometry = "+" if stage.geometry else "-"
            lines.append(f"  [{has_geometry}] {stage.name}")

        lines.extend(["", f"Total node moves: {len(self.moves)}", ""])

        # Count by stage
        stage_counts: Dict[str, int] = {}
        for m in self.moves:
            stage_counts[m.stage] = stage_counts.get(m.stage, 0) + 1

        lines.append("Moves by stage:")
        for stage_name, count in sorted(stage_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {stage_name}: {count}")

        return "\n".join(lines)

    def dump(self) -> str:
        """
        Generate a complete human-readable dump of the trace.

        This includes all stages with their full data and all node moves.
        """
        lines = [self.summary(), "", "=" * 60, "DETAILED TRACE", "=" * 60, ""]

        lines.append("PIPELINE STAGES:")
        lines.append("-" * 40)
        for stage in self.stages:
            lines.append(str(stage))
            lines.append("")

        lines.append("NODE MOVES:")
        lines.append("-" * 40)
        for m in self.moves:
            lines.append(str(m))

        return "\n".join(lines)

    def dump_to_file(self, filename: str) -> None:
        """Write the complete trace dump to a file."""
        with open(filename, "w", encoding="utf-8") as f:
            f.write(self.dump())
