"""
Topology module using networkx for hierarchical leveling.

Uses networkx for:
- Graph representation
- Root detection (in-degree)

Back edges are found by a plain depth-first walk over the graph's
successors.

LevelAssigner gives every node a level (topological depth from the roots);
ColumnBalancer then gives every node a signed column within its level,
centered at 0 and ordered by the columns of its parents.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import networkx as nx

from .cancellation import CancellationToken, check_cancelled
from .models import Edge, Node

logger = logging.getLogger(__name__)


@dataclass
class TopologyNode:
    """A node's place in the hierarchy."""

    id: str
    level: int = 0
    column: int = 0  # Signed, 0-centered within the level
    children: List[str] = field(default_factory=list)
    parents: List[str] = field(default_factory=list)


@dataclass
class TopologyResult:
    """Result of leveling and column balancing."""

    nodes: Dict[str, TopologyNode] = field(default_factory=dict)
    levels: List[List[str]] = field(default_factory=list)  # Ids in column order
    roots: List[str] = field(default_factory=list)
    back_edges: Set[Tuple[str, str]] = field(default_factory=set)
    skipped_edges: List[str] = field(default_factory=list)
    used_fallback_root: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.back_edges)

    def level_of(self, node_id: str) -> int:
        return self.nodes[node_id].level

    def column_of(self, node_id: str) -> int:
        return self.nodes[node_id].column


class LevelAssigner:
    """
    Assigns topological levels, tolerant of cycles.

    Roots are nodes without incoming edges (self-loops do not count). With no
    such node the first node in input order becomes the root. Edges closing a
    cycle are found by a DFS from the roots and left out of level
    propagation. Levels then spread breadth-first from all roots at once; a
    node reached again along a longer path has its level raised and its
    children re-enqueued, so reconverging branches settle at their deepest
    parent.
    """

    def __init__(self):
        self.graph: nx.DiGraph = None
        self.back_edges: Set[Tuple[str, str]] = set()

    def assign(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        cancel_token: Optional[CancellationToken] = None,
    ) -> TopologyResult:
        """
        Compute levels for the given graph.

        Args:
            nodes: Nodes in input order.
            edges: Edges; ones that reference unknown nodes are skipped.
            cancel_token: Optional token checked while propagating levels.

        Returns:
            TopologyResult with levels set and all columns 0.
        """
        result = TopologyResult()
        self.graph = nx.DiGraph()
        self.graph.add_nodes_from(node.id for node in nodes)

        for edge in edges:
            if edge.source not in self.graph or edge.target not in self.graph:
                message = (
                    f"Skipping edge {edge.id!r}: unknown endpoint "
                    f"({edge.source!r} -> {edge.target!r})"
                )
                logger.warning(message)
                result.skipped_edges.append(edge.id)
                result.warnings.append(message)
                continue
            if edge.is_self_loop:
                continue
            self.graph.add_edge(edge.source, edge.target)

        for node_id in self.graph.nodes():
            result.nodes[node_id] = TopologyNode(
                id=node_id,
                children=list(self.graph.successors(node_id)),
                parents=list(self.graph.predecessors(node_id)),
            )

        if not nodes:
            return result

        roots = [n for n in self.graph.nodes() if self.graph.in_degree(n) == 0]
        if not roots:
            roots = [nodes[0].id]
            result.used_fallback_root = True
            message = f"No root node found; using {roots[0]!r} as root"
            logger.warning(message)
            result.warnings.append(message)

        self.back_edges = self._find_back_edges(roots)
        result.back_edges = set(self.back_edges)
        if self.back_edges:
            logger.debug("Back edges excluded from leveling: %s", sorted(self.back_edges))

        levels = self._propagate(roots, {}, cancel_token)

        # Components no root reaches (e.g. an isolated cycle) get their own root
        for node_id in self.graph.nodes():
            if node_id not in levels:
                logger.info("Node %r unreachable from roots; leveling from it", node_id)
                roots.append(node_id)
                levels = self._propagate([node_id], levels, cancel_token)

        result.roots = roots
        for node_id, level in levels.items():
            result.nodes[node_id].level = level

        max_level = max(levels.values())
        result.levels = [[] for _ in range(max_level + 1)]
        for node_id in self.graph.nodes():
            result.levels[levels[node_id]].append(node_id)

        logger.info(
            "Leveled %d nodes into %d levels (%d back edges)",
            len(levels),
            len(result.levels),
            len(self.back_edges),
        )
        return result

    def _find_back_edges(self, roots: List[str]) -> Set[Tuple[str, str]]:
        """
        Find the edges that close a cycle.

        DFS from the roots first, then from any node still unvisited in
        input order. An edge to a node on the current DFS stack is a back
        edge; removing all of them leaves a DAG.
        """
        back_edges: Set[Tuple[str, str]] = set()
        visited: Set[str] = set()
        rec_stack: Set[str] = set()

        def dfs(start: str) -> None:
            visited.add(start)
            rec_stack.add(start)
            stack = [(start, iter(list(self.graph.successors(start))))]
            while stack:
                node, successors = stack[-1]
                advanced = False
                for successor in successors:
                    if successor not in visited:
                        visited.add(successor)
                        rec_stack.add(successor)
                        stack.append(
                            (successor, iter(list(self.graph.successors(successor))))
                        )
                        advanced = True
                        break
                    if successor in rec_stack:
                        back_edges.add((node, successor))
                if not advanced:
                    rec_stack.discard(node)
                    stack.pop()

        for root in roots:
            if root not in visited:
                dfs(root)

        for node in self.graph.nodes():
            if node not in visited:
                dfs(node)

        return back_edges

    def _propagate(
        self,
        starts: List[str],
        levels: Dict[str, int],
        cancel_token: Optional[CancellationToken],
    ) -> Dict[str, int]:
        """Breadth-first level propagation along forward edges."""
        queue = deque()
        for start in starts:
            if start not in levels:
                levels[start] = 0
            queue.append(start)

        while queue:
            check_cancelled(cancel_token)
            node = queue.popleft()
            next_level = levels[node] + 1
            for child in self.graph.successors(node):
                if (node, child) in self.back_edges:
                    continue
                # Only re-enqueue when the level actually increases
                if child not in levels or next_level > levels[child]:
                    levels[child] = next_level
                    queue.append(child)

        return levels


def symmetric_columns(count: int) -> List[int]:
    """
    Evenly spaced columns for ``count`` nodes, symmetric about 0.

    Odd counts use consecutive integers centered on 0 (3 -> -1, 0, 1).
    Even counts step by 2 so no column lands on 0 and the gaps stay equal
    (2 -> -1, 1; 4 -> -3, -1, 1, 3).
    """
    if count <= 0:
        return []
    if count % 2 == 1:
        half = (count - 1) // 2
        return list(range(-half, half + 1))
    return [2 * index - (count - 1) for index in range(count)]


class ColumnBalancer:
    """
    Assigns columns within each level.

    Levels are processed top-down. Each node is scored by the mean column of
    its forward parents (0 for roots), the level is sorted by score with ties
    kept in input order, and columns are handed out symmetrically around 0.
    """

    def assign(self, topology: TopologyResult) -> TopologyResult:
        for level_index, level in enumerate(topology.levels):
            scores = {
                node_id: self._position_score(node_id, topology)
                for node_id in level
            }
            ordered = sorted(level, key=lambda node_id: scores[node_id])
            for node_id, column in zip(ordered, symmetric_columns(len(ordered))):
                topology.nodes[node_id].column = column
            topology.levels[level_index] = ordered
        return topology

    def _position_score(self, node_id: str, topology: TopologyResult) -> float:
        node = topology.nodes[node_id]
        parent_columns = [
            topology.nodes[parent].column
            for parent in node.parents
            if (parent, node_id) not in topology.back_edges
        ]
        if not parent_columns:
            return 0.0
        return sum(parent_columns) / len(parent_columns)


def compute_topology(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    cancel_token: Optional[CancellationToken] = None,
) -> TopologyResult:
    """Run LevelAssigner then ColumnBalancer."""
    topology = LevelAssigner().assign(nodes, edges, cancel_token)
    return ColumnBalancer().assign(topology)
