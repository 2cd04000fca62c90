"""Pytest configuration and shared fixtures for layoutflow tests."""

import random

import pytest

from layoutflow import Edge, LayoutConfig, LayoutPipeline, Node


def make_nodes(*names, width=120, height=60):
    """Unpositioned nodes of equal size."""
    return [Node(name, width, height) for name in names]


def make_edges(*pairs):
    """Edges e1, e2, ... from (source, target) pairs."""
    return [Edge(f"e{i}", source, target) for i, (source, target) in enumerate(pairs, 1)]


def random_graph(rng, node_count, edge_count, min_size=40, max_size=160):
    """Random nodes (random sizes) and random edges, possibly with cycles."""
    nodes = [
        Node(f"n{i}", rng.uniform(min_size, max_size), rng.uniform(min_size / 2, max_size / 2))
        for i in range(node_count)
    ]
    edges = []
    for i in range(edge_count):
        source = rng.randrange(node_count)
        target = rng.randrange(node_count)
        edges.append(Edge(f"e{i}", f"n{source}", f"n{target}"))
    return nodes, edges


@pytest.fixture
def chain_graph():
    """A -> B -> C."""
    return make_nodes("A", "B", "C"), make_edges(("A", "B"), ("B", "C"))


@pytest.fixture
def fork_graph():
    """A -> B, A -> C."""
    return make_nodes("A", "B", "C"), make_edges(("A", "B"), ("A", "C"))


@pytest.fixture
def diamond_graph():
    """Start -> Left/Right -> End."""
    return (
        make_nodes("Start", "Left", "Right", "End"),
        make_edges(("Start", "Left"), ("Start", "Right"), ("Left", "End"), ("Right", "End")),
    )


@pytest.fixture
def cyclic_graph():
    """A -> B -> C -> A."""
    return make_nodes("A", "B", "C"), make_edges(("A", "B"), ("B", "C"), ("C", "A"))


@pytest.fixture
def obstacle_graph():
    """Three fixed nodes in a row with an edge from the first to the last."""
    nodes = [
        Node("A", 100, 60, x=100, y=200, fixed=True),
        Node("C", 100, 60, x=350, y=200, fixed=True),
        Node("B", 100, 60, x=600, y=200, fixed=True),
    ]
    return nodes, make_edges(("A", "B"))


@pytest.fixture
def config():
    """Default LayoutConfig."""
    return LayoutConfig()


@pytest.fixture
def pipeline():
    """Default LayoutPipeline with its own history and metrics."""
    return LayoutPipeline()


@pytest.fixture
def rng():
    """Seeded random generator for property checks."""
    return random.Random(20240517)
