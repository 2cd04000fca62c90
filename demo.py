#!/usr/bin/env python3
"""
Demo script for the layoutflow diagram layout pipeline.

This script runs a few example graphs through the pipeline and prints
node positions, edge waypoints and the metrics summary.
"""

import logging

from layoutflow import Edge, LayoutConfig, LayoutPipeline, Node


def print_header(title):
    """Print a formatted header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70 + "\n")


def print_outcome(outcome):
    print("Nodes:")
    for node in outcome.nodes:
        topo = outcome.topology.nodes.get(node.id)
        rank = f"level {topo.level}, column {topo.column:+d}" if topo else ""
        print(f"  {node.id:<10} ({node.x:7.1f}, {node.y:7.1f})  {rank}")

    print("\nEdges:")
    for edge in outcome.edges:
        if edge.waypoints is None:
            print(f"  {edge.id:<6} {edge.source} -> {edge.target}: not routed")
            continue
        points = " ".join(f"({p.x:.0f},{p.y:.0f})" for p in edge.waypoints)
        print(f"  {edge.id:<6} {edge.source} -> {edge.target} [{edge.type.value}]: {points}")

    m = outcome.metrics
    print("\nMetrics:")
    print(f"  time           {m.total_time_ms:.1f} ms")
    print(f"  overlap area   {m.overlap_area:.1f}")
    print(f"  crossings      {m.num_crossings}")
    print(f"  mean edge len  {m.mean_edge_length:.1f}")
    print(f"  stability      {m.stability_index:.2f}")
    if m.routing:
        print(f"  rerouted       {m.routing.rerouted_edges}/{m.routing.total_edges}")
    if m.warnings:
        print(f"  warnings       {m.warnings}")
    if m.issues:
        print(f"  issues         {m.issues}")


def boxes(*names, width=120, height=60):
    return [Node(name, width, height) for name in names]


def chain(*pairs):
    return [Edge(f"e{i}", source, target) for i, (source, target) in enumerate(pairs, 1)]


def demo_1():
    """Demo 1: Simple Flow"""
    print_header("Demo 1: Simple Three-Node Flow")
    pipeline = LayoutPipeline()
    outcome = pipeline.run(boxes("A", "B", "C"), chain(("A", "B"), ("B", "C"), ("A", "C")))
    print_outcome(outcome)


def demo_2():
    """Demo 2: Software Development Workflow (with cycles)"""
    print_header("Demo 2: Software Development Workflow")
    nodes = boxes("Plan", "Design", "Code", "Test", "Review", "Deploy")
    edges = chain(
        ("Plan", "Design"),
        ("Design", "Code"),
        ("Code", "Test"),
        ("Test", "Review"),
        ("Review", "Deploy"),
        ("Review", "Code"),
        ("Test", "Code"),
    )
    pipeline = LayoutPipeline()
    outcome = pipeline.run(nodes, edges, debug=True)
    print_outcome(outcome)
    print()
    print(pipeline.get_trace().summary())


def demo_3():
    """Demo 3: Obstacle Avoidance"""
    print_header("Demo 3: Edge Routed Around an Obstacle")
    nodes = [
        Node("Left", 100, 60, x=100, y=200, fixed=True),
        Node("Middle", 100, 60, x=350, y=200, fixed=True),
        Node("Right", 100, 60, x=600, y=200, fixed=True),
    ]
    edges = chain(("Left", "Right"))
    outcome = LayoutPipeline().run(nodes, edges)
    print_outcome(outcome)


def demo_4():
    """Demo 4: Re-layout With Interactive Smoothing"""
    print_header("Demo 4: Re-layout With Interactive Smoothing")
    pipeline = LayoutPipeline(LayoutConfig(smoothing_mode="interactive"))
    nodes = boxes("Start", "Load", "Parse", "Store")
    edges = chain(("Start", "Load"), ("Load", "Parse"), ("Parse", "Store"))
    pipeline.run(nodes, edges, diagram_id="etl")

    print("After adding a branch:")
    nodes += boxes("Validate")
    edges += [Edge("e4", "Load", "Validate")]
    outcome = pipeline.run(nodes, edges, diagram_id="etl")
    print_outcome(outcome)

    report = pipeline.metrics.performance_report("etl")
    print(f"\nRuns: {report.run_count}, stability trend: {report.stability_trend.value}")


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    demo_1()
    demo_2()
    demo_3()
    demo_4()


if __name__ == "__main__":
    main()
