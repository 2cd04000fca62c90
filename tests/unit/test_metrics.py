"""Unit tests for the metrics module."""

import json
import logging

import pytest

from layoutflow.metrics import (
    MAX_DEBUG_SNAPSHOTS,
    LayoutMetrics,
    MetricsCollector,
    PerformanceReport,
    Trend,
    compute_trend,
    measure_layout,
)
from layoutflow.models import Edge, Node, Point


@pytest.fixture
def collector():
    """Empty MetricsCollector."""
    return MetricsCollector()


def run(diagram_id="d", timestamp=0.0, **kwargs):
    """LayoutMetrics with sensible defaults for a clean run."""
    return LayoutMetrics(diagram_id=diagram_id, timestamp=timestamp, **kwargs)


class TestMeasureLayout:
    """Tests for measure_layout."""

    def test_clean_layout(self):
        """Test separated nodes with one straight edge."""
        nodes = [Node("A", 10, 10, x=0, y=0), Node("B", 10, 10, x=0, y=100)]
        edges = [Edge("e1", "A", "B", waypoints=[Point(0, 5), Point(0, 95)])]
        overlap, crossings, mean_length, spacing = measure_layout(nodes, edges, padding=0)
        assert overlap == 0
        assert crossings == 0
        assert mean_length == pytest.approx(90)
        assert spacing.min == pytest.approx(100)

    def test_overlap_and_crossings(self):
        """Test overlapping boxes and crossing edges are measured."""
        nodes = [Node(n, 10, 10, x=0, y=0) for n in "ABCD"]
        edges = [
            Edge("e1", "A", "B", waypoints=[Point(0, 0), Point(10, 10)]),
            Edge("e2", "C", "D", waypoints=[Point(0, 10), Point(10, 0)]),
            Edge("e3", "A", "C"),
        ]
        overlap, crossings, mean_length, _ = measure_layout(nodes, edges, padding=0)
        assert overlap == pytest.approx(6 * 100)
        assert crossings == 1
        assert mean_length == pytest.approx(200 ** 0.5)


class TestComputeTrend:
    """Tests for compute_trend."""

    def test_too_short(self):
        """Test a single value has no trend."""
        assert compute_trend([5.0], higher_is_better=True) == Trend.STABLE

    def test_small_change_is_stable(self):
        """Test changes under 10% are stable."""
        assert compute_trend([100, 100, 105, 105], higher_is_better=False) == Trend.STABLE

    def test_direction(self):
        """Test improving and degrading depend on which way is better."""
        rising = [10, 10, 20, 20]
        assert compute_trend(rising, higher_is_better=True) == Trend.IMPROVING
        assert compute_trend(rising, higher_is_better=False) == Trend.DEGRADING

    def test_zero_baseline(self):
        """Test a zero first half uses the sign of the change."""
        assert compute_trend([0, 0, 0, 0], higher_is_better=False) == Trend.STABLE
        assert compute_trend([0, 0, 5, 5], higher_is_better=False) == Trend.DEGRADING


class TestFlagIssues:
    """Tests for MetricsCollector.flag_issues."""

    def test_clean_run(self, collector):
        """Test no flags for a good run."""
        assert collector.flag_issues(run(edge_count=4, num_crossings=2)) == []

    def test_every_flag(self, collector, caplog):
        """Test each threshold raises its own issue, logged at WARNING."""
        metrics = run(
            overlap_area=12.0,
            total_time_ms=6000,
            stability_index=0.2,
            edge_count=4,
            num_crossings=3,
            success=False,
        )
        with caplog.at_level(logging.WARNING, logger="layoutflow.metrics"):
            issues = collector.flag_issues(metrics)
        assert len(issues) == 5
        assert any("overlap" in issue for issue in issues)
        assert any("slow" in issue for issue in issues)
        assert any("stability" in issue for issue in issues)
        assert any("crossings" in issue for issue in issues)
        assert "layout failed" in issues
        assert len(caplog.records) == 5


class TestMetricsCollector:
    """Tests for recording, reporting and export."""

    def test_timer(self, collector):
        """Test timers return elapsed milliseconds once."""
        collector.start_timer("d/routing")
        elapsed = collector.stop_timer("d/routing")
        assert elapsed is not None and elapsed >= 0
        assert collector.stop_timer("d/routing") is None

    def test_record_and_history(self, collector):
        """Test runs are kept per diagram in order."""
        collector.record(run("a", timestamp=1))
        collector.record(run("b", timestamp=2))
        collector.record(run("a", timestamp=3))
        assert [m.timestamp for m in collector.get_history("a")] == [1, 3]
        assert [m.timestamp for m in collector.get_history()] == [1, 2, 3]
        assert collector.get_history("missing") == []

    def test_record_sets_issues(self, collector):
        """Test recording attaches the quality flags."""
        recorded = collector.record(run(overlap_area=5.0))
        assert recorded.issues

    def test_history_is_bounded(self):
        """Test old runs are evicted."""
        collector = MetricsCollector(max_history=3)
        for i in range(5):
            collector.record(run(timestamp=i))
        assert [m.timestamp for m in collector.get_history("d")] == [2, 3, 4]

    def test_performance_report(self, collector):
        """Test averages and trends over the history."""
        for i, ms in enumerate([100, 100, 300, 300]):
            collector.record(run(timestamp=i, total_time_ms=ms, stability_index=0.8))
        report = collector.performance_report("d")
        assert report.run_count == 4
        assert report.avg_time_ms == pytest.approx(200)
        assert report.avg_stability == pytest.approx(0.8)
        assert report.success_rate == 1.0
        assert report.time_trend == Trend.DEGRADING
        assert report.stability_trend == Trend.STABLE

    def test_empty_report(self, collector):
        """Test a report without runs."""
        assert collector.performance_report("d") == PerformanceReport()

    def test_debug_snapshots_are_bounded(self, collector):
        """Test snapshot capture and export."""
        nodes = [Node("A", 10, 20, x=1, y=2)]
        for i in range(MAX_DEBUG_SNAPSHOTS + 2):
            collector.capture_debug_snapshot("d", f"phase-{i}", nodes, {"step": i})
        exported = collector.export_debug_snapshots("d")["d"]
        assert len(exported) == MAX_DEBUG_SNAPSHOTS
        assert exported[-1]["phase"] == f"phase-{MAX_DEBUG_SNAPSHOTS + 1}"
        assert exported[-1]["nodes"]["A"] == (1, 2, 10, 20)

    def test_export_is_plain_and_idempotent(self, collector):
        """Test exported metrics serialize to JSON and exporting twice is equal."""
        collector.record(run(strategy="circular", warnings=["x"]))
        first = collector.export_metrics("d")
        second = collector.export_metrics("d")
        assert first == second
        assert json.loads(json.dumps(first)) == first
        assert first[0]["strategy"] == "circular"

    def test_clear_and_stats(self, collector):
        """Test stats over recent runs and clearing."""
        collector.record(run("a", timestamp=1, total_time_ms=10))
        collector.record(run("b", timestamp=2, total_time_ms=30, success=False))
        collector.capture_debug_snapshot("a", "final", [])
        stats = collector.get_stats()
        assert stats.total_layouts == 2
        assert stats.avg_time_ms == pytest.approx(20)
        assert stats.success_rate == pytest.approx(0.5)
        assert stats.diagrams_with_snapshots == 1

        collector.clear_data("a")
        assert collector.get_history("a") == []
        assert len(collector.get_history()) == 1
        collector.clear_data()
        assert collector.get_stats().total_layouts == 0
