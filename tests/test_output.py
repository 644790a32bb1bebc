"""Tests for console and JSON renderers."""

import io
import json

from rich.console import Console

from querybench.advisor.models import AdvisorReport, AdvisorSuggestion
from querybench.advisor.scoring import PerformanceScore
from querybench.baseline import BaselineResult, RegressionDetector
from querybench.output import (
    format_duration_ms,
    render_baselines,
    render_comparison,
    render_json,
    render_report,
    render_score,
    select_suggestions,
)


def make_console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


def output_of(console: Console) -> str:
    return console.file.getvalue()


def report_with(*counts_by_type) -> AdvisorReport:
    suggestions = []
    for suggestion_type, count in counts_by_type:
        for i in range(count):
            suggestions.append(AdvisorSuggestion.warning(
                suggestion_type, f"{suggestion_type} {i}", "details",
                suggestion="→ first\n→ second",
                metadata={"sql": "SELECT * FROM [users] WHERE id = ?"},
            ))
    return AdvisorReport(
        total_queries=20,
        unique_queries=5,
        total_db_time=1500.0,
        suggestions=tuple(suggestions),
        queries_by_location={"views.py:10": 15, "views.py:20": 5},
        time_by_location={"views.py:10": 1200.0, "views.py:20": 300.0},
    )


def baseline(**overrides) -> BaselineResult:
    values = {"execution_time": 1.0, "total_queries": 100, "performance_score": 80}
    values.update(overrides)
    return BaselineResult(benchmark_name="users", **values)


class TestSelectSuggestions:
    """Tests for display limits."""

    def test_per_type_limit(self):
        shown, hidden = select_suggestions(report_with(("n_plus_one", 5), ("slow_query", 1)))

        assert [s.type for s in shown] == ["n_plus_one"] * 3 + ["slow_query"]
        assert hidden == {"n_plus_one": 2}

    def test_total_limit(self):
        report = report_with(("n_plus_one", 3), ("slow_query", 3), ("hotspot", 3), ("duplicate_query", 3))
        shown, hidden = select_suggestions(report, max_per_type=3, max_total=10)

        assert len(shown) == 10
        assert hidden == {"duplicate_query": 2}


class TestRenderers:
    """Tests for console output."""

    def test_format_duration(self):
        assert format_duration_ms(12.5) == "12.50ms"
        assert format_duration_ms(1500) == "1.50s"
        assert format_duration_ms(90000) == "1.50m"

    def test_render_report(self):
        console = make_console()
        render_report(report_with(("n_plus_one", 4)), 3000.0, console)
        text = output_of(console)

        assert "ADVISOR REPORT" in text
        assert "50.0%" in text
        assert "[n_plus_one] n_plus_one 0" in text
        assert "SELECT * FROM [users] WHERE id = ?" in text
        assert "1 more [n_plus_one] issues" in text
        assert "views.py:10" in text

    def test_render_report_without_execution_time(self):
        console = make_console()
        render_report(report_with(("n_plus_one", 1)), None, console)
        text = output_of(console)

        assert "Total DB Time" in text
        assert "DB Time %" not in text

    def test_render_clean_report(self):
        console = make_console()
        render_report(AdvisorReport(), 0.0, console)

        assert "No issues detected" in output_of(console)

    def test_render_score(self):
        report = report_with(("n_plus_one", 1))
        console = make_console()
        render_score(PerformanceScore(report, 3.0), console)
        text = output_of(console)

        assert "Performance Score" in text
        assert "N+1 query issues" in text
        assert "/100" in text

    def test_render_comparison(self):
        comparison = RegressionDetector().compare(
            baseline(), baseline(execution_time=1.5, total_queries=10)
        )
        console = make_console()
        render_comparison(comparison, console)
        text = output_of(console)

        assert "REGRESSION DETECTED" in text
        assert "Execution Time" in text
        assert "+50.0%" in text
        assert "-90.0%" in text

    def test_render_baselines(self):
        console = make_console()
        render_baselines([baseline(git_branch="main", git_commit="abc1234")], console)

        assert "main@abc1234" in output_of(console)

    def test_render_json(self):
        data = json.loads(render_json(baseline()))
        assert data["benchmark_name"] == "users"
