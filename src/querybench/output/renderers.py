"""
Console and JSON renderers.

Separates presentation logic from analysis logic: every renderer takes a
finished value (report, score, statistics, comparison) and only formats
it. Console output goes through rich; JSON output uses each value's
to_dict().
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from querybench.advisor.models import AdvisorReport, AdvisorSuggestion
    from querybench.advisor.scoring import PerformanceScore
    from querybench.baseline import BaselineResult, ComparisonResult
    from querybench.stats import IterationResult

SQL_PREVIEW_LENGTH = 100

_SEVERITY_ICONS = {"critical": "🔴", "warning": "⚠️ ", "info": "ℹ️ "}

_STATUS_STYLES = {
    "critical": ("🔴", "red"),
    "warning": ("⚠️ ", "yellow"),
    "improved": ("🚀", "green"),
    "stable": ("✅", "green"),
}


def format_duration_ms(ms: float) -> str:
    """Milliseconds as ms, s or m depending on magnitude."""
    if ms >= 60000:
        return f"{ms / 60000:.2f}m"
    if ms >= 1000:
        return f"{ms / 1000:.2f}s"
    return f"{ms:.2f}ms"


def select_suggestions(
    report: "AdvisorReport",
    max_per_type: int = 3,
    max_total: int = 10,
) -> tuple[list["AdvisorSuggestion"], dict[str, int]]:
    """
    Pick the suggestions to display.

    At most max_per_type per suggestion type and max_total overall, in
    report order grouped by type.

    Returns:
        (suggestions to show, count of hidden suggestions per type)
    """
    shown: list["AdvisorSuggestion"] = []
    hidden: dict[str, int] = {}

    for suggestion_type, suggestions in report.suggestions_by_type().items():
        if len(shown) >= max_total:
            hidden[suggestion_type] = hidden.get(suggestion_type, 0) + len(suggestions)
            continue

        allowed = min(max_per_type, len(suggestions), max_total - len(shown))
        shown.extend(suggestions[:allowed])
        if len(suggestions) > allowed:
            hidden[suggestion_type] = hidden.get(suggestion_type, 0) + len(suggestions) - allowed

    return shown, hidden


def _print_suggestion(console: Console, suggestion: "AdvisorSuggestion") -> None:
    color = suggestion.severity.color
    icon = _SEVERITY_ICONS.get(suggestion.severity.value, "")
    console.print(f"[{color}]{icon} \\[{suggestion.type}] {escape(suggestion.title)}[/{color}]")
    console.print(f"   {escape(suggestion.description)}")
    if suggestion.location:
        console.print(f"   [dim]📍 {escape(suggestion.location)}[/dim]")
    for line in suggestion.suggestion_lines:
        console.print(f"   [green]💡 {escape(line)}[/green]")

    sql = suggestion.metadata.get("sql") or suggestion.metadata.get("sample_sql")
    if sql:
        preview = sql if len(sql) <= SQL_PREVIEW_LENGTH else sql[:SQL_PREVIEW_LENGTH] + "..."
        console.print(f"   [dim]SQL: {escape(preview)}[/dim]")
    console.print()


def render_report(
    report: "AdvisorReport",
    total_execution_ms: float | None,
    console: Console | None = None,
    max_per_type: int = 3,
    max_total: int = 10,
) -> None:
    """Print the advisor report: statistics, suggestions, top locations."""
    console = console or Console()

    console.print()
    console.print(Panel("📊 ADVISOR REPORT", border_style="cyan", expand=False))

    stats = Table(show_header=False, box=None)
    stats.add_column("Metric", style="cyan")
    stats.add_column("Value", justify="right")
    stats.add_row("Total Queries", f"{report.total_queries:,}")
    stats.add_row("Unique Queries", f"{report.unique_queries:,}")
    stats.add_row("Total DB Time", format_duration_ms(report.total_db_time))
    if total_execution_ms is not None:
        stats.add_row("DB Time %", f"{report.db_time_percentage(total_execution_ms):.1f}%")
    console.print("[cyan]Database Statistics:[/cyan]")
    console.print(stats)

    if report.has_suggestions:
        counts: list[str] = []
        if report.critical_count:
            counts.append(f"[red]🔴 {report.critical_count} critical[/red]")
        if report.warning_count:
            counts.append(f"[yellow]⚠️  {report.warning_count} warnings[/yellow]")
        if report.info_count:
            counts.append(f"[blue]ℹ️  {report.info_count} info[/blue]")
        console.print("[cyan]Issues Found:[/cyan]")
        console.print("  " + "  ".join(counts))

        console.print()
        console.print("[cyan]Optimization Suggestions:[/cyan]")
        console.print()
        shown, hidden = select_suggestions(report, max_per_type, max_total)
        for suggestion in shown:
            _print_suggestion(console, suggestion)
        if hidden:
            console.print("[dim]Additional issues not shown:[/dim]")
            for suggestion_type, count in hidden.items():
                console.print(f"[dim]  • {count} more \\[{suggestion_type}] issues[/dim]")
            console.print()
    else:
        console.print("[green]  ✅ No issues detected![/green]")

    top_locations = report.top_locations_by_query_count(5)
    if top_locations:
        table = Table(title="Top 5 Locations by Query Count")
        table.add_column("Location", style="cyan")
        table.add_column("Queries", justify="right")
        table.add_column("Time", justify="right")
        for location, count in top_locations.items():
            table.add_row(
                escape(location),
                f"{count:,}",
                format_duration_ms(report.time_by_location.get(location, 0.0)),
            )
        console.print(table)

    console.print(f"[dim]Analysis completed in {format_duration_ms(report.analysis_time)}[/dim]")


def render_score(score: "PerformanceScore", console: Console | None = None) -> None:
    """Print the score, its grade and the breakdown of penalties and bonuses."""
    console = console or Console()
    grade = score.grade

    lines = [
        f"[bold {grade.color}]{score.score}/100  {grade.letter} ({grade.label})[/bold {grade.color}]",
    ]
    for item in score.breakdown:
        lines.append(f"[red]{item.points:+d}[/red]  {escape(item.reason)}")
    for item in score.bonuses:
        lines.append(f"[green]{item.points:+d}[/green]  {escape(item.reason)}")
    if score.potential_score > score.score:
        lines.append(f"[dim]Potential score if fixed: {score.potential_score}/100[/dim]")
    savings = score.estimated_time_savings
    if savings > 0:
        lines.append(f"[dim]Estimated time savings: {format_duration_ms(savings)}[/dim]")

    console.print(Panel("\n".join(lines), title="Performance Score", border_style=grade.color))


def render_stats(result: "IterationResult", console: Console | None = None) -> None:
    """Print per-metric statistics across iterations."""
    console = console or Console()
    execution = result.execution_time

    table = Table(title=f"Statistics ({execution.iterations} iterations, {execution.warmup_runs} warmup)")
    table.add_column("Metric", style="cyan")
    for column in ("Avg", "Median", "Min", "Max", "StdDev %", "P95", "P99"):
        table.add_column(column, justify="right")

    for metric, stats in result.to_dict().items():
        table.add_row(
            metric.replace("_", " ").title(),
            f"{stats['average']:.4g}",
            f"{stats['median']:.4g}",
            f"{stats['min']:.4g}",
            f"{stats['max']:.4g}",
            f"{stats['std_deviation_percent']:.1f}%",
            f"{stats['p95']:.4g}",
            f"{stats['p99']:.4g}",
        )
    console.print(table)

    style = "green" if execution.is_stable() else "yellow"
    console.print(f"[{style}]Stability: {execution.stability_assessment}[/{style}]")


def render_comparison(comparison: "ComparisonResult", console: Console | None = None) -> None:
    """Print a baseline comparison with regressions and improvements."""
    console = console or Console()
    status = comparison.status
    icon, color = _STATUS_STYLES[status.value]

    console.print(Panel(
        f"[bold {color}]{icon} {comparison.status_label}[/bold {color}]",
        title=f"Baseline: {escape(comparison.baseline.benchmark_name)}",
        border_style=color,
        expand=False,
    ))

    if comparison.regressions:
        table = Table(title="Regressions")
        table.add_column("Metric", style="cyan")
        table.add_column("Baseline", justify="right")
        table.add_column("Current", justify="right")
        table.add_column("Change", justify="right")
        table.add_column("Severity")
        for item in comparison.regressions:
            severity_color = "red" if item.severity.value == "critical" else "yellow"
            table.add_row(
                item.label,
                item.formatted_baseline,
                item.formatted_current,
                f"+{item.diff_percent:.1f}%",
                f"[{severity_color}]{item.severity.value}[/{severity_color}]",
            )
        console.print(table)

    if comparison.improvements:
        table = Table(title="Improvements")
        table.add_column("Metric", style="cyan")
        table.add_column("Baseline", justify="right")
        table.add_column("Current", justify="right")
        table.add_column("Change", justify="right")
        for item in comparison.improvements:
            table.add_row(
                item.label,
                item.formatted_baseline,
                item.formatted_current,
                f"[green]-{item.improvement_percent:.1f}%[/green]",
            )
        console.print(table)

    if not comparison.regressions and not comparison.improvements:
        console.print("[dim]No significant changes against the baseline.[/dim]")


def render_baselines(baselines: list["BaselineResult"], console: Console | None = None) -> None:
    """Print stored baselines as a table."""
    console = console or Console()
    table = Table()
    table.add_column("Benchmark", style="cyan")
    table.add_column("Time", justify="right")
    table.add_column("Queries", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Iterations", justify="right")
    table.add_column("Git")
    table.add_column("Created At")

    for baseline in baselines:
        git = "@".join(part for part in (baseline.git_branch, baseline.git_commit) if part)
        table.add_row(
            escape(baseline.benchmark_name),
            format_duration_ms(baseline.execution_time * 1000),
            f"{baseline.total_queries:,}",
            f"{baseline.performance_score}/100",
            str(baseline.iterations),
            escape(git) or "-",
            baseline.created_at[:19],
        )
    console.print(table)


def render_json(value: Any, indent: int = 2) -> str:
    """JSON text for any value exposing to_dict()."""
    return json.dumps(value.to_dict(), indent=indent, default=str)
