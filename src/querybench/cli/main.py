"""
QueryBench CLI - benchmark baselines and regression checks for CI.

Usage:
    querybench analyze queries.json
    querybench baseline save results.json --name users_index
    querybench baseline compare results.json --name users_index
    querybench stats results.json
    querybench --help
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console

from querybench import __version__
from querybench.advisor import Advisor, PerformanceScore, QueryEvent, StackFrame
from querybench.cli.commands import baseline as baseline_commands
from querybench.config import get_config
from querybench.output import render_json, render_report, render_score, render_stats
from querybench.stats import IterationResult

app = typer.Typer(
    name="querybench",
    help="Query advisor and benchmark regression detection",
    no_args_is_help=True,
)

baseline_app = typer.Typer(help="Manage stored benchmark baselines", no_args_is_help=True)
baseline_commands.register(baseline_app)
app.add_typer(baseline_app, name="baseline")

console = Console()
error_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"QueryBench version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """QueryBench - query advisor and benchmark regression detection."""
    pass


def load_query_events(data: dict[str, Any]) -> list[QueryEvent]:
    """
    QueryEvents from a recorded query log.

    Each entry carries sql and optionally bindings, time_ms, connection and
    the call site (file, line, function, class_name).
    """
    events: list[QueryEvent] = []
    for entry in data.get("queries") or []:
        if not isinstance(entry, dict) or not entry.get("sql"):
            continue
        backtrace: tuple[StackFrame, ...] = ()
        if entry.get("file"):
            backtrace = (StackFrame(
                file=entry["file"],
                line=entry.get("line"),
                class_name=entry.get("class_name"),
                function=entry.get("function"),
            ),)
        events.append(QueryEvent(
            sql=entry["sql"],
            bindings=tuple(entry.get("bindings") or ()),
            time_ms=float(entry.get("time_ms", 0) or 0),
            connection=entry.get("connection", "default"),
            backtrace=backtrace,
        ))
    return events


@app.command()
def analyze(
    query_log: Annotated[
        Path,
        typer.Argument(
            help="Recorded query log (JSON with a 'queries' list)",
            exists=True,
            readable=True,
        ),
    ],
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON")
    ] = False,
    fail_on_critical: Annotated[
        bool,
        typer.Option("--fail-on-critical", help="Exit with code 1 when critical issues are found"),
    ] = False,
    execution_time_ms: Annotated[
        Optional[float],
        typer.Option(
            "--execution-time-ms",
            help="Wall-clock time of the run (default: the log's execution_time_ms)",
        ),
    ] = None,
) -> None:
    """
    Run the query advisor over a recorded query log and score it.

    Examples:

        $ querybench analyze queries.json
        $ querybench analyze queries.json --json --fail-on-critical
    """
    data = baseline_commands.read_results_file(query_log)
    config = get_config()

    advisor = Advisor(config=config.advisor_config())
    if not advisor.is_enabled():
        console.print("[yellow]Query advisor is disabled by configuration[/yellow]")
        raise typer.Exit(code=0)

    advisor.start()
    for query_event in load_query_events(data):
        advisor.collector.record(query_event)
    report = advisor.stop()

    execution_ms = execution_time_ms
    if execution_ms is None and data.get("execution_time_ms") is not None:
        try:
            execution_ms = float(data["execution_time_ms"])
        except (TypeError, ValueError):
            error_console.print("[red]execution_time_ms must be a number[/red]")
            raise typer.Exit(code=1)
    score = PerformanceScore(report, execution_ms / 1000 if execution_ms is not None else None)

    if json_output:
        payload = {"report": report.to_dict(), "score": score.to_dict()}
        console.print_json(json.dumps(payload, indent=2, default=str))
    else:
        render_report(
            report,
            execution_ms,
            console,
            max_per_type=config.display_max_per_type,
            max_total=config.display_max_total,
        )
        render_score(score, console)
        if execution_ms is None:
            console.print("[dim]No execution time given, DB time share not scored[/dim]")

    if fail_on_critical and report.critical_count:
        raise typer.Exit(code=1)


@app.command()
def stats(
    results_file: Annotated[
        Path,
        typer.Argument(help="Run result JSON file with an 'iterations' list", exists=True, readable=True),
    ],
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON")
    ] = False,
) -> None:
    """
    Show per-metric statistics across iterations.

    Examples:

        $ querybench stats results.json
    """
    data = baseline_commands.read_results_file(results_file)
    iterations = baseline_commands.read_iterations(data)
    if iterations is None:
        error_console.print("[red]Results file has no 'iterations' list[/red]")
        raise typer.Exit(code=1)

    result = IterationResult.from_iterations(iterations, int(data.get("warmup_runs", 0)))
    if json_output:
        console.print_json(render_json(result))
    else:
        render_stats(result, console)


if __name__ == "__main__":
    app()
