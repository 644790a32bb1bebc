"""Baseline management commands: list, show, save, delete, compare."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console

from querybench.baseline import BaselineResult, BaselineStore, RegressionDetector
from querybench.exceptions import BaselineError
from querybench.output import render_baselines, render_comparison, render_json
from querybench.stats import IterationResult

console = Console()
error_console = Console(stderr=True)


def read_results_file(path: Path) -> dict[str, Any]:
    """Read a run-result JSON file; exits with code 1 when unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        error_console.print(f"[red]Cannot read results file {path}: {e}[/red]")
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        error_console.print(f"[red]Results file {path} must contain a JSON object[/red]")
        raise typer.Exit(code=1)
    return data


def read_iterations(data: dict[str, Any]) -> list[dict[str, Any]] | None:
    """
    The run's per-iteration result mappings, or None when there is no list.

    Exits with code 1 when an entry is not a JSON object.
    """
    iterations = data.get("iterations")
    if not isinstance(iterations, list):
        return None
    for index, entry in enumerate(iterations):
        if not isinstance(entry, dict):
            error_console.print(
                f"[red]Iteration {index} must be a JSON object, got {type(entry).__name__}[/red]"
            )
            raise typer.Exit(code=1)
    return iterations


def build_baseline(
    data: dict[str, Any],
    name: str,
    benchmark_class: str = "",
    with_git: bool = True,
) -> BaselineResult:
    """
    Turn a run-result mapping into a BaselineResult.

    Accepted shapes:
        {"iterations": [{"execution_time": ..., ...}, ...], "warmup_runs": 2}
        {"execution_time": ..., "peak_memory": ..., "total_queries": ..., ...}
    """
    options = data.get("options") or {}
    iterations = read_iterations(data)
    if iterations is not None:
        result = IterationResult.from_iterations(iterations, int(data.get("warmup_runs", 0)))
        return BaselineResult.from_iteration_result(
            name, benchmark_class, result, options=options, with_git=with_git
        )
    return BaselineResult.from_results(
        name, benchmark_class, data, advisor_data=data, options=options, with_git=with_git
    )


PathOption = Annotated[
    Optional[Path],
    typer.Option("--path", "-p", help="Baseline directory (default from config)"),
]


def register(baseline_app: typer.Typer) -> None:
    """Register baseline commands on the given Typer sub-app."""

    @baseline_app.command("list")
    def baseline_list(path: PathOption = None) -> None:
        """
        List all stored baselines.

        Examples:

            $ querybench baseline list
        """
        store = BaselineStore(path)
        baselines = store.list()
        if not baselines:
            console.print(f"[yellow]No baselines found in {store.path}[/yellow]")
            raise typer.Exit(code=0)

        render_baselines(baselines, console)
        console.print(f"\n[dim]{len(baselines)} baseline(s) in {store.path}[/dim]")

    @baseline_app.command("show")
    def baseline_show(
        name: Annotated[str, typer.Argument(help="Benchmark name")],
        path: PathOption = None,
        json_output: Annotated[
            bool, typer.Option("--json", "-j", help="Output as JSON")
        ] = False,
    ) -> None:
        """Show one stored baseline."""
        store = BaselineStore(path)
        try:
            baseline = store.load(name)
        except BaselineError as e:
            error_console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(code=1)
        if baseline is None:
            error_console.print(f"[yellow]No baseline for '{name}'[/yellow]")
            raise typer.Exit(code=1)

        if json_output:
            console.print_json(render_json(baseline))
        else:
            render_baselines([baseline], console)

    @baseline_app.command("save")
    def baseline_save(
        results_file: Annotated[
            Path,
            typer.Argument(help="Run result JSON file", exists=True, readable=True),
        ],
        name: Annotated[str, typer.Option("--name", "-n", help="Benchmark name")],
        benchmark_class: Annotated[
            str, typer.Option("--class", "-c", help="Benchmark class name")
        ] = "",
        path: PathOption = None,
        git: Annotated[
            bool, typer.Option("--git/--no-git", help="Record git branch and commit")
        ] = True,
    ) -> None:
        """
        Save a run result as the benchmark's baseline.

        Examples:

            $ querybench baseline save results.json --name users_index
        """
        data = read_results_file(results_file)
        baseline = build_baseline(data, name, benchmark_class, with_git=git)
        try:
            saved_to = BaselineStore(path).save(baseline)
        except BaselineError as e:
            error_console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Baseline saved to {saved_to}[/green]")

    @baseline_app.command("delete")
    def baseline_delete(
        name: Annotated[str, typer.Argument(help="Benchmark name")],
        path: PathOption = None,
    ) -> None:
        """Delete a stored baseline."""
        try:
            deleted = BaselineStore(path).delete(name)
        except BaselineError as e:
            error_console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(code=1)
        if not deleted:
            console.print(f"[yellow]No baseline for '{name}'[/yellow]")
            raise typer.Exit(code=0)
        console.print(f"[green]Deleted baseline for '{name}'[/green]")

    @baseline_app.command("compare")
    def baseline_compare(
        results_file: Annotated[
            Path,
            typer.Argument(help="Run result JSON file", exists=True, readable=True),
        ],
        name: Annotated[str, typer.Option("--name", "-n", help="Benchmark name")],
        path: PathOption = None,
        json_output: Annotated[
            bool, typer.Option("--json", "-j", help="Output as JSON")
        ] = False,
    ) -> None:
        """
        Compare a run result against the stored baseline.

        Exits with code 1 when a critical regression is detected.

        Examples:

            $ querybench baseline compare results.json --name users_index
        """
        data = read_results_file(results_file)
        current = build_baseline(data, name, with_git=False)

        try:
            comparison = BaselineStore(path).compare(current, RegressionDetector())
        except BaselineError as e:
            error_console.print(f"[red]{e.message}[/red]")
            raise typer.Exit(code=1)

        if comparison is None:
            console.print(f"[yellow]No baseline for '{name}', nothing to compare[/yellow]")
            console.print("[dim]Run 'querybench baseline save' first[/dim]")
            raise typer.Exit(code=0)

        if json_output:
            console.print_json(render_json(comparison))
        else:
            render_comparison(comparison, console)

        if comparison.should_fail_ci():
            raise typer.Exit(code=1)
