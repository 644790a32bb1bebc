"""
Output module - Separates rendering from analysis.

Provides:
- render_report / render_score: advisor output for the terminal
- render_stats: per-metric iteration statistics
- render_comparison / render_baselines: baseline management output
- render_json: stable JSON for CI artifacts

Usage:
    from querybench.output import render_report, render_json

    render_report(report, total_execution_ms=820.0)
    print(render_json(report))
"""

from querybench.output.renderers import (
    format_duration_ms,
    render_baselines,
    render_comparison,
    render_json,
    render_report,
    render_score,
    render_stats,
    select_suggestions,
)

__all__ = [
    "format_duration_ms",
    "render_baselines",
    "render_comparison",
    "render_json",
    "render_report",
    "render_score",
    "render_stats",
    "select_suggestions",
]
