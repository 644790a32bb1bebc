"""
Descriptive statistics across benchmark iterations.

BenchmarkStats summarizes one numeric series (e.g. execution time over N
iterations). IterationResult fans the per-iteration result mappings out
into one BenchmarkStats per tracked metric and derives the median-based
values stored in a baseline.

Warmup runs are never part of the series: callers discard them and pass
the count for display only.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

TRACKED_METRICS = (
    "execution_time",
    "memory_used",
    "peak_memory",
    "query_count",
    "db_time",
    "performance_score",
)

_STAT_FIELDS = (
    "average",
    "median",
    "min",
    "max",
    "std_deviation",
    "p95",
    "p99",
)


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """
    Linear-interpolated percentile of an already sorted series.

    Index is pct/100 * (n - 1); a single-element series returns its value.
    """
    count = len(sorted_values)
    if count == 0:
        return 0.0
    if count == 1:
        return float(sorted_values[0])

    index = pct / 100 * (count - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper or upper >= count:
        return float(sorted_values[lower])

    fraction = index - lower
    return float(sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction)


@dataclass(frozen=True)
class BenchmarkStats:
    """Statistics for one metric across iterations."""

    iterations: int = 0
    warmup_runs: int = 0
    average: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std_deviation: float = 0.0
    std_deviation_percent: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    all_values: tuple[float, ...] = field(default_factory=tuple)

    @classmethod
    def from_values(cls, values: Sequence[float], warmup_runs: int = 0) -> "BenchmarkStats":
        """
        Compute statistics for a series.

        An empty series gives an all-zero record. Standard deviation is the
        sample (Bessel-corrected) deviation and is 0 below two samples.
        """
        if not values:
            return cls(warmup_runs=warmup_runs)

        ordered = sorted(values)
        average = float(statistics.mean(values))
        std_dev = float(statistics.stdev(values)) if len(values) >= 2 else 0.0

        return cls(
            iterations=len(values),
            warmup_runs=warmup_runs,
            average=average,
            median=float(statistics.median(ordered)),
            min=float(ordered[0]),
            max=float(ordered[-1]),
            std_deviation=std_dev,
            std_deviation_percent=std_dev / average * 100 if average > 0 else 0.0,
            p95=percentile(ordered, 95),
            p99=percentile(ordered, 99),
            all_values=tuple(values),
        )

    def is_stable(self, threshold_percent: float = 10) -> bool:
        """Relative standard deviation at or below threshold_percent."""
        return self.std_deviation_percent <= threshold_percent

    @property
    def stability_assessment(self) -> str:
        if self.std_deviation_percent <= 5:
            return "Very Stable"
        if self.std_deviation_percent <= 10:
            return "Stable"
        if self.std_deviation_percent <= 20:
            return "Moderate Variance"
        return "High Variance"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (raw values are not exported)."""
        data: dict[str, Any] = {
            "iterations": self.iterations,
            "warmup_runs": self.warmup_runs,
        }
        for name in _STAT_FIELDS:
            data[name] = round(getattr(self, name), 4)
        data["std_deviation_percent"] = round(self.std_deviation_percent, 2)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BenchmarkStats":
        """Inverse of to_dict(); missing keys default to zero."""
        return cls(
            iterations=int(data.get("iterations", 0)),
            warmup_runs=int(data.get("warmup_runs", 0)),
            std_deviation_percent=float(data.get("std_deviation_percent", 0)),
            all_values=tuple(data.get("all_values", ())),
            **{name: float(data.get(name, 0)) for name in _STAT_FIELDS},
        )


@dataclass(frozen=True)
class IterationResult:
    """Per-metric statistics for a multi-iteration benchmark run."""

    execution_time: BenchmarkStats
    memory_used: BenchmarkStats
    peak_memory: BenchmarkStats
    query_count: BenchmarkStats
    db_time: BenchmarkStats
    performance_score: BenchmarkStats
    raw_iterations: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_iterations(
        cls,
        iterations: Sequence[Mapping[str, Any]],
        warmup_runs: int = 0,
    ) -> "IterationResult":
        """
        Build statistics from per-iteration result mappings.

        Each mapping may carry execution_time, memory_used, peak_memory,
        query_count, db_time and performance_score; missing keys count as 0.
        """
        stats = {
            metric: BenchmarkStats.from_values(
                [float(result.get(metric, 0) or 0) for result in iterations],
                warmup_runs,
            )
            for metric in TRACKED_METRICS
        }
        return cls(raw_iterations=tuple(iterations), **stats)

    @property
    def primary_result(self) -> float:
        """Median execution time, the headline number of a run."""
        return self.execution_time.median

    def to_dict(self) -> dict[str, Any]:
        return {metric: getattr(self, metric).to_dict() for metric in TRACKED_METRICS}

    def to_baseline_dict(self) -> dict[str, Any]:
        """Median values in baseline field names; integer metrics truncated."""
        return {
            "execution_time": self.execution_time.median,
            "memory_used": int(self.memory_used.median),
            "peak_memory": int(self.peak_memory.median),
            "total_queries": int(self.query_count.median),
            "total_db_time": self.db_time.median,
            "performance_score": int(self.performance_score.median),
            "stats": self.to_dict(),
        }
