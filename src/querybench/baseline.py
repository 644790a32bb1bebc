"""
Benchmark baselines: storage and regression detection.

A baseline is a flat snapshot of one benchmark run (time, memory, query
count, DB time, performance score). One baseline is kept per benchmark
name, as a JSON file committed alongside the benchmarks, and later runs
are compared against it.

Storage format: one `<name>.baseline.json` file per benchmark in the
baseline directory (default `.querybench/baselines`, see config).

Usage:
    from querybench.baseline import BaselineResult, BaselineStore

    store = BaselineStore()
    store.save(BaselineResult.from_iteration_result("users", "UserBench", result))

    comparison = store.compare(current)
    if comparison is not None and comparison.should_fail_ci():
        print(comparison.status_label)
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import to_jsonable_python

from querybench.config import RegressionThreshold, coerce_thresholds, get_config
from querybench.exceptions import BaselineError

if TYPE_CHECKING:
    from querybench.stats import IterationResult

logger = logging.getLogger(__name__)

BASELINE_SUFFIX = ".baseline.json"

# Improvements must beat these (percent) to be reported
TIME_MEMORY_QUERY_IMPROVEMENT_PERCENT = 10.0
SCORE_IMPROVEMENT_PERCENT = 5.0

# Percent changes are rounded to this many decimals before threshold checks
PERCENT_PRECISION = 6

METRIC_LABELS = {
    "execution_time": "Execution Time",
    "peak_memory": "Peak Memory",
    "total_queries": "Query Count",
    "performance_score": "Performance Score",
}


def metric_label(metric: str) -> str:
    """Display label for a compared metric."""
    return METRIC_LABELS.get(metric, metric.replace("_", " ").capitalize())


def format_seconds(seconds: float) -> str:
    if seconds < 1:
        return f"{round(seconds * 1000, 2)}ms"
    return f"{round(seconds, 2)}s"


def format_bytes(num_bytes: float) -> str:
    units = ("B", "KB", "MB", "GB")
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 1)} {units[unit]}"


def format_count(count: float) -> str:
    return f"{int(count):,}"


def format_score(score: float) -> str:
    return f"{int(score)}/100"


# ── Git metadata ─────────────────────────────────────────────────────────


def _git(*args: str) -> str | None:
    try:
        completed = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("git %s unavailable: %s", " ".join(args), e)
        return None
    if completed.returncode != 0:
        return None
    return completed.stdout.strip() or None


def detect_git_metadata() -> tuple[str | None, str | None]:
    """(branch, short commit) of the current directory; None where unavailable."""
    return _git("rev-parse", "--abbrev-ref", "HEAD"), _git("rev-parse", "--short", "HEAD")


# ── Baseline record ──────────────────────────────────────────────────────


class BaselineResult(BaseModel):
    """
    Flattened, serializable snapshot of one benchmark run.

    With iterations > 1 the scalar metrics are medians across iterations
    and the full statistics are embedded in `stats`.

    `options` is stored in its JSON form (tuples become lists, non-JSON
    values their string form), so a record read back from disk equals the
    one that was saved.
    """

    model_config = ConfigDict(frozen=True)

    benchmark_name: str = Field(..., min_length=1)
    benchmark_class: str = ""
    execution_time: float = Field(default=0.0, description="Seconds")
    memory_used: int = Field(default=0, description="Bytes")
    peak_memory: int = Field(default=0, description="Bytes")
    total_queries: int = 0
    total_db_time: float = Field(default=0.0, description="Milliseconds")
    performance_score: int = 0
    options: dict[str, Any] = Field(default_factory=dict, description="JSON-native benchmark options")
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    git_branch: str | None = None
    git_commit: str | None = None
    iterations: int = 1
    stats: dict[str, Any] | None = None

    @field_validator("options")
    @classmethod
    def _jsonable_options(cls, value: dict[str, Any]) -> dict[str, Any]:
        return to_jsonable_python(value, fallback=str)

    @classmethod
    def from_results(
        cls,
        benchmark_name: str,
        benchmark_class: str,
        results: Mapping[str, Any],
        advisor_data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        with_git: bool = True,
    ) -> "BaselineResult":
        """
        Build a baseline from a single run.

        Args:
            results: Harness numbers (execution_time, memory_used, peak_memory)
            advisor_data: total_queries, total_db_time and performance_score
            options: Benchmark options recorded with the run
            with_git: Record the current git branch and commit
        """
        advisor_data = advisor_data or {}
        branch, commit = detect_git_metadata() if with_git else (None, None)
        return cls(
            benchmark_name=benchmark_name,
            benchmark_class=benchmark_class,
            execution_time=float(results.get("execution_time", 0)),
            memory_used=int(results.get("memory_used", 0)),
            peak_memory=int(results.get("peak_memory", 0)),
            total_queries=int(advisor_data.get("total_queries", 0)),
            total_db_time=float(advisor_data.get("total_db_time", 0)),
            performance_score=int(advisor_data.get("performance_score", 0)),
            options=dict(options or {}),
            git_branch=branch,
            git_commit=commit,
        )

    @classmethod
    def from_iteration_result(
        cls,
        benchmark_name: str,
        benchmark_class: str,
        result: "IterationResult",
        options: Mapping[str, Any] | None = None,
        with_git: bool = True,
    ) -> "BaselineResult":
        """Build a baseline from multi-iteration statistics (medians)."""
        data = result.to_baseline_dict()
        branch, commit = detect_git_metadata() if with_git else (None, None)
        return cls(
            benchmark_name=benchmark_name,
            benchmark_class=benchmark_class,
            options=dict(options or {}),
            git_branch=branch,
            git_commit=commit,
            iterations=result.execution_time.iterations,
            **data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-ready record."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BaselineResult":
        """Inverse of to_dict()."""
        return cls.model_validate(dict(data))


# ── Comparison ───────────────────────────────────────────────────────────


class RegressionSeverity(str, Enum):
    """Severity tier of a metric regression."""

    WARNING = "warning"
    CRITICAL = "critical"


class ComparisonStatus(str, Enum):
    """Overall verdict of a baseline comparison."""

    CRITICAL = "critical"
    WARNING = "warning"
    IMPROVED = "improved"
    STABLE = "stable"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    ComparisonStatus.CRITICAL: "REGRESSION DETECTED",
    ComparisonStatus.WARNING: "Performance Warning",
    ComparisonStatus.IMPROVED: "Performance Improved",
    ComparisonStatus.STABLE: "Stable",
}


@dataclass(frozen=True)
class RegressionItem:
    """One metric that got worse by at least its warning threshold."""

    metric: str
    baseline_value: float
    current_value: float
    diff_percent: float
    severity: RegressionSeverity
    formatted_baseline: str
    formatted_current: str

    @property
    def label(self) -> str:
        return metric_label(self.metric)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "baseline_value": self.baseline_value,
            "current_value": self.current_value,
            "diff_percent": round(self.diff_percent, 1),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ImprovementItem:
    """One metric that got noticeably better."""

    metric: str
    baseline_value: float
    current_value: float
    improvement_percent: float
    formatted_baseline: str
    formatted_current: str

    @property
    def label(self) -> str:
        return metric_label(self.metric)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "baseline_value": self.baseline_value,
            "current_value": self.current_value,
            "improvement_percent": round(self.improvement_percent, 1),
        }


@dataclass(frozen=True)
class ComparisonResult:
    """Result of comparing a run against its baseline."""

    baseline: BaselineResult
    current: BaselineResult
    regressions: tuple[RegressionItem, ...] = ()
    improvements: tuple[ImprovementItem, ...] = ()
    has_critical: bool = False
    has_warning: bool = False

    @property
    def has_regressions(self) -> bool:
        return bool(self.regressions)

    @property
    def has_improvements(self) -> bool:
        return bool(self.improvements)

    @property
    def status(self) -> ComparisonStatus:
        if self.has_critical:
            return ComparisonStatus.CRITICAL
        if self.has_warning:
            return ComparisonStatus.WARNING
        if self.has_improvements and not self.has_regressions:
            return ComparisonStatus.IMPROVED
        return ComparisonStatus.STABLE

    @property
    def status_label(self) -> str:
        return self.status.label

    def should_fail_ci(self) -> bool:
        """Only critical regressions fail CI."""
        return self.has_critical

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "has_regressions": self.has_regressions,
            "has_improvements": self.has_improvements,
            "baseline": self.baseline.to_dict(),
            "current": self.current.to_dict(),
            "regressions": [r.to_dict() for r in self.regressions],
            "improvements": [i.to_dict() for i in self.improvements],
        }


def percent_diff(baseline: float, current: float) -> float:
    """Relative change from baseline to current, in percent."""
    if baseline == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - baseline) / baseline * 100, PERCENT_PRECISION)


class RegressionDetector:
    """
    Compares a run against its baseline.

    Execution time, peak memory and query count regress when they grow;
    the performance score regresses when it drops. A metric is reported
    as a regression (at or above its warning threshold) or an improvement
    (beyond the improvement floor), never both.

    Example:
        detector = RegressionDetector({"execution_time": {"warning": 5, "critical": 15}})
        comparison = detector.compare(baseline, current)
    """

    def __init__(
        self,
        thresholds: Mapping[str, Mapping[str, Any] | RegressionThreshold] | None = None,
    ) -> None:
        """
        Args:
            thresholds: Per-metric warning/critical percentages, keyed by
                execution_time, memory, queries and score. Missing entries
                use the defaults (default: the global configuration).
        """
        if thresholds is None:
            self.thresholds = dict(get_config().regression_thresholds)
        else:
            self.thresholds = coerce_thresholds(thresholds)

    def severity_for(self, diff_percent: float, threshold_key: str) -> RegressionSeverity | None:
        """Severity tier for a degrading change; critical is checked first."""
        threshold = self.thresholds.get(threshold_key, RegressionThreshold())
        if diff_percent >= threshold.critical:
            return RegressionSeverity.CRITICAL
        if diff_percent >= threshold.warning:
            return RegressionSeverity.WARNING
        return None

    def compare(self, baseline: BaselineResult, current: BaselineResult) -> ComparisonResult:
        regressions: list[RegressionItem] = []
        improvements: list[ImprovementItem] = []

        checks: tuple[tuple[str, str, Callable[[float], str]], ...] = (
            ("execution_time", "execution_time", format_seconds),
            ("peak_memory", "memory", format_bytes),
            ("total_queries", "queries", format_count),
        )
        for metric, threshold_key, formatter in checks:
            baseline_value = float(getattr(baseline, metric))
            current_value = float(getattr(current, metric))
            diff = percent_diff(baseline_value, current_value)
            self._classify(
                metric, threshold_key, baseline_value, current_value,
                degradation=diff, formatter=formatter,
                improvement_floor=TIME_MEMORY_QUERY_IMPROVEMENT_PERCENT,
                regressions=regressions, improvements=improvements,
            )

        # Score is inverted: a drop is the degrading direction
        baseline_score = float(baseline.performance_score)
        current_score = float(current.performance_score)
        score_drop = (
            round((baseline_score - current_score) / baseline_score * 100, PERCENT_PRECISION)
            if baseline_score > 0
            else 0.0
        )
        self._classify(
            "performance_score", "score", baseline_score, current_score,
            degradation=score_drop, formatter=format_score,
            improvement_floor=SCORE_IMPROVEMENT_PERCENT,
            regressions=regressions, improvements=improvements,
        )

        return ComparisonResult(
            baseline=baseline,
            current=current,
            regressions=tuple(regressions),
            improvements=tuple(improvements),
            has_critical=any(r.severity == RegressionSeverity.CRITICAL for r in regressions),
            has_warning=any(r.severity == RegressionSeverity.WARNING for r in regressions),
        )

    def _classify(
        self,
        metric: str,
        threshold_key: str,
        baseline_value: float,
        current_value: float,
        *,
        degradation: float,
        formatter: Callable[[float], str],
        improvement_floor: float,
        regressions: list[RegressionItem],
        improvements: list[ImprovementItem],
    ) -> None:
        if degradation > 0:
            severity = self.severity_for(degradation, threshold_key)
            if severity is not None:
                regressions.append(RegressionItem(
                    metric=metric,
                    baseline_value=baseline_value,
                    current_value=current_value,
                    diff_percent=degradation,
                    severity=severity,
                    formatted_baseline=formatter(baseline_value),
                    formatted_current=formatter(current_value),
                ))
        elif degradation < -improvement_floor:
            improvements.append(ImprovementItem(
                metric=metric,
                baseline_value=baseline_value,
                current_value=current_value,
                improvement_percent=abs(degradation),
                formatted_baseline=formatter(baseline_value),
                formatted_current=formatter(current_value),
            ))


# ── Storage ──────────────────────────────────────────────────────────────


class BaselineStore:
    """
    Stores one baseline per benchmark name as a JSON file.

    Example:
        store = BaselineStore("tests/benchmarks/baselines")
        store.save(result)
        store.load("users")        # BaselineResult or None
        store.list()               # all baselines, sorted by name
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else Path(get_config().baseline_path)

    @staticmethod
    def filename_for(benchmark_name: str) -> str:
        """File name used for a benchmark's baseline."""
        safe_name = re.sub(r"[^a-zA-Z0-9_-]", "_", benchmark_name)
        return safe_name.lower() + BASELINE_SUFFIX

    def path_for(self, benchmark_name: str) -> Path:
        return self.path / self.filename_for(benchmark_name)

    def save(self, result: BaselineResult) -> Path:
        """Write (or overwrite) the baseline for result.benchmark_name."""
        filepath = self.path_for(result.benchmark_name)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            filepath.write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise BaselineError(f"Failed to write baseline: {e}", path=str(filepath)) from e
        logger.info("Baseline saved to %s", filepath)
        return filepath

    def _read(self, filepath: Path) -> BaselineResult:
        try:
            data = json.loads(filepath.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BaselineError(f"Failed to read baseline: {e}", path=str(filepath)) from e
        if not isinstance(data, dict):
            raise BaselineError("Baseline file must contain a JSON object", path=str(filepath))
        try:
            return BaselineResult.from_dict(data)
        except ValidationError as e:
            raise BaselineError(f"Invalid baseline record: {e}", path=str(filepath)) from e

    def load(self, benchmark_name: str) -> BaselineResult | None:
        """
        Load a benchmark's baseline.

        Returns None when no baseline exists; raises BaselineError when the
        file exists but cannot be decoded.
        """
        filepath = self.path_for(benchmark_name)
        if not filepath.exists():
            return None
        return self._read(filepath)

    def exists(self, benchmark_name: str) -> bool:
        return self.path_for(benchmark_name).exists()

    def delete(self, benchmark_name: str) -> bool:
        """Delete a baseline. Returns False if there was none."""
        filepath = self.path_for(benchmark_name)
        if not filepath.exists():
            return False
        try:
            filepath.unlink()
        except OSError as e:
            raise BaselineError(f"Failed to delete baseline: {e}", path=str(filepath)) from e
        logger.info("Baseline deleted: %s", filepath)
        return True

    def list(self) -> list[BaselineResult]:
        """All readable baselines, sorted by benchmark name. Corrupt files are skipped."""
        if not self.path.is_dir():
            return []

        results: list[BaselineResult] = []
        for filepath in self.path.glob(f"*{BASELINE_SUFFIX}"):
            try:
                results.append(self._read(filepath))
            except BaselineError as e:
                logger.warning("Skipping unreadable baseline %s: %s", filepath, e.message)
        return sorted(results, key=lambda r: r.benchmark_name)

    def compare(
        self,
        current: BaselineResult,
        detector: RegressionDetector | None = None,
    ) -> ComparisonResult | None:
        """Compare current against its stored baseline; None when there is no baseline."""
        baseline = self.load(current.benchmark_name)
        if baseline is None:
            return None
        return (detector or RegressionDetector()).compare(baseline, current)
