"""
Data models for the query advisor.

These models represent what the advisor observes and what it reports:
- CollectedQuery: one observed query execution and its call site
- AdvisorSuggestion: one issue detected by a rule
- AdvisorReport: the aggregate produced by one analysis run

They're designed to be:
- Immutable: values don't change after creation
- Serializable: to_dict() output is JSON-ready for --json export
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, ConfigDict, Field

from querybench.advisor.normalize import normalize_sql

if TYPE_CHECKING:
    from querybench.advisor.callsite import StackFrame

UNKNOWN_LOCATION = "Unknown location"


class Severity(str, Enum):
    """
    Severity levels for suggestions.

    CRITICAL: Severe performance impact, fix before shipping
    WARNING: Significant performance issue that should be addressed
    INFO: Optimization opportunity, nice-to-have improvement
    """
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank: CRITICAL first, INFO last."""
        return _SEVERITY_RANK[self]

    @property
    def color(self) -> str:
        """Console color used when rendering this severity."""
        return _SEVERITY_COLOR[self]

    def __lt__(self, other: object) -> bool:
        """Enable sorting by severity (CRITICAL > WARNING > INFO)."""
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}
_SEVERITY_COLOR = {Severity.CRITICAL: "red", Severity.WARNING: "yellow", Severity.INFO: "blue"}


@dataclass(frozen=True)
class QueryEvent:
    """
    Inbound query-execution event, as produced by an instrumentation hook.

    Attributes:
        sql: Raw SQL text as sent to the driver
        bindings: Bound parameter values, in order
        time_ms: Execution time in milliseconds
        connection: Logical connection name
        backtrace: Call stack at execution time, innermost frame first
    """

    sql: str
    bindings: tuple[Any, ...] = ()
    time_ms: float = 0.0
    connection: str = "default"
    backtrace: tuple["StackFrame", ...] = ()


@dataclass(frozen=True)
class CollectedQuery:
    """
    One observed query execution with its call-site origin.

    Created once per event during an active collection window and never
    mutated. The origin fields are None when no application frame could be
    attributed.
    """

    sql: str
    bindings: tuple[Any, ...]
    time: float
    connection: str
    file: str | None = None
    line: int | None = None
    class_name: str | None = None
    method: str | None = None
    normalized_sql: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_event(
        cls,
        event: QueryEvent,
        skip_modules: Sequence[str] | None = None,
        app_paths: Sequence[str] | None = None,
    ) -> "CollectedQuery":
        """Build a CollectedQuery, attributing the event to its call site."""
        from querybench.advisor.callsite import extract_origin

        origin = extract_origin(event.backtrace, skip_modules=skip_modules, app_paths=app_paths)

        return cls(
            sql=event.sql,
            bindings=tuple(event.bindings),
            time=float(event.time_ms),
            connection=event.connection,
            file=origin.file if origin else None,
            line=origin.line if origin else None,
            class_name=origin.class_name if origin else None,
            method=origin.function if origin else None,
            normalized_sql=normalize_sql(event.sql),
        )

    @property
    def location(self) -> str:
        """Short location string used for grouping and display."""
        if self.class_name and self.method:
            return f"{self.class_name}.{self.method}()"
        if self.file and self.line:
            return f"{os.path.basename(self.file)}:{self.line}"
        return UNKNOWN_LOCATION

    @property
    def full_location(self) -> str:
        """Full file path with line, or 'Unknown'."""
        if self.file and self.line:
            return f"{self.file}:{self.line}"
        return "Unknown"


class AdvisorSuggestion(BaseModel):
    """
    A single optimization suggestion produced by one advisor rule.

    Attributes:
        type: Rule-assigned tag (n_plus_one, slow_query, hotspot, duplicate_query)
        severity: How serious the issue is
        title: Human-readable one-line summary
        description: Quantified description of the issue
        location: Call-site location string, if known
        suggestion: Remediation text, possibly multi-line
        metadata: Counts, timings, sample SQL and detected names
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1, description="Suggestion type tag")
    severity: Severity = Field(..., description="Severity level")
    title: str = Field(..., min_length=1, description="One-line summary")
    description: str = Field(..., description="Detailed description")
    location: str | None = Field(default=None, description="Call-site location")
    suggestion: str | None = Field(default=None, description="Remediation text")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Rule-specific data")

    @classmethod
    def info(cls, type: str, title: str, description: str, **kwargs: Any) -> "AdvisorSuggestion":
        """Create an INFO suggestion."""
        return cls(type=type, severity=Severity.INFO, title=title, description=description, **kwargs)

    @classmethod
    def warning(cls, type: str, title: str, description: str, **kwargs: Any) -> "AdvisorSuggestion":
        """Create a WARNING suggestion."""
        return cls(type=type, severity=Severity.WARNING, title=title, description=description, **kwargs)

    @classmethod
    def critical(cls, type: str, title: str, description: str, **kwargs: Any) -> "AdvisorSuggestion":
        """Create a CRITICAL suggestion."""
        return cls(type=type, severity=Severity.CRITICAL, title=title, description=description, **kwargs)

    @property
    def suggestion_lines(self) -> list[str]:
        """Remediation text split into lines."""
        if not self.suggestion:
            return []
        return self.suggestion.split("\n")

    def to_dict(self) -> dict[str, Any]:
        """Reduced form used in report exports."""
        return {
            "type": self.type,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "suggestion": self.suggestion,
        }


class AdvisorReport(BaseModel):
    """
    Complete result of one advisor analysis.

    Contains:
    - totals: query count, DB time (ms), unique normalized queries
    - suggestions: all rule output, sorted by severity
    - per-location query counts and time, sorted descending
    - analysis_time: how long the analysis itself took (ms)
    """

    model_config = ConfigDict(frozen=True)

    total_queries: int = Field(default=0, ge=0)
    total_db_time: float = Field(default=0.0, ge=0)
    unique_queries: int = Field(default=0, ge=0)
    suggestions: tuple[AdvisorSuggestion, ...] = Field(default_factory=tuple)
    queries_by_location: dict[str, int] = Field(default_factory=dict)
    time_by_location: dict[str, float] = Field(default_factory=dict)
    analysis_time: float = Field(default=0.0, ge=0)

    @property
    def has_suggestions(self) -> bool:
        return len(self.suggestions) > 0

    def suggestions_by_severity(self, severity: Severity) -> list[AdvisorSuggestion]:
        """Get all suggestions of a specific severity."""
        return [s for s in self.suggestions if s.severity == severity]

    def suggestions_by_type(self) -> dict[str, list[AdvisorSuggestion]]:
        """Group suggestions by type, preserving report order."""
        grouped: dict[str, list[AdvisorSuggestion]] = {}
        for suggestion in self.suggestions:
            grouped.setdefault(suggestion.type, []).append(suggestion)
        return grouped

    @property
    def critical_count(self) -> int:
        return len(self.suggestions_by_severity(Severity.CRITICAL))

    @property
    def warning_count(self) -> int:
        return len(self.suggestions_by_severity(Severity.WARNING))

    @property
    def info_count(self) -> int:
        return len(self.suggestions_by_severity(Severity.INFO))

    def top_locations_by_query_count(self, limit: int = 5) -> dict[str, int]:
        """Top N locations by number of queries issued."""
        ranked = sorted(self.queries_by_location.items(), key=lambda kv: kv[1], reverse=True)
        return dict(ranked[:limit])

    def top_locations_by_time(self, limit: int = 5) -> dict[str, float]:
        """Top N locations by DB time spent."""
        ranked = sorted(self.time_by_location.items(), key=lambda kv: kv[1], reverse=True)
        return dict(ranked[:limit])

    def db_time_percentage(self, total_execution_ms: float) -> float:
        """Share of the total execution time spent in the database."""
        if total_execution_ms <= 0:
            return 0.0
        return (self.total_db_time / total_execution_ms) * 100

    def summary(self) -> dict[str, int]:
        """Suggestion counts by severity."""
        return {
            "total": len(self.suggestions),
            "critical": self.critical_count,
            "warning": self.warning_count,
            "info": self.info_count,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "total_queries": self.total_queries,
            "total_db_time_ms": round(self.total_db_time, 2),
            "unique_queries": self.unique_queries,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "queries_by_location": dict(self.queries_by_location),
            "time_by_location": dict(self.time_by_location),
            "analysis_time_ms": round(self.analysis_time, 2),
        }
