"""
Rule: Slow Query Detection

Reports every individual query whose execution time exceeds a threshold,
with hints derived from the shape of the SQL.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import Field

from querybench.advisor.models import AdvisorSuggestion, CollectedQuery, Severity
from querybench.advisor.normalize import PARAM_PATTERN
from querybench.advisor.rules.base import AdvisorRule, RuleSettings

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector

_FILTER_COLUMN = re.compile(
    rf"WHERE\s+(?:[`\"]?\w+[`\"]?\.)?[`\"]?(\w+)[`\"]?\s*=\s*{PARAM_PATTERN}",
    re.IGNORECASE,
)
_LEADING_WILDCARD_LITERAL = re.compile(r"LIKE\s+['\"]%", re.IGNORECASE)
_LIKE_PARAM = re.compile(rf"LIKE\s+{PARAM_PATTERN}", re.IGNORECASE)
_SELECT_STAR = re.compile(r"SELECT\s+\*", re.IGNORECASE)


class SlowQuerySettings(RuleSettings):
    """
    Configuration for slow query detection.

    Attributes:
        threshold_ms: Queries strictly slower than this are reported
        critical_ms: Queries at least this slow are CRITICAL
    """

    threshold_ms: float = Field(default=100, ge=0)
    critical_ms: float = Field(default=1000, ge=0)


def _has_leading_wildcard(query: CollectedQuery) -> bool:
    if _LEADING_WILDCARD_LITERAL.search(query.sql):
        return True
    if _LIKE_PARAM.search(query.sql):
        return any(isinstance(value, str) and value.startswith("%") for value in query.bindings)
    return False


def build_hints(query: CollectedQuery) -> str:
    """Remediation hints for one slow query, one per line."""
    hints: list[str] = []
    upper = query.sql.upper()

    if "SELECT" in upper and "WHERE" not in upper and "LIMIT" not in upper:
        hints.append("Query has no WHERE clause - consider adding filters")

    match = _FILTER_COLUMN.search(query.sql)
    if match:
        hints.append(f"Consider adding an index on column '{match.group(1)}'")

    if "ORDER BY" in upper:
        hints.append("Ensure columns in ORDER BY clause are indexed")

    if _has_leading_wildcard(query):
        hints.append(
            "LIKE with leading wildcard (%) cannot use indexes - consider full-text search"
        )

    if _SELECT_STAR.search(query.sql):
        hints.append("Avoid SELECT * - select only needed columns")

    if not hints:
        hints.append("Review query execution plan with EXPLAIN")
        hints.append("Consider adding appropriate indexes")

    return "\n".join(hints)


class SlowQueryRule(AdvisorRule):
    """Detect queries slower than `threshold_ms`."""

    rule_id = "slow_query"
    name = "Slow Query Detection"
    config_schema = SlowQuerySettings

    def analyze(
        self,
        collector: "QueryCollector",
        config: Mapping[str, Any],
        settings: RuleSettings | None = None,
    ) -> list[AdvisorSuggestion]:
        settings: SlowQuerySettings = settings or self.settings(config)  # type: ignore[assignment]
        suggestions: list[AdvisorSuggestion] = []

        for query in collector.slow_queries(settings.threshold_ms):
            severity = Severity.CRITICAL if query.time >= settings.critical_ms else Severity.WARNING

            suggestions.append(AdvisorSuggestion(
                type="slow_query",
                severity=severity,
                title="Slow Query Detected",
                description=f"Query took {query.time:.2f}ms (threshold: {settings.threshold_ms:.0f}ms)",
                location=query.location,
                suggestion=build_hints(query),
                metadata={
                    "time_ms": query.time,
                    "sql": query.sql,
                    "file": query.file,
                    "line": query.line,
                },
            ))

        return suggestions
