"""
Rule: Database Hotspot

Detects a single call site responsible for a disproportionate share of
the queries or of the database time.

A location qualifies when EITHER its query share OR its time share reaches
threshold_percent, and it is CRITICAL when either share reaches
critical_percent. Small workloads (fewer than min_queries queries) are
not analyzed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from pydantic import Field

from querybench.advisor.models import AdvisorSuggestion, Severity
from querybench.advisor.rules.base import AdvisorRule, RuleSettings

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector


class HotspotSettings(RuleSettings):
    """
    Configuration for hotspot detection.

    Attributes:
        threshold_percent: Share of queries or time that makes a hotspot
        critical_percent: Share of queries or time that makes it CRITICAL
        min_queries: Minimum total queries before the rule applies
    """

    threshold_percent: float = Field(default=50, ge=0, le=100)
    critical_percent: float = Field(default=80, ge=0, le=100)
    min_queries: int = Field(default=10, ge=0)


def _hints(query_percent: float, time_percent: float, threshold: float) -> str:
    hints: list[str] = []
    if query_percent >= threshold:
        hints.append("This location generates a large number of queries")
        hints.append("Consider batching operations or using bulk queries")
    if time_percent >= threshold:
        hints.append("This location consumes most of the DB time")
        hints.append("Review queries for optimization opportunities")
    hints.append("Consider caching results if data changes infrequently")
    hints.append("Review if all queries are necessary")
    return "\n".join(hints)


class HotspotRule(AdvisorRule):
    """Detect call sites dominating query count or DB time."""

    rule_id = "hotspot"
    name = "Database Hotspot Detection"
    config_schema = HotspotSettings

    def analyze(
        self,
        collector: "QueryCollector",
        config: Mapping[str, Any],
        settings: RuleSettings | None = None,
    ) -> list[AdvisorSuggestion]:
        settings: HotspotSettings = settings or self.settings(config)  # type: ignore[assignment]

        total_queries = collector.query_count
        total_time = collector.total_time
        if total_queries == 0 or total_queries < settings.min_queries:
            return []

        suggestions: list[AdvisorSuggestion] = []
        for location, queries in collector.group_by_location().items():
            query_count = len(queries)
            location_time = sum(q.time for q in queries)

            query_percent = query_count / total_queries * 100
            time_percent = location_time / total_time * 100 if total_time > 0 else 0.0

            if query_percent < settings.threshold_percent and time_percent < settings.threshold_percent:
                continue

            if query_percent >= settings.critical_percent or time_percent >= settings.critical_percent:
                severity = Severity.CRITICAL
            else:
                severity = Severity.WARNING

            first = queries[0]
            suggestions.append(AdvisorSuggestion(
                type="hotspot",
                severity=severity,
                title="Database Hotspot",
                description=(
                    f"{query_count} queries ({query_percent:.1f}% of total), "
                    f"{location_time:.2f}ms ({time_percent:.1f}% of DB time)"
                ),
                location=location,
                suggestion=_hints(query_percent, time_percent, settings.threshold_percent),
                metadata={
                    "query_count": query_count,
                    "query_percent": query_percent,
                    "time_ms": location_time,
                    "time_percent": time_percent,
                    "file": first.file,
                    "line": first.line,
                },
            ))

        return suggestions
