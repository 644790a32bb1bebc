"""
Rule: Duplicate Query Detection

Detects the exact same SQL executed with the exact same bound values more
than once. Unlike N+1 (same shape, different values), every execution
after the first returns data the caller already had.

Severity is WARNING from warning_count repetitions, INFO below it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from pydantic import Field

from querybench.advisor.models import AdvisorSuggestion, CollectedQuery, Severity
from querybench.advisor.normalize import query_signature
from querybench.advisor.rules.base import AdvisorRule, RuleSettings

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector


class DuplicateSettings(RuleSettings):
    """
    Configuration for duplicate detection.

    Attributes:
        threshold: Minimum identical executions to report
        warning_count: Identical executions at which the issue becomes a WARNING
    """

    threshold: int = Field(default=2, ge=2)
    warning_count: int = Field(default=5, ge=1)


class DuplicateQueryRule(AdvisorRule):
    """Detect identical SQL + bindings executed `threshold` times or more."""

    rule_id = "duplicate"
    name = "Duplicate Query Detection"
    config_schema = DuplicateSettings

    def analyze(
        self,
        collector: "QueryCollector",
        config: Mapping[str, Any],
        settings: RuleSettings | None = None,
    ) -> list[AdvisorSuggestion]:
        settings: DuplicateSettings = settings or self.settings(config)  # type: ignore[assignment]

        grouped: dict[str, list[CollectedQuery]] = {}
        for query in collector.queries:
            grouped.setdefault(query_signature(query.sql, query.bindings), []).append(query)

        suggestions: list[AdvisorSuggestion] = []
        for signature, queries in grouped.items():
            count = len(queries)
            if count < settings.threshold:
                continue

            locations = list(dict.fromkeys(q.location for q in queries))
            total_time = sum(q.time for q in queries)
            wasted = total_time - total_time / count

            severity = Severity.WARNING if count >= settings.warning_count else Severity.INFO

            hints = ["This exact query is executed multiple times with the same data"]
            if len(locations) > 1:
                hints.append("Query is called from multiple locations - consider centralizing")
            hints.append("Consider caching the result or storing it in a variable")
            hints.append("If in a loop, move the query outside the loop")

            suggestions.append(AdvisorSuggestion(
                type="duplicate_query",
                severity=severity,
                title="Duplicate Query",
                description=f"Exact same query executed {count} times (wasted: {wasted:.2f}ms)",
                location=locations[0],
                suggestion="\n".join(hints),
                metadata={
                    "count": count,
                    "total_time_ms": total_time,
                    "wasted_time_ms": wasted,
                    "signature": signature,
                    "sql": queries[0].sql,
                    "locations": locations,
                },
            ))

        return suggestions
