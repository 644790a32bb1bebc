"""
Rule: N+1 Query Detection

Detects the same query shape executed many times with different values,
the signature of lazy-loading a relationship inside a loop.

Why it matters:
- Each round trip pays network and planning overhead
- Cost grows linearly with the number of parent rows
- One batched query (IN list or eager load) replaces all of them

The rule also guesses the table and relationship being loaded from the
shape of the SQL, so the remediation can name the attribute to eager-load.
Inference is best effort: when it fails the suggestion falls back to
generic advice.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import Field

from querybench.advisor.models import AdvisorSuggestion, Severity
from querybench.advisor.normalize import PARAM_PATTERN
from querybench.advisor.rules.base import AdvisorRule, RuleSettings, format_ms

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector

_QUOTE = r"[`\"']?"

# SELECT ... FROM <table> [alias] WHERE [<qualifier>.]<column> = <param>
_EQUALITY_LOOKUP = re.compile(
    rf"SELECT\s+.+?\s+FROM\s+{_QUOTE}(\w+){_QUOTE}"
    rf"(?:\s+(?:AS\s+)?(?!WHERE\b)\w+)?"
    rf"\s+WHERE\s+(?:{_QUOTE}\w+{_QUOTE}\.)?{_QUOTE}(\w+){_QUOTE}\s*=\s*{PARAM_PATTERN}",
    re.IGNORECASE | re.DOTALL,
)


class NPlusOneSettings(RuleSettings):
    """
    Configuration for N+1 detection.

    Attributes:
        threshold: Minimum executions of one query shape to report
        critical_count: Executions at which the issue becomes CRITICAL
        critical_time_ms: Total time at which the issue becomes CRITICAL
        bulk_cost_multiplier: Cost of one batched query, in single-query units
    """

    threshold: int = Field(default=10, ge=1)
    critical_count: int = Field(default=100, ge=1)
    critical_time_ms: float = Field(default=1000, ge=0)
    bulk_cost_multiplier: float = Field(default=5, ge=0)


def singularize(word: str) -> str:
    """Naive English singular form of a table name."""
    lowered = word.lower()
    if lowered.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lowered.endswith(("sses", "xes", "ches", "shes", "zes")):
        return word[:-2]
    if lowered.endswith("s") and not lowered.endswith("ss"):
        return word[:-1]
    return word


def camelize(name: str) -> str:
    """snake_case to camelCase."""
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    return parts[0].lower() + "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])


def infer_relation(table: str, column: str | None) -> str:
    """
    Guess the relationship name that lazy-loads rows of table.

    Examples:
        infer_relation("users", "id")                  -> "user"
        infer_relation("user_settings", "user_id")     -> "userSetting"
        infer_relation("user_settings", "name")        -> "settings"
    """
    if column and column.lower() == "id":
        return singularize(table)
    if column and column.lower().endswith("_id"):
        return camelize(singularize(table))

    parts = table.split("_")
    if len(parts) > 1:
        return camelize("_".join(parts[1:]))
    return camelize(singularize(table))


def build_remediation(sql: str) -> tuple[str, str | None, str | None]:
    """
    Remediation text plus the detected table and relationship names.

    Returns:
        (suggestion text, table or None, relation or None)
    """
    lines: list[str] = []
    table: str | None = None
    relation: str | None = None

    match = _EQUALITY_LOOKUP.search(sql)
    if match:
        table, column = match.group(1), match.group(2)
        relation = infer_relation(table, column)
        if column.lower() == "id":
            lines.append(f"→ Add eager loading: .options(joinedload(Model.{relation}))")
        else:
            lines.append(f"→ Add eager loading: .options(selectinload(Model.{relation}))")
            lines.append(f"→ Or batch the lookups: WHERE {table}.{column} IN (...)")

    if not lines:
        lines.append("→ Use eager loading: .options(selectinload(Model.relationship))")
        lines.append("→ Or batch with: select(Model).where(Model.id.in_(ids))")

    lines.append("→ This could reduce queries from N to 1")

    return "\n".join(lines), table, relation


class NPlusOneRule(AdvisorRule):
    """
    Detect query shapes repeated at least `threshold` times.

    Queries are grouped by normalized SQL, so executions differing only in
    literal values land in the same group.
    """

    rule_id = "n_plus_one"
    name = "N+1 Query Detection"
    config_schema = NPlusOneSettings

    def analyze(
        self,
        collector: "QueryCollector",
        config: Mapping[str, Any],
        settings: RuleSettings | None = None,
    ) -> list[AdvisorSuggestion]:
        settings: NPlusOneSettings = settings or self.settings(config)  # type: ignore[assignment]
        suggestions: list[AdvisorSuggestion] = []

        for normalized_sql, queries in collector.group_by_normalized_sql().items():
            count = len(queries)
            if count < settings.threshold:
                continue

            first = queries[0]
            locations = list(dict.fromkeys(q.location for q in queries))
            total_time = sum(q.time for q in queries)
            avg_time = total_time / count
            savings = self.potential_savings(total_time, avg_time, settings.bulk_cost_multiplier)

            if count >= settings.critical_count or total_time >= settings.critical_time_ms:
                severity = Severity.CRITICAL
            else:
                severity = Severity.WARNING

            text, table, relation = build_remediation(normalized_sql)

            suggestions.append(AdvisorSuggestion(
                type="n_plus_one",
                severity=severity,
                title="Possible N+1 Query",
                description=(
                    f"{count} identical queries "
                    f"(total: {format_ms(total_time)}, avg: {avg_time:.2f}ms)"
                ),
                location=locations[0],
                suggestion=text,
                metadata={
                    "count": count,
                    "total_time_ms": total_time,
                    "avg_time_ms": avg_time,
                    "potential_savings_ms": savings,
                    "potential_savings_formatted": format_ms(savings),
                    "normalized_sql": normalized_sql,
                    "sample_sql": first.sql,
                    "locations": locations,
                    "detected_table": table,
                    "detected_relation": relation,
                },
            ))

        return suggestions

    @staticmethod
    def potential_savings(total_time: float, avg_time: float, multiplier: float) -> float:
        """Time saved by replacing the group with one batched query."""
        return max(0.0, total_time - avg_time * multiplier)
