"""
Query advisor: orchestrates collection and rule analysis.

The Advisor owns a QueryCollector and an ordered list of rules. A measured
run is bracketed by start()/stop(); stop() runs every enabled rule over
the collected queries and returns an AdvisorReport.

Design principles:
1. Rules are injected explicitly: the default set, plus any added with
   add_rule(). There is no global registry.
2. A failing rule never takes the others down. It is logged and skipped,
   unless fail_fast=True, in which case it is raised as RuleError.
3. Analysis is read-only over the collector.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Sequence

from querybench.advisor.collector import QueryCollector
from querybench.advisor.models import AdvisorReport, AdvisorSuggestion
from querybench.advisor.rules import AdvisorRule, default_rules
from querybench.config import DEFAULT_ADVISOR_CONFIG, deep_merge, get_config
from querybench.exceptions import RuleError

logger = logging.getLogger(__name__)


class Advisor:
    """
    Runs advisor rules over queries collected during a measured run.

    Example:
        advisor = Advisor()
        advisor.start()
        run_workload()
        report = advisor.stop()

        for suggestion in report.suggestions:
            print(suggestion.severity, suggestion.title)
    """

    def __init__(
        self,
        collector: QueryCollector | None = None,
        config: Mapping[str, Any] | None = None,
        rules: Sequence[AdvisorRule] | None = None,
        enabled: bool = True,
        fail_fast: bool = False,
    ) -> None:
        """
        Args:
            collector: Collector to use (default: a new QueryCollector)
            config: Advisor configuration, merged over the defaults
                (default: the global configuration's advisor section)
            rules: Rules to run, in order (default: the built-in rules)
            enabled: Explicit on/off switch, ANDed with config["enabled"]
            fail_fast: Raise RuleError on the first rule failure
        """
        self._collector = collector if collector is not None else QueryCollector()
        if config is None:
            self._config = get_config().advisor_config()
        else:
            self._config = deep_merge(DEFAULT_ADVISOR_CONFIG, config)
        self._rules: list[AdvisorRule] = list(rules) if rules is not None else default_rules()
        self._enabled = enabled
        self.fail_fast = fail_fast

    # ── Configuration ─────────────────────────────────────────────────

    @property
    def collector(self) -> QueryCollector:
        return self._collector

    @property
    def config(self) -> dict[str, Any]:
        return self._config

    @property
    def rules(self) -> tuple[AdvisorRule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: AdvisorRule) -> "Advisor":
        """Append a rule; it runs after the existing ones."""
        self._rules.append(rule)
        return self

    def set_config(self, config: Mapping[str, Any]) -> "Advisor":
        """Deep-merge config over the built-in defaults."""
        self._config = deep_merge(DEFAULT_ADVISOR_CONFIG, config)
        return self

    def set_enabled(self, enabled: bool) -> "Advisor":
        self._enabled = enabled
        return self

    def is_enabled(self) -> bool:
        """Enabled only when both the explicit flag and config['enabled'] are true."""
        return self._enabled and bool(self._config.get("enabled", True))

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        """Start collecting queries (no-op when disabled)."""
        if not self.is_enabled():
            return
        self._collector.start()

    def stop(self) -> AdvisorReport | None:
        """
        Stop collecting and analyze.

        Returns:
            The report, or None when the advisor is disabled and did not run.
        """
        if not self.is_enabled():
            return None
        self._collector.stop()
        return self.analyze()

    def reset(self) -> None:
        """Clear collected queries."""
        self._collector.reset()

    # ── Analysis ──────────────────────────────────────────────────────

    def analyze(self) -> AdvisorReport:
        """
        Run every enabled rule over the collected queries.

        Suggestions are stable-sorted by severity (critical, warning, info);
        rule order is preserved within a severity.
        """
        start_time = time.perf_counter()
        suggestions: list[AdvisorSuggestion] = []

        for rule in self._rules:
            settings = rule.settings(self._config)
            if not settings.enabled:
                logger.debug("Rule %s disabled, skipping", rule.rule_id)
                continue

            rule_start = time.perf_counter()
            try:
                rule_suggestions = rule.analyze(self._collector, self._config, settings=settings)
            except Exception as e:
                if self.fail_fast:
                    raise RuleError(rule.rule_id, e) from e
                logger.warning("Rule %s failed: %s", rule.rule_id, e)
                continue

            runtime_ms = (time.perf_counter() - rule_start) * 1000
            logger.debug(
                "Rule %s produced %d suggestions in %.2fms",
                rule.rule_id,
                len(rule_suggestions),
                runtime_ms,
            )
            suggestions.extend(rule_suggestions)

        suggestions.sort(key=lambda s: s.severity.rank)

        queries_by_location: dict[str, int] = {}
        time_by_location: dict[str, float] = {}
        for location, queries in self._collector.group_by_location().items():
            queries_by_location[location] = len(queries)
            time_by_location[location] = sum(q.time for q in queries)

        queries_by_location = dict(
            sorted(queries_by_location.items(), key=lambda kv: kv[1], reverse=True)
        )
        time_by_location = dict(
            sorted(time_by_location.items(), key=lambda kv: kv[1], reverse=True)
        )

        analysis_time = (time.perf_counter() - start_time) * 1000

        return AdvisorReport(
            total_queries=self._collector.query_count,
            total_db_time=self._collector.total_time,
            unique_queries=self._collector.unique_query_count,
            suggestions=tuple(suggestions),
            queries_by_location=queries_by_location,
            time_by_location=time_by_location,
            analysis_time=analysis_time,
        )
