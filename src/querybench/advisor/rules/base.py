"""
Base class for advisor rules.

All rules must inherit from AdvisorRule and implement the analyze() method.
A rule is a pure function of a collector snapshot and the advisor
configuration: it never mutates the collector and never touches global
state, so rules can run in any order.

Each rule reads only its own section of the configuration,
config["rules"][rule_id], validated against its settings schema.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector
    from querybench.advisor.models import AdvisorSuggestion

logger = logging.getLogger(__name__)


class RuleSettings(BaseModel):
    """
    Base settings for all advisor rules.

    Rules define their own schema by subclassing this. Unknown keys are
    ignored so configuration files can carry settings for newer versions.

    Example:
        class MyRuleSettings(RuleSettings):
            threshold: int = 10
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True


def format_ms(ms: float) -> str:
    """Format a millisecond duration, switching to seconds at 1000ms."""
    if ms >= 1000:
        return f"{ms / 1000:.2f}s"
    return f"{ms:.2f}ms"


class AdvisorRule(ABC):
    """
    Abstract base class for advisor rules.

    Each rule detects one class of inefficiency in the collected queries.
    Rules should be:
    - Deterministic: same queries and config always give the same output
    - Pure: no mutation of the collector, no side effects
    - Focused: one rule, one concern

    Attributes:
        rule_id: Configuration key under config["rules"] (e.g., "n_plus_one")
        name: Human-readable rule name
        config_schema: Pydantic model for the rule's settings
    """

    rule_id: str
    name: str = ""
    config_schema: type[RuleSettings] = RuleSettings

    def settings(self, config: Mapping[str, Any]) -> RuleSettings:
        """
        Validate this rule's configuration section.

        Missing keys take their defaults. Malformed values are dropped
        individually, logged, and replaced by their defaults.
        """
        raw = _rule_section(config, self.rule_id)
        try:
            return self.config_schema.model_validate(raw)
        except ValidationError as e:
            invalid = {err["loc"][0] for err in e.errors() if err.get("loc")}
            logger.warning(
                "Invalid settings for rule %s (%s), using defaults for those keys",
                self.rule_id,
                ", ".join(sorted(str(key) for key in invalid)) or "unknown",
            )
            cleaned = {k: v for k, v in raw.items() if k not in invalid}
            try:
                return self.config_schema.model_validate(cleaned)
            except ValidationError:
                return self.config_schema()

    def is_enabled(self, config: Mapping[str, Any]) -> bool:
        """Whether this rule should run under the given configuration."""
        return self.settings(config).enabled

    @abstractmethod
    def analyze(
        self,
        collector: "QueryCollector",
        config: Mapping[str, Any],
        settings: RuleSettings | None = None,
    ) -> list["AdvisorSuggestion"]:
        """
        Analyze collected queries and return suggestions.

        Args:
            collector: Snapshot source of collected queries (read only)
            config: Full advisor configuration mapping
            settings: This rule's settings when already validated from config

        Returns:
            List of suggestions, or empty list if no issues detected.
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rule_id={self.rule_id!r})"


def _rule_section(config: Mapping[str, Any], rule_id: str) -> dict[str, Any]:
    rules = config.get("rules") if isinstance(config, Mapping) else None
    if not isinstance(rules, Mapping):
        return {}
    section = rules.get(rule_id)
    if not isinstance(section, Mapping):
        if section is not None:
            logger.warning("Ignoring non-mapping settings for rule %s: %r", rule_id, section)
        return {}
    return dict(section)
