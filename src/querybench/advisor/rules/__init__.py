"""Advisor rules module - individual detection rules."""

from querybench.advisor.rules.base import AdvisorRule, RuleSettings
from querybench.advisor.rules.duplicate_query import DuplicateQueryRule
from querybench.advisor.rules.hotspot import HotspotRule
from querybench.advisor.rules.n_plus_one import NPlusOneRule
from querybench.advisor.rules.slow_query import SlowQueryRule


def default_rules() -> list[AdvisorRule]:
    """The built-in rules, in their default execution order."""
    return [NPlusOneRule(), SlowQueryRule(), HotspotRule(), DuplicateQueryRule()]


__all__ = [
    "AdvisorRule",
    "RuleSettings",
    "default_rules",
    # Individual rules
    "DuplicateQueryRule",
    "HotspotRule",
    "NPlusOneRule",
    "SlowQueryRule",
]
