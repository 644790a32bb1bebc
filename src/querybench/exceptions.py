"""
Package-level exception hierarchy for QueryBench.

All exceptions inherit from QueryBenchError, enabling:
- Catching all QueryBench errors with a single except clause
- Context fields for debugging (rule_id, config_key)
- Structured serialization via to_dict() for JSON error output

Hierarchy:
    QueryBenchError
    ├── AdvisorError           – Errors during advisor orchestration
    │   └── RuleError          – A specific rule failed during analysis
    ├── ConfigurationError     – Configuration could not be loaded
    └── BaselineError          – Baseline storage / decoding failures

Data absence (no queries, no iterations, no stored baseline) is never an
error: it is represented by zero-valued results or None.
"""

from __future__ import annotations

from typing import Any


class QueryBenchError(Exception):
    """
    Base exception for all QueryBench errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Advisor Errors ───────────────────────────────────────────────────────


class AdvisorError(QueryBenchError):
    """Errors during advisor orchestration."""
    pass


class RuleError(AdvisorError):
    """
    A rule raised while analyzing collected queries.

    Only surfaced when the Advisor runs with fail_fast=True; otherwise the
    failing rule is logged and skipped.

    Attributes:
        rule_id: Configuration key of the rule that failed.
        original_error: The underlying exception.
    """

    def __init__(self, rule_id: str, original_error: Exception) -> None:
        self.rule_id = rule_id
        self.original_error = original_error
        message = (
            f"Rule '{rule_id}' failed: "
            f"{original_error.__class__.__name__}: {original_error}"
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["rule_id"] = self.rule_id
        result["original_error_type"] = self.original_error.__class__.__name__
        result["original_error_message"] = str(self.original_error)
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(QueryBenchError):
    """
    Configuration could not be loaded.

    Attributes:
        config_key: The configuration key or source that caused the error.
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Baseline Errors ──────────────────────────────────────────────────────


class BaselineError(QueryBenchError):
    """
    Errors in baseline storage.

    Raised when a baseline file is corrupt or cannot be written. A baseline
    that simply does not exist is not an error.

    Attributes:
        path: The baseline file involved, if known.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        return result
