"""
Configuration system for QueryBench.

Implements 12-factor config principles:
- Documented defaults for every threshold (callers may omit everything)
- Environment variables as primary override source
- Optional JSON/YAML config file
- Per-rule advisor settings and per-metric regression thresholds

Missing or malformed values never raise: they fall back to the defaults
below and a warning is logged.

Usage:
    from querybench.config import get_config

    config = get_config()

    advisor_config = config.advisor_config()
    thresholds = config.regression_thresholds

Environment variables:
    QUERYBENCH_CONFIG_FILE=querybench.yaml
    QUERYBENCH_ADVISOR_ENABLED=false
    QUERYBENCH_BASELINE_PATH=tests/benchmark/baselines
    QUERYBENCH_RULE_N_PLUS_ONE__THRESHOLD=20
    QUERYBENCH_RULE_DUPLICATE__ENABLED=false
    QUERYBENCH_THRESHOLD_EXECUTION_TIME__CRITICAL=30
"""

from __future__ import annotations

import copy
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from querybench.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_ADVISOR_CONFIG: dict[str, Any] = {
    "enabled": True,
    "rules": {
        "n_plus_one": {
            "enabled": True,
            "threshold": 10,
            "critical_count": 100,
            "critical_time_ms": 1000,
            "bulk_cost_multiplier": 5,
        },
        "slow_query": {
            "enabled": True,
            "threshold_ms": 100,
            "critical_ms": 1000,
        },
        "hotspot": {
            "enabled": True,
            "threshold_percent": 50,
            "critical_percent": 80,
            "min_queries": 10,
        },
        "duplicate": {
            "enabled": True,
            "threshold": 2,
            "warning_count": 5,
        },
    },
}


class RegressionThreshold(BaseModel):
    """Warning/critical percentage pair for one compared metric."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    warning: float = Field(default=10.0, ge=0, description="Percent change that triggers a warning")
    critical: float = Field(default=25.0, ge=0, description="Percent change that triggers a critical regression")


DEFAULT_REGRESSION_THRESHOLDS: dict[str, RegressionThreshold] = {
    "execution_time": RegressionThreshold(warning=10, critical=25),
    "memory": RegressionThreshold(warning=15, critical=30),
    "queries": RegressionThreshold(warning=20, critical=50),
    "score": RegressionThreshold(warning=10, critical=20),
}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively merge override into a copy of base.

    Nested mappings are merged key by key; any other value in override
    replaces the value in base.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def coerce_thresholds(
    raw: Mapping[str, Any] | None,
) -> dict[str, RegressionThreshold]:
    """
    Build a complete threshold table from a partial or malformed mapping.

    Each metric falls back to its default pair, and each missing or invalid
    warning/critical value falls back individually.
    """
    thresholds = dict(DEFAULT_REGRESSION_THRESHOLDS)
    if not raw:
        return thresholds

    for metric, value in raw.items():
        default = thresholds.get(metric, RegressionThreshold())
        if isinstance(value, RegressionThreshold):
            thresholds[metric] = value
            continue
        if not isinstance(value, Mapping):
            logger.warning("Ignoring malformed regression threshold for %s: %r", metric, value)
            continue

        update: dict[str, float] = {}
        for level in ("warning", "critical"):
            if level not in value:
                continue
            try:
                update[level] = float(value[level])
            except (TypeError, ValueError):
                logger.warning(
                    "Ignoring malformed %s threshold for %s: %r", level, metric, value[level]
                )
        thresholds[metric] = default.model_copy(update=update)

    return thresholds


class Config(BaseModel):
    """
    QueryBench configuration.

    Loaded from environment variables and an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    advisor_enabled: bool = Field(
        default=True,
        description="Global switch for the query advisor",
    )

    advisor: dict[str, Any] = Field(
        default_factory=lambda: copy.deepcopy(DEFAULT_ADVISOR_CONFIG),
        description="Advisor settings: {'enabled': bool, 'rules': {rule_key: {...}}}",
    )

    regression_thresholds: dict[str, RegressionThreshold] = Field(
        default_factory=lambda: dict(DEFAULT_REGRESSION_THRESHOLDS),
        description="Per-metric regression thresholds",
    )

    baseline_path: str = Field(
        default=".querybench/baselines",
        description="Directory holding one JSON baseline per benchmark",
    )

    display_max_per_type: int = Field(
        default=3,
        ge=1,
        description="Maximum suggestions rendered per suggestion type",
    )

    display_max_total: int = Field(
        default=10,
        ge=1,
        description="Maximum suggestions rendered in total",
    )

    def advisor_config(self) -> dict[str, Any]:
        """
        Advisor configuration mapping, merged over the defaults.

        The advisor's own 'enabled' key is ANDed with advisor_enabled.
        """
        merged = deep_merge(DEFAULT_ADVISOR_CONFIG, self.advisor)
        merged["enabled"] = bool(merged.get("enabled", True)) and self.advisor_enabled
        return merged

    def rule_settings(self, rule_key: str) -> dict[str, Any]:
        """Raw settings mapping for one advisor rule."""
        return dict(self.advisor_config().get("rules", {}).get(rule_key, {}))


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_number(value: str) -> int | float | bool:
    """Parse a rule setting: booleans, ints, then floats."""
    lowered = value.lower()
    if lowered in ("true", "false", "yes", "no", "on", "off"):
        return _parse_env_bool(value)
    return float(value) if "." in value else int(value)


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Naming convention:
    - QUERYBENCH_<SETTING> for global settings
    - QUERYBENCH_RULE_<RULE_KEY>__<SETTING> for advisor rule settings
    - QUERYBENCH_THRESHOLD_<METRIC>__<LEVEL> for regression thresholds
    """
    config_kwargs: dict[str, Any] = {
        "advisor_enabled": _parse_env_bool(
            os.environ.get("QUERYBENCH_ADVISOR_ENABLED"), True
        ),
    }

    baseline_path = os.environ.get("QUERYBENCH_BASELINE_PATH")
    if baseline_path:
        config_kwargs["baseline_path"] = baseline_path

    rules: dict[str, dict[str, Any]] = {}
    thresholds: dict[str, dict[str, Any]] = {}
    rule_prefix = "QUERYBENCH_RULE_"
    threshold_prefix = "QUERYBENCH_THRESHOLD_"

    for key, value in os.environ.items():
        if key.startswith(rule_prefix):
            target, name = rules, key[len(rule_prefix):]
        elif key.startswith(threshold_prefix):
            target, name = thresholds, key[len(threshold_prefix):]
        else:
            continue

        section, sep, setting = name.partition("__")
        if not sep or not section or not setting:
            logger.warning("Ignoring malformed setting %s (expected <NAME>__<SETTING>)", key)
            continue

        try:
            parsed = _parse_env_number(value)
        except ValueError:
            logger.warning("Could not parse setting %s=%s", key, value)
            continue

        target.setdefault(section.lower(), {})[setting.lower()] = parsed

    if rules:
        config_kwargs["advisor"] = deep_merge(DEFAULT_ADVISOR_CONFIG, {"rules": rules})
    if thresholds:
        config_kwargs["regression_thresholds"] = coerce_thresholds(thresholds)

    return Config(**config_kwargs)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML config file into a mapping."""
    raw = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(raw)
    else:
        data = json.loads(raw)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}",
            config_key=str(path),
        )
    return data


def load_config_from_file(path: Path, strict: bool = False) -> Config:
    """
    Load configuration from a JSON or YAML file.

    File values are layered over the environment configuration. With
    strict=False (the default) an unreadable or invalid file is logged and
    ignored; with strict=True it raises ConfigurationError.
    """
    base = load_config_from_env()

    if not path.exists():
        if strict:
            raise ConfigurationError(f"Config file not found: {path}", config_key=str(path))
        logger.warning("Config file not found: %s, using environment", path)
        return base

    try:
        data = _read_config_file(path)
        merged = base.model_dump()
        if "advisor" in data:
            advisor = data.pop("advisor") or {}
            if not isinstance(advisor, dict):
                raise ConfigurationError("'advisor' must be a mapping", config_key="advisor")
            merged["advisor"] = deep_merge(merged["advisor"], advisor)
        if "regression_thresholds" in data:
            current = {k: v for k, v in merged["regression_thresholds"].items()}
            current.update(data.pop("regression_thresholds") or {})
            merged["regression_thresholds"] = coerce_thresholds(current)
        merged.update(data)
        return Config(**merged)
    except ConfigurationError:
        if strict:
            raise
        logger.error("Invalid config file %s, using environment", path)
        return base
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
        if strict:
            raise ConfigurationError(
                f"Failed to load config from {path}: {e}", config_key=str(path)
            ) from e
        logger.error("Failed to load config from %s: %s", path, e)
        return base


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. QUERYBENCH_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("QUERYBENCH_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
