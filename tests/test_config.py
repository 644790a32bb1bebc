"""Tests for configuration loading."""

import json

import pytest

from querybench.config import (
    DEFAULT_ADVISOR_CONFIG,
    Config,
    coerce_thresholds,
    deep_merge,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)
from querybench.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


class TestDefaults:
    """Tests for documented defaults."""

    def test_default_config(self):
        config = Config()

        assert config.advisor_enabled
        assert config.baseline_path == ".querybench/baselines"
        assert config.regression_thresholds["execution_time"].warning == 10
        assert config.regression_thresholds["queries"].critical == 50
        assert config.rule_settings("n_plus_one")["threshold"] == 10

    def test_advisor_enabled_anded(self):
        config = Config(advisor_enabled=False)
        assert config.advisor_config()["enabled"] is False

    def test_deep_merge_does_not_mutate(self):
        merged = deep_merge(DEFAULT_ADVISOR_CONFIG, {"rules": {"hotspot": {"min_queries": 3}}})

        assert merged["rules"]["hotspot"]["min_queries"] == 3
        assert merged["rules"]["hotspot"]["threshold_percent"] == 50
        assert DEFAULT_ADVISOR_CONFIG["rules"]["hotspot"]["min_queries"] == 10


class TestCoerceThresholds:
    """Tests for partial and malformed threshold tables."""

    def test_partial_entry_keeps_other_level(self):
        thresholds = coerce_thresholds({"memory": {"critical": 40}})

        assert thresholds["memory"].critical == 40
        assert thresholds["memory"].warning == 15
        assert thresholds["score"].critical == 20

    def test_malformed_values_fall_back(self):
        thresholds = coerce_thresholds({
            "execution_time": {"warning": "fast", "critical": "35"},
            "queries": "nonsense",
        })

        assert thresholds["execution_time"].warning == 10
        assert thresholds["execution_time"].critical == 35
        assert thresholds["queries"].critical == 50

    def test_empty(self):
        assert coerce_thresholds(None)["score"].warning == 10


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_global_settings(self, monkeypatch):
        monkeypatch.setenv("QUERYBENCH_ADVISOR_ENABLED", "0")
        monkeypatch.setenv("QUERYBENCH_BASELINE_PATH", "bench/baselines")
        config = load_config_from_env()

        assert not config.advisor_enabled
        assert config.baseline_path == "bench/baselines"

    def test_rule_settings(self, monkeypatch):
        monkeypatch.setenv("QUERYBENCH_RULE_N_PLUS_ONE__THRESHOLD", "20")
        monkeypatch.setenv("QUERYBENCH_RULE_DUPLICATE__ENABLED", "false")
        config = load_config_from_env()

        assert config.rule_settings("n_plus_one")["threshold"] == 20
        assert config.rule_settings("n_plus_one")["critical_count"] == 100
        assert config.rule_settings("duplicate")["enabled"] is False

    def test_threshold_settings(self, monkeypatch):
        monkeypatch.setenv("QUERYBENCH_THRESHOLD_MEMORY__WARNING", "12.5")
        config = load_config_from_env()

        assert config.regression_thresholds["memory"].warning == 12.5
        assert config.regression_thresholds["memory"].critical == 30

    def test_malformed_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("QUERYBENCH_RULE_HOTSPOT", "5")
        monkeypatch.setenv("QUERYBENCH_RULE_HOTSPOT__MIN_QUERIES", "many")
        config = load_config_from_env()

        assert config.rule_settings("hotspot")["min_queries"] == 10

    def test_get_config_is_cached(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("QUERYBENCH_BASELINE_PATH", "elsewhere")

        assert get_config() is first
        reset_config()
        assert get_config().baseline_path == "elsewhere"


class TestConfigFile:
    """Tests for JSON/YAML config files."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "querybench.yaml"
        path.write_text(
            "advisor:\n"
            "  rules:\n"
            "    slow_query:\n"
            "      threshold_ms: 250\n"
            "regression_thresholds:\n"
            "  execution_time:\n"
            "    critical: 40\n"
            "display_max_total: 5\n",
            encoding="utf-8",
        )
        config = load_config_from_file(path)

        assert config.rule_settings("slow_query")["threshold_ms"] == 250
        assert config.rule_settings("slow_query")["critical_ms"] == 1000
        assert config.regression_thresholds["execution_time"].critical == 40
        assert config.regression_thresholds["execution_time"].warning == 10
        assert config.display_max_total == 5

    def test_json_file(self, tmp_path):
        path = tmp_path / "querybench.json"
        path.write_text(json.dumps({"baseline_path": "json/baselines"}), encoding="utf-8")

        assert load_config_from_file(path).baseline_path == "json/baselines"

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "querybench.json"
        path.write_text(json.dumps({"advisor_enabled": False}), encoding="utf-8")
        monkeypatch.setenv("QUERYBENCH_CONFIG_FILE", str(path))

        assert get_config().advisor_enabled is False

    def test_missing_file(self, tmp_path):
        path = tmp_path / "missing.yaml"

        assert load_config_from_file(path).baseline_path == ".querybench/baselines"
        with pytest.raises(ConfigurationError):
            load_config_from_file(path, strict=True)

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        assert load_config_from_file(path).advisor_enabled is True
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_file(path, strict=True)
        assert exc_info.value.config_key == str(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"display_max_total": 0}), encoding="utf-8")

        assert load_config_from_file(path).display_max_total == 10
        with pytest.raises(ConfigurationError):
            load_config_from_file(path, strict=True)
