"""Tests for the querybench CLI."""

import json

import pytest
from typer.testing import CliRunner

from querybench import __version__
from querybench.cli.main import app
from querybench.config import reset_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def run_result(execution_time=1.0, total_queries=100, performance_score=80):
    return {
        "execution_time": execution_time,
        "memory_used": 1024,
        "peak_memory": 10_000_000,
        "total_queries": total_queries,
        "total_db_time": 250.0,
        "performance_score": performance_score,
    }


def save(tmp_path, data, name="users"):
    results = write_json(tmp_path / "results.json", data)
    return runner.invoke(app, [
        "baseline", "save", str(results), "--name", name,
        "--path", str(tmp_path / "baselines"), "--no-git",
    ])


class TestVersion:
    """Tests for global options."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"QueryBench version {__version__}" in result.stdout


class TestBaselineCommands:
    """Tests for baseline management."""

    def test_save_and_show(self, tmp_path):
        result = save(tmp_path, run_result())
        assert result.exit_code == 0
        assert (tmp_path / "baselines" / "users.baseline.json").exists()

        shown = runner.invoke(app, [
            "baseline", "show", "users", "--path", str(tmp_path / "baselines"), "--json",
        ])
        assert shown.exit_code == 0
        data = json.loads(shown.stdout)
        assert data["benchmark_name"] == "users"
        assert data["total_queries"] == 100
        assert data["git_branch"] is None

    def test_save_from_iterations(self, tmp_path):
        result = save(tmp_path, {
            "warmup_runs": 1,
            "iterations": [run_result(0.1), run_result(0.3), run_result(0.2)],
        })
        assert result.exit_code == 0

        stored = json.loads((tmp_path / "baselines" / "users.baseline.json").read_text())
        assert stored["execution_time"] == 0.2
        assert stored["iterations"] == 3
        assert stored["stats"]["execution_time"]["warmup_runs"] == 1

    def test_show_missing(self, tmp_path):
        result = runner.invoke(app, ["baseline", "show", "nope", "--path", str(tmp_path)])
        assert result.exit_code == 1

    def test_list(self, tmp_path):
        save(tmp_path, run_result(), name="users")
        save(tmp_path, run_result(), name="posts")

        result = runner.invoke(app, ["baseline", "list", "--path", str(tmp_path / "baselines")])

        assert result.exit_code == 0
        assert "users" in result.stdout
        assert "posts" in result.stdout
        assert "2 baseline(s)" in result.stdout

    def test_list_empty(self, tmp_path):
        result = runner.invoke(app, ["baseline", "list", "--path", str(tmp_path)])

        assert result.exit_code == 0
        assert "No baselines found" in result.stdout

    def test_delete(self, tmp_path):
        save(tmp_path, run_result())
        baselines = str(tmp_path / "baselines")

        result = runner.invoke(app, ["baseline", "delete", "users", "--path", baselines])
        assert result.exit_code == 0
        assert "Deleted" in result.stdout

        again = runner.invoke(app, ["baseline", "delete", "users", "--path", baselines])
        assert again.exit_code == 0
        assert "No baseline" in again.stdout

    def test_unreadable_results_file(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope", encoding="utf-8")

        result = runner.invoke(app, [
            "baseline", "save", str(bad), "--name", "users", "--path", str(tmp_path), "--no-git",
        ])
        assert result.exit_code == 1

    def test_save_rejects_non_object_iterations(self, tmp_path):
        result = save(tmp_path, {"iterations": [1, 2, 3]})

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert not (tmp_path / "baselines" / "users.baseline.json").exists()


class TestCompareCommand:
    """Tests for CI comparison exit codes."""

    def _compare(self, tmp_path, data, *extra):
        current = write_json(tmp_path / "current.json", data)
        return runner.invoke(app, [
            "baseline", "compare", str(current), "--name", "users",
            "--path", str(tmp_path / "baselines"), *extra,
        ])

    def test_no_baseline_passes(self, tmp_path):
        result = self._compare(tmp_path, run_result())

        assert result.exit_code == 0
        assert "No baseline" in result.stdout

    def test_stable_passes(self, tmp_path):
        save(tmp_path, run_result())
        result = self._compare(tmp_path, run_result())

        assert result.exit_code == 0
        assert "Stable" in result.stdout

    def test_warning_passes(self, tmp_path):
        save(tmp_path, run_result())
        result = self._compare(tmp_path, run_result(execution_time=1.15))

        assert result.exit_code == 0
        assert "Performance Warning" in result.stdout

    def test_critical_regression_fails(self, tmp_path):
        save(tmp_path, run_result())
        result = self._compare(tmp_path, run_result(execution_time=1.5))

        assert result.exit_code == 1
        assert "REGRESSION DETECTED" in result.stdout

    def test_json_output(self, tmp_path):
        save(tmp_path, run_result())
        result = self._compare(tmp_path, run_result(total_queries=40), "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "improved"
        assert data["improvements"][0]["metric"] == "total_queries"


class TestStatsCommand:
    """Tests for iteration statistics output."""

    def test_stats_json(self, tmp_path):
        results = write_json(tmp_path / "results.json", {
            "iterations": [run_result(0.1), run_result(0.2), run_result(0.3)],
        })
        result = runner.invoke(app, ["stats", str(results), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["execution_time"]["median"] == 0.2
        assert data["execution_time"]["iterations"] == 3

    def test_stats_table(self, tmp_path):
        results = write_json(tmp_path / "results.json", {"iterations": [run_result()] * 3})
        result = runner.invoke(app, ["stats", str(results)])

        assert result.exit_code == 0
        assert "Very Stable" in result.stdout

    def test_stats_requires_iterations(self, tmp_path):
        results = write_json(tmp_path / "results.json", run_result())
        result = runner.invoke(app, ["stats", str(results)])

        assert result.exit_code == 1

    def test_stats_rejects_non_object_iterations(self, tmp_path):
        results = write_json(tmp_path / "results.json", {"iterations": [1, 2, 3]})
        result = runner.invoke(app, ["stats", str(results)])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)


class TestAnalyzeCommand:
    """Tests for replaying a recorded query log."""

    def _log(self, tmp_path, count=12, execution_time_ms=200.0):
        queries = [
            {
                "sql": "SELECT * FROM posts WHERE user_id = ?",
                "bindings": [i],
                "time_ms": 2.0,
                "file": "app/views.py",
                "line": 42,
                "function": "index",
            }
            for i in range(count)
        ]
        data = {"queries": queries}
        if execution_time_ms is not None:
            data["execution_time_ms"] = execution_time_ms
        return write_json(tmp_path / "queries.json", data)

    def test_analyze_json(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(self._log(tmp_path)), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["report"]["total_queries"] == 12
        assert data["report"]["queries_by_location"] == {"views.py:42": 12}
        assert {s["type"] for s in data["report"]["suggestions"]} == {"n_plus_one", "hotspot"}
        assert 0 <= data["score"]["score"] <= 100

    def test_analyze_console(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(self._log(tmp_path))])

        assert result.exit_code == 0
        assert "ADVISOR REPORT" in result.stdout
        assert "Performance Score" in result.stdout

    def test_fail_on_critical(self, tmp_path):
        log = self._log(tmp_path, count=120)

        assert runner.invoke(app, ["analyze", str(log)]).exit_code == 0
        assert runner.invoke(app, ["analyze", str(log), "--fail-on-critical"]).exit_code == 1

    def test_disabled_advisor(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUERYBENCH_ADVISOR_ENABLED", "false")
        reset_config()

        result = runner.invoke(app, ["analyze", str(self._log(tmp_path))])
        assert result.exit_code == 0
        assert "disabled" in result.stdout

    def test_missing_execution_time_skips_db_share(self, tmp_path):
        log = self._log(tmp_path, execution_time_ms=None)
        result = runner.invoke(app, ["analyze", str(log), "--json"])

        assert result.exit_code == 0
        reasons = [item["reason"] for item in json.loads(result.stdout)["score"]["breakdown"]]
        assert not any(reason.startswith("High DB time") for reason in reasons)

    def test_missing_execution_time_noted_in_console(self, tmp_path):
        log = self._log(tmp_path, execution_time_ms=None)
        result = runner.invoke(app, ["analyze", str(log)])

        assert result.exit_code == 0
        assert "DB time share not scored" in result.stdout
        assert "DB Time %" not in result.stdout

    def test_execution_time_option(self, tmp_path):
        log = self._log(tmp_path, execution_time_ms=None)
        result = runner.invoke(app, ["analyze", str(log), "--json", "--execution-time-ms", "30"])

        assert result.exit_code == 0
        reasons = [item["reason"] for item in json.loads(result.stdout)["score"]["breakdown"]]
        assert "High DB time (80.0%)" in reasons

    def test_non_numeric_execution_time(self, tmp_path):
        log = self._log(tmp_path, execution_time_ms="fast")
        result = runner.invoke(app, ["analyze", str(log)])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
