"""
Command-line tests: run a plan, save the result, then analyze it.
"""

import json
import logging
import textwrap

import pytest
import structlog
from click.testing import CliRunner

from loadshaper.cli import cli

SCENARIO_MODULE = textwrap.dedent(
    """
    from loadshaper.protocols import Scenario


    async def _ok():
        return 200


    def scenarios():
        return [Scenario(name="ok", weight=1, execute=_ok)]
    """
)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    structlog.reset_defaults()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    (tmp_path / "loadshaper_cli_scenarios.py").write_text(SCENARIO_MODULE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    (tmp_path / "settings.yaml").write_text(
        textwrap.dedent(
            f"""
            metrics:
              tick_interval_seconds: 0.1
              snapshot_window_ms: 1000
            monitoring:
              log_file: {tmp_path / "logs" / "loadshaper.log"}
            """
        ),
        encoding="utf-8",
    )
    (tmp_path / "plan.yaml").write_text(
        textwrap.dedent(
            """
            name: cli-smoke
            total_duration: 0.6
            concurrency: 1
            target_rate: 10
            sla:
              max_response_time_p95: 500
            """
        ),
        encoding="utf-8",
    )
    return tmp_path


def _run_args(workspace, *extra):
    return [
        "--config",
        str(workspace / "settings.yaml"),
        "run",
        str(workspace / "plan.yaml"),
        "--scenarios",
        "loadshaper_cli_scenarios:scenarios",
        "--no-progress",
        *extra,
    ]


@pytest.mark.integration
class TestCli:
    def test_run_then_analyze(self, workspace):
        runner = CliRunner()
        result_path = workspace / "out" / "result.json"

        run = runner.invoke(cli, _run_args(workspace, "--output", str(result_path)), obj={})
        assert run.exit_code == 0, run.output
        assert "All SLA requirements met" in run.output

        saved = json.loads(result_path.read_text(encoding="utf-8"))
        assert saved["config"]["name"] == "cli-smoke"
        assert saved["success"] is True
        assert saved["final_metrics"]["total_requests"] >= 1

        analysis_path = workspace / "analysis.json"
        analyze = runner.invoke(
            cli,
            [
                "--config",
                str(workspace / "settings.yaml"),
                "analyze",
                str(result_path),
                "--baseline",
                str(result_path),
                "--output",
                str(analysis_path),
            ],
            obj={},
        )
        assert analyze.exit_code == 0, analyze.output
        assert "Performance Analysis" in analyze.output

        analysis = json.loads(analysis_path.read_text(encoding="utf-8"))
        assert analysis["run_id"] == saved["run_id"]
        assert analysis["regressions"] == []
        assert (workspace / "logs" / "loadshaper.log").exists()

    def test_working_directory_settings_are_used_by_default(self, workspace, monkeypatch):
        monkeypatch.chdir(workspace)
        log_file = workspace / "cwd-logs" / "loadshaper.log"
        (workspace / "loadshaper.yaml").write_text(f"monitoring:\n  log_file: {log_file}\n", encoding="utf-8")
        result_path = workspace / "result.json"

        run = CliRunner().invoke(
            cli,
            [
                "run",
                str(workspace / "plan.yaml"),
                "--scenarios",
                "loadshaper_cli_scenarios:scenarios",
                "--no-progress",
                "--output",
                str(result_path),
            ],
            obj={},
        )
        assert run.exit_code == 0, run.output
        assert log_file.exists()
        assert result_path.exists()

    def test_invalid_plan_exits_with_error(self, workspace):
        (workspace / "plan.yaml").write_text("concurrency: 0\n", encoding="utf-8")
        run = CliRunner().invoke(cli, _run_args(workspace), obj={})
        assert run.exit_code == 1
        assert "Configuration error" in run.output

    def test_bad_scenario_reference(self, workspace):
        run = CliRunner().invoke(
            cli,
            [
                "--config",
                str(workspace / "settings.yaml"),
                "run",
                str(workspace / "plan.yaml"),
                "--scenarios",
                "no_such_module_here:scenarios",
            ],
            obj={},
        )
        assert run.exit_code == 1
        assert "Cannot import scenario module" in run.output

    def test_analyze_rejects_non_result(self, workspace):
        bogus = workspace / "bogus.json"
        bogus.write_text('{"hello": "world"}', encoding="utf-8")
        run = CliRunner().invoke(cli, ["--config", str(workspace / "settings.yaml"), "analyze", str(bogus)], obj={})
        assert run.exit_code == 1
        assert "is not a load test result" in run.output
