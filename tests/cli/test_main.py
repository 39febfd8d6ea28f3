"""CLI tests for the bootseq Typer commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from actors.cli import main as cli_module
from packages.bootseq_core.boot import StageContext, StageDefinition, StageOutput
from packages.bootseq_core.startup import build_default_pipeline

app = cli_module.app


def _base_args(tmp_path: Path) -> list[str]:
    """Return global flags pointing at an absent config file."""
    return ["--config", str(tmp_path / "bootseq.yaml")]


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ambient BOOTSEQ_ variables out of CLI runs."""
    monkeypatch.delenv("BOOTSEQ_CONFIG_FILE", raising=False)
    monkeypatch.delenv("BOOTSEQ_BOOT__TARGET_RUNLEVEL", raising=False)


def test_boot_reports_success_in_human_form(tmp_path: Path) -> None:
    """A default boot should print a completed headline and counts."""
    result = CliRunner().invoke(app, [*_base_args(tmp_path), "boot"])

    assert result.exit_code == 0
    assert "Boot: ✅ completed" in result.stdout
    assert "Modules: 5" in result.stdout
    assert "Services: 14" in result.stdout


def test_boot_json_output_honors_runlevel_override(tmp_path: Path) -> None:
    """`--json` should emit the run status with CLI overrides applied."""
    result = CliRunner().invoke(
        app, [*_base_args(tmp_path), "--target-runlevel", "3", "--json", "boot"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert payload["status"]["state"] == "completed"
    assert "display-manager" not in payload["outcome"]["service_names"]
    assert "ssh" in payload["outcome"]["service_names"]


def test_boot_failure_maps_to_exit_code_3(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failed pipeline should render the failing stage and exit with code 3."""

    async def broken(context: StageContext) -> StageOutput:
        return StageOutput(success=False, error="disk missing")

    def factory(**options: Any):
        return build_default_pipeline(
            stages=(StageDefinition(id="firmware-probe", action=broken),), **options
        )

    monkeypatch.setattr(cli_module, "build_default_pipeline", factory)
    result = CliRunner().invoke(app, [*_base_args(tmp_path), "boot"])

    assert result.exit_code == 3
    assert "Boot: ❌ failed at stage 0 (firmware-probe)" in result.stdout
    assert "BOOT_STAGE_FAILED" in result.stdout


def test_invalid_runlevel_range_maps_to_exit_code_4(tmp_path: Path) -> None:
    """A start runlevel above the target should be rejected as a config error."""
    result = CliRunner().invoke(
        app,
        [*_base_args(tmp_path), "--start-runlevel", "5", "--target-runlevel", "2", "boot"],
    )

    assert result.exit_code == 4
    assert "start_runlevel must not exceed" in result.output


def test_config_file_feeds_plan(tmp_path: Path) -> None:
    """Runlevels from the config file should bound the plan output."""
    config_file = tmp_path / "bootseq.yaml"
    config_file.write_text(
        "\n".join(["boot:", "  start_runlevel: 2", "  target_runlevel: 3"]),
        encoding="utf-8",
    )

    result = CliRunner().invoke(app, ["--config", str(config_file), "plan"])

    assert result.exit_code == 0
    assert "  1. scheduler (priority 1)" in result.stdout
    assert "process-manager (priority 1) after scheduler, memory-manager" in result.stdout
    assert "Runlevel 2 (multi-user without NFS):" in result.stdout
    assert "  - ssh [daemon]" in result.stdout
    assert "Runlevel 1" not in result.stdout
    assert "Runlevel 5" not in result.stdout


def test_plan_json_lists_empty_runlevel(tmp_path: Path) -> None:
    """Runlevels without table entries should appear with no services."""
    result = CliRunner().invoke(app, [*_base_args(tmp_path), "--json", "plan"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [entry["runlevel"] for entry in payload["runlevels"]] == [1, 2, 3, 4, 5]
    assert payload["runlevels"][3]["services"] == []
    assert [module["name"] for module in payload["modules"]][-1] == "ipc-system"


def test_typer_usage_errors_are_unchanged(tmp_path: Path) -> None:
    """Out-of-range options should fail with Typer's usage exit code."""
    result = CliRunner().invoke(app, [*_base_args(tmp_path), "--target-runlevel", "9", "boot"])

    assert result.exit_code == 2
