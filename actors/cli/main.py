"""bootseq command-line interface implemented with Typer."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

import typer

from packages.bootseq_core.boot import resolve_module_order
from packages.bootseq_core.catalog import DEFAULT_MODULES, default_service_catalog
from packages.bootseq_core.runlevels import RUNLEVEL_NAMES
from packages.bootseq_core.startup import build_default_pipeline, run_boot
from packages.bootseq_shared.config import (
    CONFIG_FILE_ENV,
    MAX_RUNLEVEL,
    MIN_RUNLEVEL,
    BootseqSettings,
    cli_overrides,
    load_settings,
)

SUCCESS_EXIT_CODE = 0
BOOT_FAILED_EXIT_CODE = 3
CONFIG_ERROR_EXIT_CODE = 4


@dataclass(frozen=True)
class CliConfig:
    """Global CLI options shared by every command."""

    config_path: Path | None
    overrides: dict[str, Any]
    as_json: bool


def _serialize(value: Any) -> Any:
    """Convert boot results into JSON-serializable structures."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date, Path)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: _serialize(getattr(value, item.name))
            for item in dataclasses.fields(value)
        }
    if isinstance(value, Mapping):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialize(item) for item in value]
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="python"))
    return str(value)


def _emit_output(data: Any, as_json: bool, render: Callable[[Any], str]) -> None:
    """Write one command result as compact JSON or human text."""
    if as_json:
        typer.echo(json.dumps(data, sort_keys=True, separators=(",", ":")))
        return
    typer.echo(render(data))


def _emit_error(message: str, as_json: bool) -> None:
    """Write one error to stderr."""
    if as_json:
        typer.echo(json.dumps({"error": message}), err=True)
        return
    typer.echo(f"error: {message}", err=True)


def _status_icon(ok: bool) -> str:
    """Return status icon for one pass/fail value."""
    return "✅" if ok else "❌"


def _render_boot(data: dict[str, Any]) -> str:
    """Render one boot run for human scanning."""
    status = data["status"]
    outcome = data["outcome"]
    ok = bool(data["success"])
    elapsed = status.get("elapsed_seconds") or 0.0
    if ok:
        headline = f"Boot: {_status_icon(ok)} {status['state']} in {elapsed:.3f}s"
    else:
        headline = (
            f"Boot: {_status_icon(ok)} {status['state']} at stage "
            f"{outcome['stage_index']} ({outcome['stage_id']})"
        )
    lines = [
        headline,
        f"Modules: {status['module_count']}",
        f"Services: {status['service_count']}",
    ]
    if not ok:
        error = outcome["error"]
        lines.append(f"Error: {error['code']}: {error['message']}")
    warnings = status.get("warnings") or []
    if warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {warning}" for warning in warnings)
    return "\n".join(lines)


def _render_plan(data: dict[str, Any]) -> str:
    """Render module load order and runlevel services."""
    lines = ["Module load order:"]
    for position, module in enumerate(data["modules"], start=1):
        line = f"  {position}. {module['name']} (priority {module['priority']})"
        if module["dependencies"]:
            line = f"{line} after {', '.join(module['dependencies'])}"
        lines.append(line)
    for runlevel in data["runlevels"]:
        lines.append(f"Runlevel {runlevel['runlevel']} ({runlevel['name']}):")
        if not runlevel["services"]:
            lines.append("  (no services)")
        lines.extend(
            f"  - {service['name']} [{service['kind']}]" for service in runlevel["services"]
        )
    return "\n".join(lines)


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""
    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


def _load(cfg: CliConfig) -> BootseqSettings:
    """Resolve settings or exit with the config error code."""
    try:
        return load_settings(cli_params=cfg.overrides, config_path=cfg.config_path)
    except ValueError as exc:
        _emit_error(str(exc), cfg.as_json)
        raise typer.Exit(code=CONFIG_ERROR_EXIT_CODE) from exc


app = typer.Typer(no_args_is_help=True, help="Staged boot orchestration")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", envvar=CONFIG_FILE_ENV, help="YAML config file path"
    ),
    start_runlevel: int | None = typer.Option(
        None, min=MIN_RUNLEVEL, max=MAX_RUNLEVEL, help="First runlevel to enter"
    ),
    target_runlevel: int | None = typer.Option(
        None, min=MIN_RUNLEVEL, max=MAX_RUNLEVEL, help="Last runlevel to enter"
    ),
    stage_timeout: float | None = typer.Option(
        None, min=0.001, help="Per-stage deadline in seconds"
    ),
    no_verify: bool = typer.Option(
        False, "--no-verify", help="Skip integrity checks after each stage"
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Store global options for all commands."""
    ctx.obj = CliConfig(
        config_path=config,
        overrides=cli_overrides(
            {
                "boot.start_runlevel": start_runlevel,
                "boot.target_runlevel": target_runlevel,
                "boot.stage_timeout_seconds": stage_timeout,
                "boot.verify_each_stage": False if no_verify else None,
            }
        ),
        as_json=as_json,
    )


@app.command("boot")
def boot_command(ctx: typer.Context) -> None:
    """Run the default boot pipeline once and report its status."""
    cfg = _require_config(ctx)
    settings = _load(cfg)
    result = asyncio.run(
        run_boot(settings=settings, pipeline_factory=build_default_pipeline)
    )
    data = _serialize(result)
    data["success"] = result.success
    _emit_output(data, cfg.as_json, _render_boot)
    raise typer.Exit(code=SUCCESS_EXIT_CODE if result.success else BOOT_FAILED_EXIT_CODE)


@app.command("plan")
def plan_command(ctx: typer.Context) -> None:
    """Show the module load order and the services each runlevel starts."""
    cfg = _require_config(ctx)
    boot = _load(cfg).boot
    catalog = default_service_catalog()
    data = {
        "modules": [
            {
                "name": definition.name,
                "priority": definition.priority,
                "dependencies": list(definition.dependencies),
            }
            for definition in resolve_module_order(DEFAULT_MODULES)
        ],
        "runlevels": [
            {
                "runlevel": runlevel,
                "name": RUNLEVEL_NAMES[runlevel],
                "services": [
                    {"name": name, "kind": catalog.get(name).kind.value}
                    for name in catalog.services_for_runlevel(runlevel)
                ],
            }
            for runlevel in range(boot.start_runlevel, boot.target_runlevel + 1)
        ],
    }
    _emit_output(data, cfg.as_json, _render_plan)
