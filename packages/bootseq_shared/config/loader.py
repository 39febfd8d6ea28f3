"""Layered configuration loading for bootseq.

Layers, lowest precedence first:
1) built-in defaults
2) the YAML config file (``BOOTSEQ_CONFIG_FILE`` or ``~/.config/bootseq/bootseq.yaml``)
3) ``BOOTSEQ_``-prefixed environment variables, ``__`` between nested keys
4) command-line overrides

Example: ``BOOTSEQ_BOOT__TARGET_RUNLEVEL=3`` sets ``boot.target_runlevel = 3``.
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .defaults import BUILTIN_DEFAULTS
from .models import DEFAULT_CONFIG_PATH, BootseqSettings

ENV_PREFIX = "BOOTSEQ_"
CONFIG_FILE_ENV = "BOOTSEQ_CONFIG_FILE"


def load_settings(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> BootseqSettings:
    """Resolve every layer and validate the result into ``BootseqSettings``."""
    merged = load_config(cli_params=cli_params, environ=environ, config_path=config_path)
    # model_validate bypasses the BaseSettings sources; the layers above already ran.
    return BootseqSettings.model_validate(merged)


def load_config(
    *,
    cli_params: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge defaults, file, environment and CLI layers into one plain dict."""
    env = os.environ if environ is None else environ
    layers = (
        BUILTIN_DEFAULTS if defaults is None else defaults,
        _read_config_file(resolve_config_path(config_path, environ=env)),
        _env_overrides(env),
        cli_params or {},
    )
    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return merged


def resolve_config_path(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Return the explicit path, else ``BOOTSEQ_CONFIG_FILE``, else the default."""
    if config_path is not None:
        return Path(config_path)
    env = os.environ if environ is None else environ
    from_env = env.get(CONFIG_FILE_ENV, "").strip()
    return Path(from_env).expanduser() if from_env else DEFAULT_CONFIG_PATH


def cli_overrides(options: Mapping[str, Any]) -> dict[str, Any]:
    """Nest dotted option names such as ``boot.target_runlevel``.

    Options left as ``None`` were not given on the command line and are
    dropped so lower layers still apply.
    """
    output: dict[str, Any] = {}
    for dotted, value in options.items():
        if value is None:
            continue
        _set_nested(output, [part for part in dotted.split(".") if part], value)
    return output


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read one YAML mapping; a missing or empty file contributes nothing."""
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        parsed = yaml.safe_load(handle)
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ValueError(f"config file must contain a top-level mapping: {path}")
    return _deep_merge({}, parsed)


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Map ``BOOTSEQ_SECTION__KEY`` variables onto nested keys."""
    output: dict[str, Any] = {}
    for key, raw_value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_FILE_ENV:
            continue
        path = [
            segment.strip().lower()
            for segment in key[len(ENV_PREFIX) :].split("__")
            if segment.strip()
        ]
        if path:
            _set_nested(output, path, _parse_env_value(raw_value))
    return output


def _parse_env_value(raw: str) -> Any:
    """Parse one env string as a YAML scalar or flow collection.

    ``true``, ``3``, ``0.5`` and ``[1, 2]`` become typed values; anything YAML
    cannot parse is kept as the raw string.
    """
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _set_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Set ``value`` at ``path``, replacing any non-mapping on the way."""
    cursor = target
    for segment in path[:-1]:
        child = cursor.get(segment)
        if not isinstance(child, dict):
            child = cursor[segment] = {}
        cursor = child
    cursor[path[-1]] = value


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep copy of ``base`` with ``override`` merged on top."""
    result = {str(key): copy.deepcopy(value) for key, value in base.items()}
    for key, value in override.items():
        key = str(key)
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(current, value)
        elif isinstance(value, Mapping):
            result[key] = _deep_merge({}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result
