"""Public API for shared bootseq configuration utilities."""

from .loader import (
    CONFIG_FILE_ENV,
    cli_overrides,
    load_config,
    load_settings,
    resolve_config_path,
)
from .models import (
    DEFAULT_CONFIG_PATH,
    MAX_RUNLEVEL,
    MIN_RUNLEVEL,
    BootSettings,
    BootseqSettings,
    LoggingSettings,
)

__all__ = [
    "CONFIG_FILE_ENV",
    "DEFAULT_CONFIG_PATH",
    "MAX_RUNLEVEL",
    "MIN_RUNLEVEL",
    "BootSettings",
    "BootseqSettings",
    "LoggingSettings",
    "cli_overrides",
    "load_config",
    "load_settings",
    "resolve_config_path",
]
