"""Built-in default configuration values for bootseq.

These defaults are the final fallback in the configuration cascade:
command line > environment > config file > built-in defaults.
"""

from __future__ import annotations

from typing import Any

BUILTIN_DEFAULTS: dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "json_output": True,
        "service": "bootseq",
        "environment": "dev",
    },
    "boot": {
        "stage_timeout_seconds": 30.0,
        "verify_each_stage": True,
        "start_runlevel": 1,
        "target_runlevel": 5,
        "reboot_delay_seconds": 0.5,
    },
}
