"""Process entrypoint for one boot run."""

from __future__ import annotations

import asyncio
import sys

from packages.bootseq_core.startup import run_boot
from packages.bootseq_shared.config import load_settings
from packages.bootseq_shared.logging import configure_logging, get_logger

_LOGGER = get_logger(__name__)


def main() -> int:
    """Load settings, configure logging, boot once and return the exit code."""
    settings = load_settings()
    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
        environment=settings.logging.environment,
    )

    result = asyncio.run(run_boot(settings=settings))
    _LOGGER.info(
        "boot process exiting",
        extra={
            "state": result.status.state.value,
            "elapsed_seconds": result.status.elapsed_seconds,
        },
    )
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
