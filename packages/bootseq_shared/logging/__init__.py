"""Public logging API for bootseq.

Records go to stdout through the standard ``logging`` module; run and stage
fields are attached from the bound context.
"""

from . import fields
from .config import configure_logging, get_logger
from .context import bind_context, get_context, log_context

__all__ = [
    "bind_context",
    "configure_logging",
    "fields",
    "get_context",
    "get_logger",
    "log_context",
]
