"""Boot-run logging context.

Fields such as the run id, the current stage and the runlevel being entered
are bound once and then appear on every record logged beneath them, including
records emitted after an ``await``. The context is a ``contextvars`` value so
concurrent runs in one process never see each other's fields.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Iterator, Mapping

_EMPTY: Mapping[str, str] = MappingProxyType({})

_BOOT_LOG_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar(
    "bootseq_log_context", default=_EMPTY
)


def _with_values(base: Mapping[str, str], values: Mapping[str, object]) -> Mapping[str, str]:
    """Return ``base`` extended with stringified non-``None`` values."""
    merged = dict(base)
    merged.update({str(key): str(value) for key, value in values.items() if value is not None})
    return MappingProxyType(merged)


def get_context() -> dict[str, str]:
    """Return the fields bound for the current task as a plain dict."""
    return dict(_BOOT_LOG_CONTEXT.get())


def bind_context(**values: object) -> None:
    """Bind process-wide fields such as the service name.

    ``None`` values are skipped. Prefer ``log_context`` for anything scoped to
    one run or stage.
    """
    if values:
        _BOOT_LOG_CONTEXT.set(_with_values(_BOOT_LOG_CONTEXT.get(), values))


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[Mapping[str, str]]:
    """Bind ``values`` for the duration of the block, restoring the outer fields."""
    token = _BOOT_LOG_CONTEXT.set(_with_values(_BOOT_LOG_CONTEXT.get(), values))
    try:
        yield _BOOT_LOG_CONTEXT.get()
    finally:
        _BOOT_LOG_CONTEXT.reset(token)
