"""Exception normalization utilities for shared error contracts."""

from __future__ import annotations

from typing import Mapping

from . import codes
from .factories import (
    dependency_error,
    internal_error,
    not_found_error,
    policy_error,
    validation_error,
)
from .types import ErrorDetail


def exception_to_error(
    exc: BaseException, *, metadata: Mapping[str, str] | None = None
) -> ErrorDetail:
    """Normalize a Python exception into an ``ErrorDetail``.

    The mapping is generic. Callers layer domain-specific normalization
    before falling back to this function.
    """
    merged = {"exception_type": type(exc).__name__}
    if metadata:
        merged.update(metadata)

    if isinstance(exc, ValueError):
        return validation_error(str(exc), code=codes.INVALID_ARGUMENT, metadata=merged)

    if isinstance(exc, KeyError):
        return not_found_error(str(exc), code=codes.RESOURCE_NOT_FOUND, metadata=merged)

    if isinstance(exc, PermissionError):
        return policy_error(str(exc), code=codes.PERMISSION_DENIED, metadata=merged)

    if isinstance(exc, TimeoutError):
        return dependency_error(
            str(exc) or "dependency timeout",
            code=codes.DEPENDENCY_TIMEOUT,
            metadata=merged,
        )

    if isinstance(exc, ConnectionError):
        return dependency_error(
            str(exc) or "dependency unavailable",
            code=codes.DEPENDENCY_UNAVAILABLE,
            metadata=merged,
        )

    return internal_error(
        str(exc) or "unexpected exception",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=merged,
    )
