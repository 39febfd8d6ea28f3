"""Error shapes that outlive the exception that produced them.

A failed stage, a service that would not start and a terminal boot event all
report an ``ErrorDetail`` rather than a live exception, so results stay
comparable, loggable and serializable after the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping


class ErrorCategory(str, Enum):
    """Coarse failure class used to decide how a caller reacts."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    POLICY = "policy"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ErrorDetail:
    """Structured failure reported by stage results, service failures and boot events."""

    code: str
    message: str
    category: ErrorCategory
    retryable: bool = False
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def with_message(self, message: str) -> ErrorDetail:
        """Return a copy carrying ``message`` instead."""
        return replace(self, message=message)

    def with_metadata(self, **values: str) -> ErrorDetail:
        """Return a copy with ``values`` merged over existing metadata."""
        return replace(self, metadata={**self.metadata, **values})
