"""Point-in-time integrity classification of boot state."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from packages.bootseq_core.runlevels import ServiceStatus
from packages.bootseq_shared.logging import fields, get_logger

if TYPE_CHECKING:
    from packages.bootseq_core.boot.contracts import StageContext

_LOGGER = get_logger(__name__)


class Severity(str, Enum):
    """How an absent requirement affects the verdict."""

    HARD = "hard"
    SOFT = "soft"


class Requirement(BaseModel):
    """One named item that should be present; hard by default."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    severity: Severity = Severity.HARD


RequirementLike = str | Requirement


def hard(*names: str) -> tuple[Requirement, ...]:
    """Build hard requirements for ``names``."""
    return tuple(Requirement(name=name) for name in names)


def soft(*names: str) -> tuple[Requirement, ...]:
    """Build soft requirements for ``names``."""
    return tuple(Requirement(name=name, severity=Severity.SOFT) for name in names)


class IntegritySnapshot(BaseModel):
    """Names present in the boot state at one instant."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tables: frozenset[str] = frozenset()
    modules: frozenset[str] = frozenset()
    symbols: frozenset[str] = frozenset()
    services: frozenset[str] = frozenset()
    taken_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_context(
        cls,
        context: StageContext,
        *,
        tables: Mapping[str, object] | None = None,
        modules: Iterable[str] = (),
        services: Iterable[str] = (),
        taken_at: datetime | None = None,
    ) -> IntegritySnapshot:
        """Snapshot a stage context plus items the stage is about to produce.

        Only services whose instance is ``RUNNING`` count as present.
        """
        running = {
            name
            for name, instance in context.services.items()
            if instance.status is ServiceStatus.RUNNING
        }
        return cls(
            tables=frozenset([*context.tables, *(tables or {})]),
            modules=frozenset([*context.modules, *modules]),
            symbols=frozenset(context.symbols),
            services=frozenset([*running, *services]),
            taken_at=taken_at or datetime.now(UTC),
        )


class IntegrityReport(BaseModel):
    """Classified presence of required items; ``healthy`` means no issues."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    healthy: bool
    checks: tuple[str, ...] = ()
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    timestamp: datetime


class IntegrityChecker:
    """Classify required tables, modules, symbols and services.

    ``verify`` never raises; missing items and malformed names are reported.
    It reads nothing but its arguments, so repeated calls on the same snapshot
    return equal reports.
    """

    def verify(
        self,
        required_tables: Iterable[RequirementLike],
        required_modules: Iterable[RequirementLike],
        required_symbols: Iterable[RequirementLike],
        current_state: IntegritySnapshot,
        required_services: Iterable[RequirementLike] = (),
    ) -> IntegrityReport:
        """Return a report for ``current_state`` against every requirement."""
        checks: list[str] = []
        issues: list[str] = []
        warnings: list[str] = []
        groups = (
            ("table", required_tables, current_state.tables),
            ("module", required_modules, current_state.modules),
            ("symbol", required_symbols, current_state.symbols),
            ("service", required_services, current_state.services),
        )
        for category, requirements, present in groups:
            for item in requirements:
                requirement = _as_requirement(item)
                if requirement is None:
                    issues.append(f"{category} requirement {item!r} is not a valid name")
                elif requirement.name in present:
                    checks.append(f"{category} '{requirement.name}' present")
                elif requirement.severity is Severity.HARD:
                    issues.append(f"{category} '{requirement.name}' missing")
                else:
                    warnings.append(f"{category} '{requirement.name}' missing")

        report = IntegrityReport(
            healthy=not issues,
            checks=tuple(checks),
            issues=tuple(issues),
            warnings=tuple(warnings),
            timestamp=current_state.taken_at,
        )
        _LOGGER.debug(
            "integrity verified",
            extra={
                fields.HEALTHY: report.healthy,
                fields.ISSUES: list(report.issues),
                fields.WARNINGS: list(report.warnings),
            },
        )
        return report


def _as_requirement(item: object) -> Requirement | None:
    """Coerce a plain name to a hard requirement; ``None`` for malformed names."""
    if isinstance(item, Requirement):
        return item
    if isinstance(item, str) and item:
        return Requirement(name=item)
    return None
