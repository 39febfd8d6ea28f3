"""Tests for integrity classification of tables, modules, symbols and services."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from packages.bootseq_core.boot.contracts import ModuleHandle, ModuleKind, StageContext
from packages.bootseq_core.boot.loader import ModuleLoader, SymbolTable
from packages.bootseq_core.integrity import (
    IntegrityChecker,
    IntegritySnapshot,
    Requirement,
    Severity,
    hard,
    soft,
)
from packages.bootseq_core.runlevels import (
    RunlevelServiceManager,
    ServiceCatalog,
    ServiceDefinition,
    ServiceInstance,
    ServiceKind,
    ServiceStatus,
)
from packages.bootseq_shared.config import BootSettings

_TAKEN_AT = datetime(2026, 1, 1, tzinfo=UTC)


def _snapshot(**names: tuple[str, ...]) -> IntegritySnapshot:
    """Build a snapshot from plain name tuples."""
    return IntegritySnapshot(
        **{key: frozenset(value) for key, value in names.items()}, taken_at=_TAKEN_AT
    )


def test_all_present_is_healthy() -> None:
    """Every requirement present should yield only checks."""
    report = IntegrityChecker().verify(
        ["gdt"],
        ["scheduler"],
        ["schedule"],
        _snapshot(tables=("gdt",), modules=("scheduler",), symbols=("schedule",)),
    )

    assert report.healthy is True
    assert report.checks == (
        "table 'gdt' present",
        "module 'scheduler' present",
        "symbol 'schedule' present",
    )
    assert report.issues == ()
    assert report.warnings == ()
    assert report.timestamp == _TAKEN_AT


def test_plain_names_are_hard_requirements() -> None:
    """A missing plain name should be an issue and make the report unhealthy."""
    report = IntegrityChecker().verify(["gdt", "idt"], [], [], _snapshot(tables=("gdt",)))

    assert report.healthy is False
    assert report.issues == ("table 'idt' missing",)


def test_soft_requirements_only_warn() -> None:
    """Missing soft requirements should warn without affecting health."""
    report = IntegrityChecker().verify(
        hard("gdt"),
        [],
        soft("kmalloc", "schedule"),
        _snapshot(tables=("gdt",), symbols=("schedule",)),
    )

    assert report.healthy is True
    assert report.warnings == ("symbol 'kmalloc' missing",)
    assert "symbol 'schedule' present" in report.checks


def test_service_requirements_are_classified() -> None:
    """Required services should be checked like any other category."""
    report = IntegrityChecker().verify(
        [],
        [],
        [],
        _snapshot(services=("syslog",)),
        required_services=["syslog", Requirement(name="gui", severity=Severity.SOFT)],
    )

    assert report.checks == ("service 'syslog' present",)
    assert report.warnings == ("service 'gui' missing",)
    assert report.healthy is True


def test_verify_is_idempotent_for_one_snapshot() -> None:
    """Repeated verification of one snapshot should give equal reports."""
    checker = IntegrityChecker()
    snapshot = _snapshot(tables=("gdt",), modules=("scheduler",))

    first = checker.verify(["gdt", "tss"], ["scheduler"], soft("x"), snapshot)
    second = checker.verify(["gdt", "tss"], ["scheduler"], soft("x"), snapshot)

    assert first == second


def test_requirement_rejects_empty_name() -> None:
    """Requirement names must be non-empty."""
    with pytest.raises(ValidationError):
        Requirement(name="")



def test_malformed_plain_names_are_reported_not_raised() -> None:
    """Empty or non-string names should become issues instead of exceptions."""
    requirements: list[object] = ["scheduler", None]
    report = IntegrityChecker().verify(
        [""], requirements, [], _snapshot(modules=("scheduler",))  # type: ignore[arg-type]
    )

    assert report.healthy is False
    assert report.checks == ("module 'scheduler' present",)
    assert report.issues == (
        "table requirement '' is not a valid name",
        "module requirement None is not a valid name",
    )


def test_snapshot_from_context_counts_only_running_services() -> None:
    """Snapshots should merge pending items and ignore stopped services."""
    definition = ServiceDefinition("cron", ServiceKind.DAEMON, frozenset({2}), lambda: None)
    stopped = ServiceInstance(
        definition=definition,
        runlevel_started=2,
        started_at=_TAKEN_AT,
        process_info=None,
        status=ServiceStatus.STOPPED,
    )
    symbols = SymbolTable()
    context = StageContext(
        stage_id="check",
        stage_index=0,
        settings=BootSettings(),
        modules={
            "scheduler": ModuleHandle(
                name="scheduler",
                kind=ModuleKind.SCHEDULER,
                state=None,
                initialized=True,
                dependencies=(),
            )
        },
        services={"cron": stopped},
        tables={"gdt": ()},
        symbols=symbols.view(),
        loader=ModuleLoader(symbols=symbols),
        service_manager=RunlevelServiceManager(ServiceCatalog()),
        integrity=IntegrityChecker(),
    )

    snapshot = IntegritySnapshot.from_context(
        context,
        tables={"idt": ()},
        modules=("syscalls",),
        services=("syslog",),
        taken_at=_TAKEN_AT,
    )

    assert snapshot.tables == frozenset({"gdt", "idt"})
    assert snapshot.modules == frozenset({"scheduler", "syscalls"})
    assert snapshot.services == frozenset({"syslog"})
    assert snapshot.taken_at == _TAKEN_AT
