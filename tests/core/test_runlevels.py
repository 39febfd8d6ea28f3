"""Tests for runlevel service start/stop behavior and failure isolation."""

from __future__ import annotations

import asyncio

import pytest

from packages.bootseq_core.boot.contracts import (
    RUNLEVEL_MISMATCH,
    SERVICE_START_FAILED,
    BootContractError,
    RunlevelMismatchError,
    ServiceStartError,
    UnknownServiceError,
)
from packages.bootseq_core.catalog import default_service_catalog
from packages.bootseq_core.runlevels import (
    RunlevelServiceManager,
    ServiceCatalog,
    ServiceDefinition,
    ServiceKind,
    ServiceStatus,
)


def _definition(
    name: str,
    levels: set[int],
    *,
    kind: ServiceKind = ServiceKind.DAEMON,
    log: list[str] | None = None,
    fail_start: bool = False,
    fail_stop: bool = False,
) -> ServiceDefinition:
    """Build one service definition that records start and stop calls."""
    calls = log if log is not None else []

    async def start() -> dict[str, str]:
        if fail_start:
            raise OSError(f"{name} crashed")
        calls.append(f"start:{name}")
        return {"name": name}

    def stop() -> None:
        if fail_stop:
            raise RuntimeError(f"{name} hung")
        calls.append(f"stop:{name}")

    return ServiceDefinition(name, kind, frozenset(levels), start, stop)


def test_enter_runlevel_isolates_unsupported_service() -> None:
    """A service outside the runlevel should fail alone while the rest start."""
    log: list[str] = []
    catalog = ServiceCatalog(
        (
            _definition("cron", {2, 3}, log=log),
            _definition("shell", {1}, log=log),
            _definition("syslog", {2, 3}, log=log),
        )
    )
    manager = RunlevelServiceManager(catalog)

    started = asyncio.run(manager.enter_runlevel(2, ["cron", "shell", "syslog"]))

    assert list(started) == ["cron", "syslog"]
    assert log == ["start:cron", "start:syslog"]
    assert len(manager.failures) == 1
    failure = manager.failures[0]
    assert failure.service == "shell"
    assert failure.runlevel == 2
    assert isinstance(failure.error, RunlevelMismatchError)
    assert failure.detail.code == RUNLEVEL_MISMATCH
    assert failure.detail.metadata["service_name"] == "shell"


def test_enter_runlevel_uses_catalog_table_by_default() -> None:
    """Without explicit names the runlevel table decides what starts."""
    catalog = ServiceCatalog(
        (_definition("cron", {2}), _definition("dbus", {2})),
        runlevel_table={2: ("dbus", "cron")},
    )
    manager = RunlevelServiceManager(catalog)

    started = asyncio.run(manager.enter_runlevel(2))

    assert list(started) == ["dbus", "cron"]
    assert manager.current_runlevel == 2
    assert manager.get_services_for_runlevel(4) == ()


def test_start_failure_is_recorded_and_others_continue() -> None:
    """A start action raising should become a ServiceStartError failure."""
    catalog = ServiceCatalog(
        (_definition("db", {3}, fail_start=True), _definition("ssh", {3}))
    )
    manager = RunlevelServiceManager(catalog)

    started = asyncio.run(manager.enter_runlevel(3, ["db", "ssh"]))

    assert list(started) == ["ssh"]
    assert "db" not in manager.running
    error = manager.failures[0].error
    assert isinstance(error, ServiceStartError)
    assert "db crashed" in str(error)
    assert isinstance(error.__cause__, OSError)
    assert manager.failures[0].detail.code == SERVICE_START_FAILED


def test_unknown_service_name_is_recorded() -> None:
    """Names absent from the catalog should be recorded, not raised."""
    manager = RunlevelServiceManager(ServiceCatalog((_definition("cron", {2}),)))

    started = asyncio.run(manager.enter_runlevel(2, ["ghost", "cron"]))

    assert list(started) == ["cron"]
    assert isinstance(manager.failures[0].error, UnknownServiceError)


def test_start_service_raises_for_unsupported_runlevel() -> None:
    """Direct starts should raise instead of recording."""
    manager = RunlevelServiceManager(ServiceCatalog((_definition("gui", {5}),)))

    with pytest.raises(RunlevelMismatchError) as error:
        asyncio.run(manager.start_service("gui", 3))

    assert error.value.runlevel == 3
    assert manager.failures == ()


def test_daemons_tracked_in_start_order_and_oneshots_skipped() -> None:
    """Only daemon services should be added to the daemon list."""
    catalog = ServiceCatalog(
        (
            _definition("net", {1}, kind=ServiceKind.ONESHOT),
            _definition("syslog", {1}),
            _definition("cron", {1}),
        )
    )
    manager = RunlevelServiceManager(catalog)

    asyncio.run(manager.enter_runlevel(1, ["net", "syslog", "cron"]))

    assert [record.name for record in manager.daemons] == ["syslog", "cron"]
    assert manager.daemons[0].process_info == {"name": "syslog"}
    assert manager.running["net"].status is ServiceStatus.RUNNING


def test_entering_later_runlevel_keeps_running_services() -> None:
    """Services already running are left alone and not returned again."""
    log: list[str] = []
    catalog = ServiceCatalog(
        (_definition("syslog", {1, 2}, log=log), _definition("cron", {2}, log=log))
    )
    manager = RunlevelServiceManager(catalog)

    async def _run() -> dict[str, object]:
        await manager.enter_runlevel(1, ["syslog"])
        return await manager.enter_runlevel(2, ["syslog", "cron"])

    started = asyncio.run(_run())

    assert list(started) == ["cron"]
    assert log == ["start:syslog", "start:cron"]
    assert manager.running["syslog"].runlevel_started == 1


def test_stop_all_runs_in_reverse_start_order() -> None:
    """Stopping everything should unwind services newest first."""
    log: list[str] = []
    catalog = ServiceCatalog(
        (_definition("a", {2}, log=log), _definition("b", {2}, log=log))
    )
    manager = RunlevelServiceManager(catalog)

    async def _run() -> tuple[str, ...]:
        await manager.enter_runlevel(2, ["a", "b"])
        return await manager.stop_all()

    stopped = asyncio.run(_run())

    assert stopped == ("b", "a")
    assert log == ["start:a", "start:b", "stop:b", "stop:a"]
    assert dict(manager.running) == {}
    assert manager.daemons == ()


def test_stop_failure_marks_instance_failed() -> None:
    """A failing stop action should be recorded and still remove the service."""
    manager = RunlevelServiceManager(
        ServiceCatalog((_definition("db", {3}, fail_stop=True),))
    )

    async def _run():
        await manager.enter_runlevel(3, ["db"])
        return await manager.stop_service("db")

    instance = asyncio.run(_run())

    assert instance.status is ServiceStatus.FAILED
    assert "db" not in manager.running
    assert isinstance(manager.failures[0].error, RuntimeError)


def test_stop_service_rejects_service_that_is_not_running() -> None:
    """Stopping an unknown or stopped service should raise."""
    manager = RunlevelServiceManager(ServiceCatalog((_definition("a", {2}),)))

    with pytest.raises(UnknownServiceError):
        asyncio.run(manager.stop_service("a"))


def test_running_view_is_read_only() -> None:
    """Callers cannot mutate the running-service mapping."""
    manager = RunlevelServiceManager(ServiceCatalog())

    with pytest.raises(TypeError):
        manager.running["x"] = None  # type: ignore[index]


def test_service_definition_validates_runlevels() -> None:
    """Runlevels outside 0..6 or of the wrong type are contract errors."""
    with pytest.raises(BootContractError):
        _definition("bad", {7})
    with pytest.raises(BootContractError):
        ServiceDefinition("bad", ServiceKind.DAEMON, "35", lambda: None)  # type: ignore[arg-type]
    with pytest.raises(BootContractError):
        ServiceDefinition("bad", "daemon", frozenset({1}), lambda: None)  # type: ignore[arg-type]


def test_catalog_rejects_duplicate_names() -> None:
    """Two different definitions may not share one service name."""
    catalog = ServiceCatalog((_definition("cron", {2}),))

    with pytest.raises(BootContractError):
        catalog.register(_definition("cron", {3}))


def test_default_catalog_brings_up_graphical_runlevel() -> None:
    """Walking runlevels 1 through 5 should start every table entry without failures."""
    manager = RunlevelServiceManager(default_service_catalog())

    async def _run() -> None:
        for runlevel in range(1, 6):
            await manager.enter_runlevel(runlevel)

    asyncio.run(_run())

    assert manager.failures == ()
    assert "emergency-shell" in manager.running
    assert {"ssh", "display-manager", "window-manager"} <= set(manager.running)
    assert manager.current_runlevel == 5
