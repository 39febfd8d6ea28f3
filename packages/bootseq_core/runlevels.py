"""Runlevel-scoped service lifecycle management.

Services start one at a time in the order requested. A service that cannot
start (unknown name, unsupported runlevel, failing start action) is recorded
as a failure and skipped; the rest of the runlevel still comes up. This is the
opposite of module loading, where the first failure aborts the stage.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType

from packages.bootseq_core.boot.contracts import (
    BootContractError,
    BootError,
    RunlevelMismatchError,
    ServiceStartError,
    UnknownServiceError,
    boot_error_to_detail,
    require_name,
)
from packages.bootseq_shared.config import MAX_RUNLEVEL, MIN_RUNLEVEL
from packages.bootseq_shared.errors import ErrorDetail
from packages.bootseq_shared.logging import fields, get_logger, log_context

_LOGGER = get_logger(__name__)

RUNLEVEL_NAMES: Mapping[int, str] = MappingProxyType(
    {
        0: "halt",
        1: "single-user",
        2: "multi-user without NFS",
        3: "full multi-user",
        4: "unused",
        5: "graphical",
        6: "reboot",
    }
)


class ServiceKind(str, Enum):
    """Lifecycle shape of a service."""

    DAEMON = "daemon"
    ONESHOT = "oneshot"


class ServiceStatus(str, Enum):
    """Observed status of one service instance."""

    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


ServiceAction = Callable[[], "object | Awaitable[object]"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _call_action(action: ServiceAction) -> object:
    """Invoke a sync or async service action and return its result."""
    result = action()
    if inspect.isawaitable(result):
        result = await result
    return result


def coerce_runlevels(value: object, *, owner: str) -> frozenset[int]:
    """Validate one iterable of runlevels into a frozen set."""
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise BootContractError(f"{owner}.supported_runlevels must be an iterable of ints")
    levels: set[int] = set()
    for raw in value:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise BootContractError(f"{owner}.supported_runlevels must contain only ints")
        if not MIN_RUNLEVEL <= raw <= MAX_RUNLEVEL:
            raise BootContractError(
                f"{owner}.supported_runlevels entry {raw} is outside "
                f"{MIN_RUNLEVEL}..{MAX_RUNLEVEL}"
            )
        levels.add(raw)
    return frozenset(levels)


@dataclass(frozen=True, slots=True)
class ServiceDefinition:
    """Static description of one service and the runlevels it may run in."""

    name: str
    kind: ServiceKind
    supported_runlevels: frozenset[int]
    start: ServiceAction = field(compare=False)
    stop: ServiceAction | None = field(default=None, compare=False)
    description: str = ""

    def __post_init__(self) -> None:
        """Validate name, kind, runlevels and actions."""
        require_name(self.name, kind="service")
        owner = f"service '{self.name}'"
        if not isinstance(self.kind, ServiceKind):
            raise BootContractError(f"{owner}.kind must be a ServiceKind")
        object.__setattr__(
            self,
            "supported_runlevels",
            coerce_runlevels(self.supported_runlevels, owner=owner),
        )
        if not callable(self.start):
            raise BootContractError(f"{owner}.start must be callable")
        if self.stop is not None and not callable(self.stop):
            raise BootContractError(f"{owner}.stop must be callable")

    def supports(self, runlevel: int) -> bool:
        """Return whether this service may run in ``runlevel``."""
        return runlevel in self.supported_runlevels


@dataclass(slots=True)
class ServiceInstance:
    """One started service; at most one exists per running service name."""

    definition: ServiceDefinition
    runlevel_started: int
    started_at: datetime
    process_info: object
    status: ServiceStatus = ServiceStatus.RUNNING

    @property
    def name(self) -> str:
        """Return the service name."""
        return self.definition.name


@dataclass(frozen=True, slots=True)
class DaemonRecord:
    """Daemon bookkeeping entry, appended in start order."""

    name: str
    process_info: object
    since: datetime


@dataclass(frozen=True, slots=True)
class ServiceFailure:
    """One isolated service failure recorded by the manager."""

    service: str
    runlevel: int | None
    error: BaseException

    @property
    def detail(self) -> ErrorDetail:
        """Return the normalized error detail for this failure."""
        return boot_error_to_detail(self.error, metadata={fields.SERVICE_NAME: self.service})


class ServiceCatalog:
    """Registry of service definitions plus the runlevel service table."""

    def __init__(
        self,
        definitions: Iterable[ServiceDefinition] = (),
        *,
        runlevel_table: Mapping[int, Sequence[str]] | None = None,
    ) -> None:
        self._definitions: dict[str, ServiceDefinition] = {}
        for definition in definitions:
            self.register(definition)
        self._table: dict[int, tuple[str, ...]] = {}
        for runlevel, names in (runlevel_table or {}).items():
            self.set_runlevel_services(runlevel, names)

    def register(self, definition: ServiceDefinition) -> ServiceDefinition:
        """Register one definition; re-registering the same object is a no-op."""
        existing = self._definitions.get(definition.name)
        if existing is not None and existing is not definition:
            raise BootContractError(
                f"duplicate service definition for '{definition.name}'"
            )
        self._definitions[definition.name] = definition
        return definition

    def set_runlevel_services(self, runlevel: int, names: Sequence[str]) -> None:
        """Assign the ordered service names started when entering ``runlevel``."""
        if not MIN_RUNLEVEL <= runlevel <= MAX_RUNLEVEL:
            raise BootContractError(
                f"runlevel {runlevel} is outside {MIN_RUNLEVEL}..{MAX_RUNLEVEL}"
            )
        if isinstance(names, str):
            raise BootContractError(f"runlevel {runlevel} services must be a sequence of names")
        self._table[runlevel] = tuple(names)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def get(self, name: str) -> ServiceDefinition:
        """Return one definition or raise ``UnknownServiceError``."""
        try:
            return self._definitions[name]
        except KeyError:
            raise UnknownServiceError(name) from None

    def services_for_runlevel(self, runlevel: int) -> tuple[str, ...]:
        """Return the ordered service names configured for one runlevel."""
        return self._table.get(runlevel, tuple())

    def definitions(self) -> tuple[ServiceDefinition, ...]:
        """Return all definitions in registration order."""
        return tuple(self._definitions.values())


class RunlevelServiceManager:
    """Start and stop services for one boot run, scoped by runlevel."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._catalog = catalog
        self._clock = clock
        self._running: dict[str, ServiceInstance] = {}
        self._daemons: list[DaemonRecord] = []
        self._failures: list[ServiceFailure] = []
        self._current_runlevel: int | None = None

    @property
    def catalog(self) -> ServiceCatalog:
        """Return the catalog services are started from."""
        return self._catalog

    @property
    def current_runlevel(self) -> int | None:
        """Return the most recently entered runlevel, if any."""
        return self._current_runlevel

    @property
    def running(self) -> Mapping[str, ServiceInstance]:
        """Return a read-only view of running services by name."""
        return MappingProxyType(self._running)

    @property
    def daemons(self) -> tuple[DaemonRecord, ...]:
        """Return daemon records in start order."""
        return tuple(self._daemons)

    @property
    def failures(self) -> tuple[ServiceFailure, ...]:
        """Return isolated service failures in the order they occurred."""
        return tuple(self._failures)

    def get_services_for_runlevel(self, runlevel: int) -> tuple[str, ...]:
        """Return the configured service names for ``runlevel``."""
        return self._catalog.services_for_runlevel(runlevel)

    async def enter_runlevel(
        self,
        runlevel: int,
        service_names: Sequence[str] | None = None,
    ) -> dict[str, ServiceInstance]:
        """Start each requested service for ``runlevel`` in order.

        Defaults to the catalog's table entry for the runlevel. Services that
        are already running are left as they are and not returned. Failures
        are recorded in ``failures`` and do not stop the remaining services.
        """
        names = (
            self.get_services_for_runlevel(runlevel)
            if service_names is None
            else tuple(service_names)
        )
        self._current_runlevel = runlevel
        started: dict[str, ServiceInstance] = {}

        with log_context({fields.RUNLEVEL: runlevel}):
            _LOGGER.info(
                "entering runlevel",
                extra={
                    "runlevel_name": RUNLEVEL_NAMES.get(runlevel, "custom"),
                    "requested": list(names),
                },
            )
            for name in names:
                if name in self._running:
                    _LOGGER.debug(
                        "service already running", extra={fields.SERVICE_NAME: name}
                    )
                    continue
                try:
                    started[name] = await self.start_service(name, runlevel)
                except BootError as exc:
                    self._record_failure(name, runlevel, exc)
        return started

    async def start_service(self, name: str, runlevel: int) -> ServiceInstance:
        """Start one service at ``runlevel`` or raise a ``BootError``."""
        definition = self._catalog.get(name)
        if not definition.supports(runlevel):
            raise RunlevelMismatchError(name, runlevel, definition.supported_runlevels)

        started_at = self._clock()
        try:
            process_info = await _call_action(definition.start)
        except Exception as exc:
            raise ServiceStartError(name, runlevel, str(exc) or type(exc).__name__) from exc

        instance = ServiceInstance(
            definition=definition,
            runlevel_started=runlevel,
            started_at=started_at,
            process_info=process_info,
        )
        self._running[name] = instance
        if definition.kind is ServiceKind.DAEMON:
            self._daemons.append(
                DaemonRecord(name=name, process_info=process_info, since=started_at)
            )
        _LOGGER.info(
            "service started",
            extra={
                fields.SERVICE_NAME: name,
                fields.SERVICE_KIND: definition.kind.value,
                fields.RUNLEVEL: runlevel,
            },
        )
        return instance

    async def stop_service(self, name: str) -> ServiceInstance:
        """Stop one running service.

        A failing stop action marks the instance ``FAILED`` and is recorded in
        ``failures``; the service is removed from the running set either way.
        """
        instance = self._running.pop(name, None)
        if instance is None:
            raise UnknownServiceError(name)
        self._daemons = [record for record in self._daemons if record.name != name]

        stop = instance.definition.stop
        if stop is None:
            instance.status = ServiceStatus.STOPPED
        else:
            try:
                await _call_action(stop)
            except Exception as exc:
                instance.status = ServiceStatus.FAILED
                self._failures.append(
                    ServiceFailure(service=name, runlevel=self._current_runlevel, error=exc)
                )
                _LOGGER.exception(
                    "service stop failed", extra={fields.SERVICE_NAME: name}
                )
                return instance
            instance.status = ServiceStatus.STOPPED
        _LOGGER.info("service stopped", extra={fields.SERVICE_NAME: name})
        return instance

    async def stop_all(self) -> tuple[str, ...]:
        """Stop every running service in reverse start order."""
        stopped: list[str] = []
        for name in reversed(tuple(self._running)):
            await self.stop_service(name)
            stopped.append(name)
        return tuple(stopped)

    def _record_failure(self, name: str, runlevel: int, exc: BootError) -> None:
        self._failures.append(ServiceFailure(service=name, runlevel=runlevel, error=exc))
        _LOGGER.warning(
            "service start failed",
            extra={fields.SERVICE_NAME: name, "error": str(exc)},
        )
