"""Ordered stage execution with threaded boot state and terminal events."""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType

from packages.bootseq_core.integrity import IntegrityChecker
from packages.bootseq_core.runlevels import (
    RunlevelServiceManager,
    ServiceCatalog,
    ServiceInstance,
)
from packages.bootseq_shared.config import BootSettings
from packages.bootseq_shared.errors import ErrorDetail
from packages.bootseq_shared.logging import fields, get_logger, log_context

from .contracts import (
    BootContractError,
    ModuleHandle,
    PipelineStateError,
    StageContext,
    StageDefinition,
    StageResult,
)
from .executor import StageExecutor
from .loader import ModuleLoader, SymbolTable

_LOGGER = get_logger(__name__)


class PipelineState(str, Enum):
    """Lifecycle state of one boot run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class BootCompleted:
    """Terminal outcome of a run where every stage succeeded."""

    boot_time_seconds: float
    module_names: tuple[str, ...]
    service_names: tuple[str, ...]
    warnings: tuple[str, ...] = ()
    success: bool = field(default=True, init=False)


@dataclass(frozen=True, slots=True)
class BootFailed:
    """Terminal outcome of a run stopped by one failing stage."""

    error: ErrorDetail
    stage_index: int
    stage_id: str
    success: bool = field(default=False, init=False)


BootOutcome = BootCompleted | BootFailed
BootObserver = Callable[[BootOutcome], "object | Awaitable[object]"]


@dataclass(frozen=True, slots=True)
class BootStatus:
    """Read-only snapshot of pipeline progress."""

    state: PipelineState
    initialized: bool
    errors: tuple[ErrorDetail, ...]
    warnings: tuple[str, ...]
    start_time: datetime | None
    end_time: datetime | None
    current_stage_index: int | None
    total_stages: int
    module_count: int
    service_count: int
    elapsed_seconds: float | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BootPipeline:
    """Run stages in order, merging each stage's output into the run state.

    Every collection the run owns (modules, services, tables, symbols and the
    loader and service manager bound to them) is created fresh by ``reboot``;
    nothing carries over between runs.
    """

    def __init__(
        self,
        stages: Sequence[StageDefinition],
        *,
        settings: BootSettings | None = None,
        service_catalog: ServiceCatalog | None = None,
        executor: StageExecutor | None = None,
        integrity: IntegrityChecker | None = None,
        clock: Callable[[], datetime] = _utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._stages = tuple(stages)
        seen: set[str] = set()
        for stage in self._stages:
            if not isinstance(stage, StageDefinition):
                raise BootContractError("pipeline stages must be StageDefinition instances")
            if stage.id in seen:
                raise BootContractError(f"duplicate stage id '{stage.id}'")
            seen.add(stage.id)

        self._settings = settings or BootSettings()
        self._catalog = service_catalog or ServiceCatalog()
        self._executor = executor or StageExecutor(
            timeout_seconds=self._settings.stage_timeout_seconds,
            monotonic=monotonic,
        )
        self._integrity = integrity or IntegrityChecker()
        self._clock = clock
        self._monotonic = monotonic
        self._sleeper = sleeper
        self._observers: list[BootObserver] = []
        self._reset()

    @property
    def stages(self) -> tuple[StageDefinition, ...]:
        """Return the ordered stage definitions."""
        return self._stages

    @property
    def state(self) -> PipelineState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def results(self) -> tuple[StageResult, ...]:
        """Return stage results of the current run in execution order."""
        return tuple(self._results)

    @property
    def outcome(self) -> BootOutcome | None:
        """Return the terminal outcome of the current run, if reached."""
        return self._outcome

    @property
    def modules(self) -> Mapping[str, ModuleHandle]:
        """Return a read-only view of loaded modules."""
        return MappingProxyType(self._modules)

    @property
    def services(self) -> Mapping[str, ServiceInstance]:
        """Return a read-only view of started services."""
        return MappingProxyType(self._services)

    @property
    def tables(self) -> Mapping[str, object]:
        """Return a read-only view of stage-produced tables."""
        return MappingProxyType(self._tables)

    @property
    def symbols(self) -> SymbolTable:
        """Return the current run's symbol table."""
        return self._symbols

    @property
    def service_manager(self) -> RunlevelServiceManager:
        """Return the current run's service manager."""
        return self._service_manager

    def subscribe(self, observer: BootObserver) -> None:
        """Register an observer for the terminal outcome of later runs."""
        if not callable(observer):
            raise BootContractError("boot observer must be callable")
        self._observers.append(observer)

    def unsubscribe(self, observer: BootObserver) -> None:
        """Remove one observer if registered."""
        if observer in self._observers:
            self._observers.remove(observer)

    async def run(self) -> BootOutcome:
        """Execute every stage once and return the terminal outcome.

        Stops at the first failed stage. Only a ``NOT_STARTED`` pipeline can
        run; use ``reboot`` to run again. A cancelled run is left ``FAILED``
        without an outcome and the cancellation propagates.
        """
        if self._state is not PipelineState.NOT_STARTED:
            raise PipelineStateError(
                f"pipeline cannot run from state '{self._state.value}'; use reboot()"
            )
        observers = tuple(self._observers)
        self._state = PipelineState.RUNNING
        self._start_time = self._clock()
        started = self._monotonic()

        with log_context(
            {fields.RUN_ID: self._run_id, fields.TOTAL_STAGES: len(self._stages)}
        ):
            _LOGGER.info("boot started")
            try:
                for index, stage in enumerate(self._stages):
                    self._current_stage_index = index
                    result = await self._executor.run(stage, self._context_for(stage, index))
                    self._results.append(result)
                    self._warnings.extend(result.warnings)
                    if not result.success:
                        return await self._finish_failed(result, started, observers)
                    self._merge(result)
                return await self._finish_completed(started, observers)
            except BaseException:
                # Interrupted runs end FAILED with no outcome.
                if self._state is PipelineState.RUNNING:
                    self._terminate(PipelineState.FAILED, started)
                    _LOGGER.warning(
                        "boot interrupted",
                        extra={fields.STAGE_INDEX: self._current_stage_index},
                    )
                raise

    async def reboot(self) -> BootOutcome:
        """Stop running services, discard all run state, then run again."""
        if self._state is PipelineState.RUNNING:
            raise PipelineStateError("pipeline cannot reboot while running")
        _LOGGER.info("reboot requested", extra={fields.RUN_ID: self._run_id})
        await self._service_manager.stop_all()
        self._reset()
        if self._settings.reboot_delay_seconds > 0:
            await self._sleeper(self._settings.reboot_delay_seconds)
        return await self.run()

    def get_status(self) -> BootStatus:
        """Return a snapshot of the current run without changing it."""
        return BootStatus(
            state=self._state,
            initialized=self._state is PipelineState.COMPLETED,
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            start_time=self._start_time,
            end_time=self._end_time,
            current_stage_index=self._current_stage_index,
            total_stages=len(self._stages),
            module_count=len(self._modules),
            service_count=len(self._services),
            elapsed_seconds=self._elapsed_seconds,
        )

    def _reset(self) -> None:
        """Replace every owned collection with a fresh one."""
        self._run_id = uuid.uuid4().hex
        self._state = PipelineState.NOT_STARTED
        self._modules: dict[str, ModuleHandle] = {}
        self._services: dict[str, ServiceInstance] = {}
        self._tables: dict[str, object] = {}
        self._symbols = SymbolTable()
        self._loader = ModuleLoader(symbols=self._symbols)
        self._service_manager = RunlevelServiceManager(self._catalog, clock=self._clock)
        self._results: list[StageResult] = []
        self._errors: list[ErrorDetail] = []
        self._warnings: list[str] = []
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._current_stage_index: int | None = None
        self._elapsed_seconds: float | None = None
        self._outcome: BootOutcome | None = None

    def _context_for(self, stage: StageDefinition, index: int) -> StageContext:
        return StageContext(
            stage_id=stage.id,
            stage_index=index,
            settings=self._settings,
            modules=MappingProxyType(self._modules),
            services=MappingProxyType(self._services),
            tables=MappingProxyType(self._tables),
            symbols=self._symbols.view(),
            loader=self._loader,
            service_manager=self._service_manager,
            integrity=self._integrity,
        )

    def _merge(self, result: StageResult) -> None:
        self._modules.update(result.produced_modules)
        self._services.update(result.produced_services)
        self._tables.update(result.produced_tables)

    def _terminate(self, state: PipelineState, started: float) -> None:
        self._state = state
        self._end_time = self._clock()
        self._elapsed_seconds = round(self._monotonic() - started, 6)

    async def _finish_completed(
        self, started: float, observers: tuple[BootObserver, ...]
    ) -> BootCompleted:
        self._terminate(PipelineState.COMPLETED, started)
        outcome = BootCompleted(
            boot_time_seconds=self._elapsed_seconds or 0.0,
            module_names=tuple(self._modules),
            service_names=tuple(self._services),
            warnings=tuple(self._warnings),
        )
        _LOGGER.info(
            "boot completed",
            extra={
                fields.EVENT: fields.BOOT_COMPLETE_EVENT,
                fields.SUCCESS: True,
                "boot_time_seconds": outcome.boot_time_seconds,
                "modules": len(outcome.module_names),
                "services": len(outcome.service_names),
            },
        )
        await self._deliver(outcome, observers)
        return outcome

    async def _finish_failed(
        self,
        result: StageResult,
        started: float,
        observers: tuple[BootObserver, ...],
    ) -> BootFailed:
        self._errors.append(result.error)
        self._terminate(PipelineState.FAILED, started)
        outcome = BootFailed(
            error=result.error,
            stage_index=result.stage_index,
            stage_id=result.stage_id,
        )
        _LOGGER.error(
            "boot failed: %s",
            outcome.error,
            extra={
                fields.EVENT: fields.BOOT_ERROR_EVENT,
                fields.SUCCESS: False,
                fields.STAGE_ID: outcome.stage_id,
                fields.STAGE_INDEX: outcome.stage_index,
                fields.ERROR_CODE: outcome.error.code,
                fields.ERROR_CATEGORY: outcome.error.category.value,
            },
        )
        await self._deliver(outcome, observers)
        return outcome

    async def _deliver(
        self, outcome: BootOutcome, observers: tuple[BootObserver, ...]
    ) -> None:
        """Record the outcome once and notify the observers captured at start."""
        self._outcome = outcome
        for observer in observers:
            try:
                delivered = observer(outcome)
                if inspect.isawaitable(delivered):
                    await delivered
            except Exception:
                _LOGGER.exception("boot observer raised")
