"""Contracts, data types and errors for the boot orchestration core."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from packages.bootseq_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    exception_to_error,
    not_found_error,
    policy_error,
    validation_error,
)

if TYPE_CHECKING:
    from packages.bootseq_core.integrity import IntegrityChecker
    from packages.bootseq_core.runlevels import RunlevelServiceManager, ServiceInstance
    from packages.bootseq_shared.config import BootSettings

    from .loader import ModuleLoader

INVALID_DEFINITION = codes.BOOT_INVALID_DEFINITION
MODULE_DEPENDENCY_MISSING = codes.BOOT_MODULE_DEPENDENCY_MISSING
MODULE_DEPENDENCY_CYCLE = codes.BOOT_MODULE_DEPENDENCY_CYCLE
MODULE_DEPENDENCY_UNSATISFIED = codes.BOOT_MODULE_DEPENDENCY_UNSATISFIED
MODULE_ALREADY_LOADED = codes.BOOT_MODULE_ALREADY_LOADED
SYMBOL_CONFLICT = codes.BOOT_SYMBOL_CONFLICT
UNKNOWN_MODULE = codes.BOOT_UNKNOWN_MODULE
UNKNOWN_SERVICE = codes.BOOT_UNKNOWN_SERVICE
STAGE_FAILED = codes.BOOT_STAGE_FAILED
STAGE_TIMEOUT = codes.BOOT_STAGE_TIMEOUT
INTEGRITY_FAILED = codes.BOOT_INTEGRITY_FAILED
RUNLEVEL_MISMATCH = codes.BOOT_RUNLEVEL_MISMATCH
SERVICE_START_FAILED = codes.BOOT_SERVICE_START_FAILED


class BootError(RuntimeError):
    """Base error for all boot orchestration failures."""


class BootContractError(BootError):
    """Raised when a module, service or stage definition is malformed."""


class BootDependencyError(BootError):
    """Raised when module dependencies are invalid or unresolved."""


class DependencyError(BootDependencyError):
    """Raised when a module names a dependency absent from the definition set."""

    def __init__(self, module: str, missing: Iterable[str]) -> None:
        self.module = module
        self.missing = tuple(sorted(missing))
        super().__init__(
            f"module '{module}' references missing dependencies: {list(self.missing)}"
        )


class CycleError(BootDependencyError):
    """Raised when module dependencies form a cycle; ``cycle`` lists its members."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(
            "module dependency cycle detected: " + " -> ".join([*self.cycle, self.cycle[0]])
        )


class UnsatisfiedDependencyError(BootDependencyError):
    """Raised when a module load is attempted before its dependencies are loaded."""

    def __init__(self, module: str, missing: Iterable[str]) -> None:
        self.module = module
        self.missing = tuple(missing)
        super().__init__(
            f"module '{module}' cannot load before its dependencies: {list(self.missing)}"
        )


class ModuleAlreadyLoadedError(BootError):
    """Raised when a module name is loaded twice within one run."""

    def __init__(self, module: str) -> None:
        self.module = module
        super().__init__(f"module '{module}' is already loaded")


class SymbolConflictError(BootError):
    """Raised when two modules export the same symbol name."""

    def __init__(self, symbol: str, existing_module: str, conflicting_module: str) -> None:
        self.symbol = symbol
        self.existing_module = existing_module
        self.conflicting_module = conflicting_module
        super().__init__(
            f"symbol '{symbol}' exported by '{conflicting_module}' is already "
            f"owned by '{existing_module}'"
        )


class UnknownModuleError(BootError):
    """Raised when a module name has no definition or loaded handle."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown module '{name}'")


class UnknownServiceError(BootError):
    """Raised when a service name has no definition."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"unknown service '{name}'")


class ModuleLoadError(BootError):
    """Raised when a batch load stops; keeps the modules loaded before the failure."""

    def __init__(
        self,
        module: str,
        cause: BaseException,
        loaded: Mapping[str, ModuleHandle],
    ) -> None:
        self.module = module
        self.cause = cause
        self.loaded = MappingProxyType(dict(loaded))
        super().__init__(f"failed to load module '{module}': {cause}")


class StageError(BootError):
    """Raised when a stage action reports failure; names the stage."""

    def __init__(self, stage_id: str, message: str) -> None:
        self.stage_id = stage_id
        super().__init__(f"stage '{stage_id}' failed: {message}")


class StageTimeoutError(StageError):
    """Raised when a stage action exceeds its deadline."""

    def __init__(self, stage_id: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(stage_id, f"exceeded deadline of {timeout_seconds:.3f}s")


class IntegrityError(StageError):
    """Raised when a stage leaves hard integrity requirements unmet."""

    def __init__(self, stage_id: str, issues: Iterable[str]) -> None:
        self.issues = tuple(issues)
        super().__init__(stage_id, "integrity check failed: " + "; ".join(self.issues))


class RunlevelMismatchError(BootError):
    """Raised when a service is started at a runlevel it does not support."""

    def __init__(self, service: str, runlevel: int, supported: Iterable[int]) -> None:
        self.service = service
        self.runlevel = runlevel
        self.supported = tuple(sorted(supported))
        super().__init__(
            f"service '{service}' is not available in runlevel {runlevel} "
            f"(supported: {list(self.supported)})"
        )


class ServiceStartError(BootError):
    """Raised when a service start action fails."""

    def __init__(self, service: str, runlevel: int, message: str) -> None:
        self.service = service
        self.runlevel = runlevel
        super().__init__(f"service '{service}' failed to start in runlevel {runlevel}: {message}")


class PipelineStateError(BootError):
    """Raised when a pipeline operation is invalid for its current state."""


_DetailFactory = tuple[type[BootError], Callable[..., ErrorDetail], dict[str, Any]]

_DETAIL_FACTORIES: tuple[_DetailFactory, ...] = (
    (StageTimeoutError, dependency_error, {"code": STAGE_TIMEOUT, "retryable": True}),
    (IntegrityError, policy_error, {"code": INTEGRITY_FAILED}),
    (StageError, dependency_error, {"code": STAGE_FAILED, "retryable": False}),
    (CycleError, validation_error, {"code": MODULE_DEPENDENCY_CYCLE}),
    (DependencyError, dependency_error, {"code": MODULE_DEPENDENCY_MISSING, "retryable": False}),
    (
        UnsatisfiedDependencyError,
        dependency_error,
        {"code": MODULE_DEPENDENCY_UNSATISFIED, "retryable": False},
    ),
    (SymbolConflictError, conflict_error, {"code": SYMBOL_CONFLICT}),
    (ModuleAlreadyLoadedError, conflict_error, {"code": MODULE_ALREADY_LOADED}),
    (UnknownModuleError, not_found_error, {"code": UNKNOWN_MODULE}),
    (UnknownServiceError, not_found_error, {"code": UNKNOWN_SERVICE}),
    (RunlevelMismatchError, policy_error, {"code": RUNLEVEL_MISMATCH}),
    (ServiceStartError, dependency_error, {"code": SERVICE_START_FAILED, "retryable": False}),
    (BootContractError, validation_error, {"code": INVALID_DEFINITION}),
)


def boot_error_to_detail(
    exc: BaseException, *, metadata: Mapping[str, str] | None = None
) -> ErrorDetail:
    """Normalize one boot failure into an ``ErrorDetail``.

    Boot errors map onto their own codes; anything else falls back to the
    shared ``exception_to_error`` mapping. A ``ModuleLoadError`` is reported
    as its underlying cause, tagged with the module that failed.
    """
    merged = dict(metadata or {})
    if isinstance(exc, ModuleLoadError):
        detail = boot_error_to_detail(exc.cause, metadata=merged)
        if "module" in detail.metadata:
            return detail
        return detail.with_metadata(module=exc.module)

    for error_type, factory, options in _DETAIL_FACTORIES:
        if isinstance(exc, error_type):
            merged.setdefault("exception_type", type(exc).__name__)
            return factory(str(exc), metadata=merged, **options)
    return exception_to_error(exc, metadata=merged)


class ModuleKind(str, Enum):
    """Capability variant of a kernel module."""

    SCHEDULER = "scheduler"
    MEMORY = "memory"
    PROCESS = "process"
    IPC = "ipc"
    SYSCALL = "syscall"
    DRIVER = "driver"
    GENERIC = "generic"


class SymbolKind(str, Enum):
    """Kind of value a symbol resolves to."""

    FUNCTION = "function"
    VALUE = "value"


def coerce_names(value: object, *, owner: str, attribute_name: str) -> tuple[str, ...]:
    """Validate and normalize one iterable of names, dropping duplicates in order."""
    if isinstance(value, str):
        raise BootContractError(
            f"{owner}.{attribute_name} must be an iterable of names, not str"
        )
    if not isinstance(value, Iterable):
        raise BootContractError(f"{owner}.{attribute_name} must be an iterable of names")

    normalized: list[str] = []
    seen: set[str] = set()
    for raw in value:
        if not isinstance(raw, str) or not raw:
            raise BootContractError(
                f"{owner}.{attribute_name} must contain only non-empty strings"
            )
        if raw not in seen:
            normalized.append(raw)
            seen.add(raw)
    return tuple(normalized)


def require_name(value: object, *, kind: str) -> str:
    """Ensure one definition name is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise BootContractError(f"{kind} name must be a non-empty string")
    return value


def require_single_arg_callable(
    value: object, *, owner: str, attribute_name: str
) -> Callable[..., object]:
    """Ensure one callable accepts exactly one positional argument."""
    if not callable(value):
        raise BootContractError(f"{owner}.{attribute_name} must be callable")
    try:
        parameters = tuple(inspect.signature(value).parameters.values())
    except (TypeError, ValueError):
        return value
    if len(parameters) != 1:
        raise BootContractError(
            f"{owner}.{attribute_name} must accept exactly one argument"
        )
    return value


@dataclass(frozen=True, slots=True)
class ModuleDefinition:
    """Static description of one loadable module.

    ``priority`` orders modules that have no dependency relation between them
    (lower loads earlier). ``exports`` are function symbols and ``values`` are
    value symbols; both are registered in the run's symbol table on load.
    """

    name: str
    priority: int = 0
    dependencies: tuple[str, ...] = ()
    exports: tuple[str, ...] = ()
    values: tuple[str, ...] = ()
    kind: ModuleKind = ModuleKind.GENERIC
    initialize: ModuleInitializer | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Normalize name collections and reject malformed definitions."""
        require_name(self.name, kind="module")
        owner = f"module '{self.name}'"
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise BootContractError(f"{owner}.priority must be an integer")
        for attribute_name in ("dependencies", "exports", "values"):
            object.__setattr__(
                self,
                attribute_name,
                coerce_names(
                    getattr(self, attribute_name),
                    owner=owner,
                    attribute_name=attribute_name,
                ),
            )
        overlap = sorted(set(self.exports) & set(self.values))
        if overlap:
            raise BootContractError(
                f"{owner} exports {overlap} both as functions and as values"
            )
        if self.initialize is not None:
            require_single_arg_callable(
                self.initialize, owner=owner, attribute_name="initialize"
            )

    @property
    def exported_symbols(self) -> tuple[tuple[str, SymbolKind], ...]:
        """Return every exported name paired with its symbol kind."""
        return tuple(
            [(name, SymbolKind.FUNCTION) for name in self.exports]
            + [(name, SymbolKind.VALUE) for name in self.values]
        )


@dataclass(frozen=True, slots=True)
class ModuleHandle:
    """One loaded module owned by the boot run that created it."""

    name: str
    kind: ModuleKind
    state: object
    initialized: bool
    dependencies: tuple[str, ...]


# Receives the handles of the module's dependencies; returns the opaque state.
ModuleInitializer = Callable[[Mapping[str, ModuleHandle]], Any]


@dataclass(frozen=True, slots=True)
class Symbol:
    """One globally resolvable export owned by exactly one module."""

    name: str
    owning_module: str
    kind: SymbolKind


@dataclass(frozen=True, slots=True)
class StageOutput:
    """Partial result returned by a stage action."""

    success: bool = True
    produced_modules: Mapping[str, ModuleHandle] = field(default_factory=dict)
    produced_services: Mapping[str, ServiceInstance] = field(default_factory=dict)
    produced_tables: Mapping[str, object] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    error: str | BaseException | None = None


@dataclass(frozen=True, slots=True)
class StageContext:
    """Accumulated boot state handed to a stage action.

    Mappings are read-only views. Actions change state only through the
    ``loader`` and ``service_manager`` bound to the current run and by
    returning a ``StageOutput``.
    """

    stage_id: str
    stage_index: int
    settings: BootSettings
    modules: Mapping[str, ModuleHandle]
    services: Mapping[str, ServiceInstance]
    tables: Mapping[str, object]
    symbols: Mapping[str, Symbol]
    loader: ModuleLoader
    service_manager: RunlevelServiceManager
    integrity: IntegrityChecker

    def require_module(self, name: str) -> ModuleHandle:
        """Return one loaded module handle or raise ``UnknownModuleError``."""
        handle = self.modules.get(name)
        if handle is None:
            raise UnknownModuleError(name)
        return handle


StageAction = Callable[[StageContext], Awaitable[StageOutput]]


@dataclass(frozen=True, slots=True)
class StageDefinition:
    """One ordered pipeline step and the external action that performs it."""

    id: str
    action: StageAction = field(compare=False)
    description: str = ""

    def __post_init__(self) -> None:
        """Validate the stage id and the action's single-argument contract."""
        require_name(self.id, kind="stage")
        require_single_arg_callable(
            self.action, owner=f"stage '{self.id}'", attribute_name="action"
        )


def _frozen_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(value))


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of one stage execution; never mutated after return."""

    stage_id: str
    stage_index: int
    success: bool
    produced_modules: Mapping[str, ModuleHandle] = field(default_factory=dict)
    produced_services: Mapping[str, ServiceInstance] = field(default_factory=dict)
    produced_tables: Mapping[str, object] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    error: ErrorDetail | None = None
    duration_ms: float = 0.0

    def __post_init__(self) -> None:
        """Freeze produced mappings so callers cannot mutate the result."""
        for attribute_name in ("produced_modules", "produced_services", "produced_tables"):
            object.__setattr__(
                self, attribute_name, _frozen_mapping(getattr(self, attribute_name))
            )
        object.__setattr__(self, "warnings", tuple(self.warnings))
