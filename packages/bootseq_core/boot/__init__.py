"""Public API for module resolution, loading and staged boot execution."""

from .contracts import (
    BootContractError,
    BootDependencyError,
    BootError,
    CycleError,
    DependencyError,
    IntegrityError,
    ModuleAlreadyLoadedError,
    ModuleDefinition,
    ModuleHandle,
    ModuleInitializer,
    ModuleKind,
    ModuleLoadError,
    PipelineStateError,
    RunlevelMismatchError,
    ServiceStartError,
    StageAction,
    StageContext,
    StageDefinition,
    StageError,
    StageOutput,
    StageResult,
    StageTimeoutError,
    Symbol,
    SymbolConflictError,
    SymbolKind,
    UnknownModuleError,
    UnknownServiceError,
    UnsatisfiedDependencyError,
    boot_error_to_detail,
)
from .resolver import ModuleDependencyResolver, resolve_module_order
from .loader import ModuleLoader, SymbolTable
from .executor import StageExecutor
from .pipeline import (
    BootCompleted,
    BootFailed,
    BootObserver,
    BootOutcome,
    BootPipeline,
    BootStatus,
    PipelineState,
)

__all__ = [
    "BootCompleted",
    "BootContractError",
    "BootDependencyError",
    "BootError",
    "BootFailed",
    "BootObserver",
    "BootOutcome",
    "BootPipeline",
    "BootStatus",
    "CycleError",
    "DependencyError",
    "IntegrityError",
    "ModuleAlreadyLoadedError",
    "ModuleDefinition",
    "ModuleDependencyResolver",
    "ModuleHandle",
    "ModuleInitializer",
    "ModuleKind",
    "ModuleLoadError",
    "ModuleLoader",
    "PipelineState",
    "PipelineStateError",
    "RunlevelMismatchError",
    "ServiceStartError",
    "StageAction",
    "StageContext",
    "StageDefinition",
    "StageError",
    "StageExecutor",
    "StageOutput",
    "StageResult",
    "StageTimeoutError",
    "Symbol",
    "SymbolConflictError",
    "SymbolKind",
    "SymbolTable",
    "UnknownModuleError",
    "UnknownServiceError",
    "UnsatisfiedDependencyError",
    "boot_error_to_detail",
    "resolve_module_order",
]
