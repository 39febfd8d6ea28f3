"""Public API for bootseq boot orchestration."""

from packages.bootseq_core.boot import (
    BootCompleted,
    BootError,
    BootFailed,
    BootPipeline,
    BootStatus,
    ModuleDefinition,
    ModuleDependencyResolver,
    ModuleLoader,
    PipelineState,
    StageDefinition,
    StageExecutor,
    StageOutput,
    StageResult,
)
from packages.bootseq_core.integrity import (
    IntegrityChecker,
    IntegrityReport,
    IntegritySnapshot,
    Requirement,
    Severity,
)
from packages.bootseq_core.runlevels import (
    RUNLEVEL_NAMES,
    RunlevelServiceManager,
    ServiceCatalog,
    ServiceDefinition,
    ServiceInstance,
    ServiceKind,
    ServiceStatus,
)
from packages.bootseq_core.stages import default_stages
from packages.bootseq_core.startup import BootRunResult, build_default_pipeline, run_boot

__all__ = [
    "BootCompleted",
    "BootError",
    "BootFailed",
    "BootPipeline",
    "BootRunResult",
    "BootStatus",
    "IntegrityChecker",
    "IntegrityReport",
    "IntegritySnapshot",
    "ModuleDefinition",
    "ModuleDependencyResolver",
    "ModuleLoader",
    "PipelineState",
    "RUNLEVEL_NAMES",
    "Requirement",
    "RunlevelServiceManager",
    "ServiceCatalog",
    "ServiceDefinition",
    "ServiceInstance",
    "ServiceKind",
    "ServiceStatus",
    "Severity",
    "StageDefinition",
    "StageExecutor",
    "StageOutput",
    "StageResult",
    "build_default_pipeline",
    "default_stages",
    "run_boot",
]
