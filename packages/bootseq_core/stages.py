"""Default boot stages: firmware probe, kernel init, kernel loader and init.

Each stage factory returns a ``StageDefinition`` whose action reads the prior
state from its ``StageContext`` and reports what it produced. Simulated
hardware and kernel structures are opaque tables; only their presence is
checked. Verification is skipped when ``verify_each_stage`` is off.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from packages.bootseq_core.boot.contracts import (
    IntegrityError,
    ModuleDefinition,
    StageContext,
    StageDefinition,
    StageOutput,
)
from packages.bootseq_core.catalog import (
    CRITICAL_SERVICES,
    DEFAULT_MODULES,
    ESSENTIAL_MODULES,
    ESSENTIAL_SYMBOLS,
    SYSTEM_TABLES,
)
from packages.bootseq_core.integrity import IntegritySnapshot, hard, soft
from packages.bootseq_shared.logging import get_logger

_LOGGER = get_logger(__name__)

FIRMWARE_PROBE = "firmware-probe"
KERNEL_INIT = "kernel-init"
KERNEL_LOADER = "kernel-loader"
INIT = "init"

MIN_AVAILABLE_MEMORY = 512 * 1024 * 1024
CRITICAL_INTERRUPTS: tuple[int, ...] = (0, 8, 13, 14, 32)
KERNEL_BASE = 0x100000

HardwareProbe = Callable[[], Mapping[str, object]]
TableBuilder = Callable[[], Mapping[str, object]]


def default_hardware_probe() -> dict[str, object]:
    """Describe a fixed virtual machine."""
    total = 4 * 1024**3
    available = total * 4 // 5
    return {
        "platform": "virtual",
        "cores": 4,
        "memory": {"total": total, "available": available, "page_size": 4096},
        "cpu": {"vendor": "virtual", "features": ("FPU", "MMU", "PAE", "NX", "SSE2")},
        "devices": (
            {"type": "storage", "name": "vda"},
            {"type": "display", "name": "fb0"},
            {"type": "input", "name": "kbd0"},
        ),
    }


def firmware_findings(hardware: Mapping[str, object]) -> tuple[list[str], list[str]]:
    """Return ``(issues, warnings)`` for one hardware description."""
    issues: list[str] = []
    warnings: list[str] = []
    memory = hardware.get("memory") or {}
    cpu = hardware.get("cpu") or {}
    device_types = {device.get("type") for device in hardware.get("devices") or ()}

    if memory.get("available", 0) < MIN_AVAILABLE_MEMORY:
        issues.append("insufficient memory")
    if "MMU" not in cpu.get("features", ()):
        issues.append("cpu lacks an MMU")
    if "storage" not in device_types:
        issues.append("no storage device")
    if "display" not in device_types:
        warnings.append("no display detected")
    return issues, warnings


def build_system_tables() -> dict[str, object]:
    """Build descriptor, interrupt, task-state and paging tables."""
    return {
        "gdt": ("null", "kernel_code", "kernel_data", "user_code", "user_data", "tss"),
        "idt": {vector: f"isr_{vector}" for vector in range(256)},
        "tss": {"rsp0": KERNEL_BASE + 0x20000000, "ist": (0,) * 7, "limit": 104},
        "pml4": {"base": 0x1000, "entries": 512},
    }


def kernel_memory_map(base: int = KERNEL_BASE) -> dict[str, dict[str, object]]:
    """Lay out the kernel address space starting at ``base``."""
    return {
        "kernel": {"start": base, "end": base + 0x3FFFFFF, "permissions": "r-x"},
        "kernel_data": {
            "start": base + 0x4000000,
            "end": base + 0x7FFFFFF,
            "permissions": "rw-",
        },
        "heap": {"start": base + 0x8000000, "end": base + 0xFFFFFFF, "permissions": "rw-"},
        "modules": {
            "start": base + 0x10000000,
            "end": base + 0x1FFFFFFF,
            "permissions": "r-x",
        },
        "stack": {"start": base + 0x20000000, "end": base + 0x2000FFFF, "permissions": "rw-"},
    }


def _finish(
    context: StageContext,
    *,
    issues: Iterable[str] = (),
    warnings: Iterable[str] = (),
    **produced: Mapping[str, object],
) -> StageOutput:
    """Build a stage output that fails when any hard issue was found."""
    issues = tuple(issues)
    warnings = tuple(warnings)
    for warning in warnings:
        _LOGGER.warning("stage warning", extra={"warning": warning})
    if issues:
        return StageOutput(
            success=False,
            warnings=warnings,
            error=IntegrityError(context.stage_id, issues),
            **produced,
        )
    return StageOutput(warnings=warnings, **produced)


def firmware_probe_stage(probe: HardwareProbe = default_hardware_probe) -> StageDefinition:
    """Detect hardware and reject machines that cannot boot."""

    async def run_firmware_probe(context: StageContext) -> StageOutput:
        hardware = dict(probe())
        tables = {"firmware": hardware}
        if not context.settings.verify_each_stage:
            return StageOutput(produced_tables=tables)
        issues, warnings = firmware_findings(hardware)
        return _finish(context, issues=issues, warnings=warnings, produced_tables=tables)

    return StageDefinition(
        id=FIRMWARE_PROBE,
        action=run_firmware_probe,
        description="Probe virtual hardware",
    )


def kernel_init_stage(build_tables: TableBuilder = build_system_tables) -> StageDefinition:
    """Build the kernel system tables and check that all are present."""

    async def run_kernel_init(context: StageContext) -> StageOutput:
        tables = dict(build_tables())
        if not context.settings.verify_each_stage:
            return StageOutput(produced_tables=tables)

        report = context.integrity.verify(
            hard(*SYSTEM_TABLES),
            (),
            (),
            IntegritySnapshot.from_context(context, tables=tables),
        )
        issues = list(report.issues)
        idt = tables.get("idt")
        if isinstance(idt, Mapping):
            issues.extend(
                f"interrupt handler {vector} missing"
                for vector in CRITICAL_INTERRUPTS
                if vector not in idt
            )
        return _finish(
            context, issues=issues, warnings=report.warnings, produced_tables=tables
        )

    return StageDefinition(
        id=KERNEL_INIT,
        action=run_kernel_init,
        description="Initialize kernel system tables",
    )


def kernel_loader_stage(
    modules: Sequence[ModuleDefinition] = DEFAULT_MODULES,
    *,
    required_modules: Sequence[str] = ESSENTIAL_MODULES,
    required_symbols: Sequence[str] = ESSENTIAL_SYMBOLS,
) -> StageDefinition:
    """Load kernel modules in dependency order and check essential exports.

    Missing essential modules fail the stage; missing essential symbols only
    warn.
    """

    async def run_kernel_loader(context: StageContext) -> StageOutput:
        loaded = await context.loader.load_all(modules, context.modules)
        tables = {"memory_map": kernel_memory_map()}
        if not context.settings.verify_each_stage:
            return StageOutput(produced_modules=loaded, produced_tables=tables)

        report = context.integrity.verify(
            (),
            hard(*required_modules),
            soft(*required_symbols),
            IntegritySnapshot.from_context(context, tables=tables, modules=loaded),
        )
        return _finish(
            context,
            issues=report.issues,
            warnings=report.warnings,
            produced_modules=loaded,
            produced_tables=tables,
        )

    return StageDefinition(
        id=KERNEL_LOADER,
        action=run_kernel_loader,
        description="Load kernel modules",
    )


def init_stage(critical_services: Sequence[str] = CRITICAL_SERVICES) -> StageDefinition:
    """Walk runlevels from start to target and check critical services.

    Only critical services available at the target runlevel are required.
    Services that failed to start become stage warnings.
    """

    async def run_init(context: StageContext) -> StageOutput:
        settings = context.settings
        manager = context.service_manager
        for runlevel in range(settings.start_runlevel, settings.target_runlevel + 1):
            await manager.enter_runlevel(runlevel)

        running = dict(manager.running)
        warnings = [f"{failure.service}: {failure.error}" for failure in manager.failures]
        if not settings.verify_each_stage:
            return _finish(context, warnings=warnings, produced_services=running)

        required = [
            name
            for name in critical_services
            if name in manager.catalog
            and manager.catalog.get(name).supports(settings.target_runlevel)
        ]
        report = context.integrity.verify(
            (),
            (),
            (),
            IntegritySnapshot.from_context(context, services=running),
            required_services=hard(*required),
        )
        return _finish(
            context,
            issues=report.issues,
            warnings=[*warnings, *report.warnings],
            produced_services=running,
        )

    return StageDefinition(id=INIT, action=run_init, description="Bring up runlevels")


def default_stages() -> tuple[StageDefinition, ...]:
    """Return the four default stages in boot order."""
    return (
        firmware_probe_stage(),
        kernel_init_stage(),
        kernel_loader_stage(),
        init_stage(),
    )
