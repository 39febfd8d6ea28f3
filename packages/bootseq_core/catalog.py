"""Default kernel module and service catalog.

Module state is built by an initializer chosen from the module's
``ModuleKind``. Service start actions return opaque process info; nothing
here touches real processes.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from packages.bootseq_core.boot.contracts import (
    ModuleDefinition,
    ModuleHandle,
    ModuleInitializer,
    ModuleKind,
    UnknownModuleError,
)
from packages.bootseq_core.runlevels import (
    ServiceAction,
    ServiceCatalog,
    ServiceDefinition,
    ServiceKind,
)

SYSTEM_TABLES: tuple[str, ...] = ("gdt", "idt", "tss", "pml4")
ESSENTIAL_MODULES: tuple[str, ...] = (
    "scheduler",
    "memory-manager",
    "process-manager",
    "syscalls",
)
ESSENTIAL_SYMBOLS: tuple[str, ...] = ("schedule", "kmalloc", "createProcess", "sendMessage")
CRITICAL_SERVICES: tuple[str, ...] = (
    "basic-network",
    "syslog",
    "display-manager",
    "window-manager",
)

SYSCALL_TABLE: tuple[tuple[int, str], ...] = tuple(
    enumerate(
        (
            "sys_exit",
            "sys_fork",
            "sys_read",
            "sys_write",
            "sys_open",
            "sys_close",
            "sys_waitpid",
            "sys_creat",
            "sys_link",
            "sys_unlink",
            "sys_execve",
            "sys_chdir",
            "sys_time",
            "sys_mknod",
            "sys_chmod",
            "sys_lchown",
            "sys_break",
            "sys_stat",
            "sys_lseek",
            "sys_getpid",
            "sys_mount",
        )
    )
)


def _init_scheduler(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {"status": "initialized", "queue": [], "current_process": None}


def _init_memory(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {"status": "initialized", "allocated": 0, "free": 1024**3, "regions": []}


def _init_process(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {
        "status": "initialized",
        "processes": {},
        "next_pid": 1,
        "uses": sorted(dependencies),
    }


def _init_ipc(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {"status": "initialized", "queues": {}, "shared_memory": {}}


def _init_syscalls(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {
        "status": "initialized",
        "table": dict(SYSCALL_TABLE),
        "count": len(SYSCALL_TABLE),
    }


def _init_generic(dependencies: Mapping[str, ModuleHandle]) -> dict[str, object]:
    return {"status": "initialized"}


_INITIALIZERS: Mapping[ModuleKind, ModuleInitializer] = MappingProxyType(
    {
        ModuleKind.SCHEDULER: _init_scheduler,
        ModuleKind.MEMORY: _init_memory,
        ModuleKind.PROCESS: _init_process,
        ModuleKind.IPC: _init_ipc,
        ModuleKind.SYSCALL: _init_syscalls,
        ModuleKind.DRIVER: _init_generic,
        ModuleKind.GENERIC: _init_generic,
    }
)


def initializer_for(kind: ModuleKind) -> ModuleInitializer:
    """Return the state initializer for one module kind."""
    return _INITIALIZERS[kind]


def _module(
    name: str,
    kind: ModuleKind,
    *,
    priority: int,
    dependencies: tuple[str, ...] = (),
    exports: tuple[str, ...] = (),
) -> ModuleDefinition:
    return ModuleDefinition(
        name=name,
        priority=priority,
        dependencies=dependencies,
        exports=exports,
        kind=kind,
        initialize=initializer_for(kind),
    )


# Process lifecycle symbols are exported by process-manager only.
DEFAULT_MODULES: tuple[ModuleDefinition, ...] = (
    _module(
        "scheduler",
        ModuleKind.SCHEDULER,
        priority=1,
        exports=("schedule", "yield", "sleep"),
    ),
    _module(
        "memory-manager",
        ModuleKind.MEMORY,
        priority=1,
        exports=("kmalloc", "kfree", "mapMemory", "unmapMemory", "getPhysicalAddress"),
    ),
    _module(
        "process-manager",
        ModuleKind.PROCESS,
        priority=1,
        dependencies=("scheduler", "memory-manager"),
        exports=(
            "createProcess",
            "terminateProcess",
            "getProcessById",
            "getAllProcesses",
            "sendSignal",
        ),
    ),
    _module(
        "ipc-system",
        ModuleKind.IPC,
        priority=2,
        dependencies=("process-manager",),
        exports=(
            "createMessageQueue",
            "sendMessage",
            "receiveMessage",
            "createSharedMemory",
            "destroySharedMemory",
        ),
    ),
    _module(
        "syscalls",
        ModuleKind.SYSCALL,
        priority=0,
        dependencies=("process-manager", "memory-manager"),
    ),
)


def module_definition(name: str) -> ModuleDefinition:
    """Return one default module definition or raise ``UnknownModuleError``."""
    for definition in DEFAULT_MODULES:
        if definition.name == name:
            return definition
    raise UnknownModuleError(name)


DEFAULT_RUNLEVEL_TABLE: Mapping[int, tuple[str, ...]] = MappingProxyType(
    {
        1: ("emergency-shell", "basic-network", "minimal-fs"),
        2: ("cron", "syslog", "dbus", "network-manager"),
        3: ("ssh", "web-server", "database", "print-spooler"),
        5: ("display-manager", "desktop-environment", "window-manager"),
    }
)


def _started(pid: int, **details: object) -> ServiceAction:
    """Build a start action reporting fixed process info."""

    async def start() -> dict[str, object]:
        return {"pid": pid, "status": "running", **details}

    return start


async def _stopped() -> dict[str, object]:
    return {"success": True}


_MULTI_USER = (2, 3, 5)
_ALWAYS = (1, 2, 3, 5)
_NETWORKED = (3, 5)
_GRAPHICAL = (5,)


def _service(
    name: str,
    kind: ServiceKind,
    runlevels: tuple[int, ...],
    start: ServiceAction,
    description: str,
    *,
    stop: ServiceAction | None = None,
) -> ServiceDefinition:
    return ServiceDefinition(
        name=name,
        kind=kind,
        supported_runlevels=frozenset(runlevels),
        start=start,
        stop=stop,
        description=description,
    )


def default_service_definitions() -> tuple[ServiceDefinition, ...]:
    """Return fresh definitions for every default service."""
    daemon, oneshot = ServiceKind.DAEMON, ServiceKind.ONESHOT
    return (
        _service(
            "emergency-shell", daemon, (1,), _started(1001), "Emergency shell", stop=_stopped
        ),
        _service(
            "basic-network",
            oneshot,
            _ALWAYS,
            _started(1002, interfaces=("lo", "eth0"), addresses=("127.0.0.1",)),
            "Basic network configuration",
        ),
        _service(
            "minimal-fs",
            oneshot,
            _ALWAYS,
            _started(1003, mounts=("/", "/proc", "/sys")),
            "Minimal filesystem",
        ),
        _service("cron", daemon, _MULTI_USER, _started(1004, jobs=0), "Task scheduler"),
        _service(
            "syslog", daemon, _MULTI_USER, _started(1005, facility="local0"), "System logging"
        ),
        _service("dbus", daemon, _MULTI_USER, _started(1006, sockets=2), "System message bus"),
        _service(
            "network-manager",
            daemon,
            _MULTI_USER,
            _started(1007, connections=1),
            "Network manager",
        ),
        _service("ssh", daemon, _NETWORKED, _started(1011, port=22), "Remote shell"),
        _service("web-server", daemon, _NETWORKED, _started(1012, port=80), "HTTP server"),
        _service("database", daemon, _NETWORKED, _started(1013, port=5432), "Database server"),
        _service("print-spooler", daemon, _NETWORKED, _started(1014, queue=0), "Print spooler"),
        _service(
            "display-manager",
            daemon,
            _GRAPHICAL,
            _started(1008, display=":0"),
            "Graphical display manager",
        ),
        _service(
            "desktop-environment",
            oneshot,
            _GRAPHICAL,
            _started(1009, session="default"),
            "Desktop environment",
        ),
        _service(
            "window-manager", daemon, _GRAPHICAL, _started(1010, windows=0), "Window manager"
        ),
    )


def default_service_catalog() -> ServiceCatalog:
    """Build a catalog of the default services and runlevel table."""
    return ServiceCatalog(
        default_service_definitions(),
        runlevel_table=DEFAULT_RUNLEVEL_TABLE,
    )
