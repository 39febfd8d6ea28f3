"""Tests for priority-seeded module dependency ordering."""

from __future__ import annotations

import pytest

from packages.bootseq_core.boot.contracts import (
    BootContractError,
    CycleError,
    DependencyError,
    ModuleDefinition,
)
from packages.bootseq_core.boot.resolver import (
    ModuleDependencyResolver,
    resolve_module_order,
)
from packages.bootseq_core.catalog import DEFAULT_MODULES


def _names(order: tuple[ModuleDefinition, ...]) -> list[str]:
    """Return definition names in order."""
    return [definition.name for definition in order]


def test_resolve_places_dependencies_before_dependents() -> None:
    """A module must follow every module it depends on, regardless of priority."""
    definitions = (
        ModuleDefinition(name="b", priority=0, dependencies=("a",)),
        ModuleDefinition(name="a", priority=1),
    )

    assert _names(ModuleDependencyResolver().resolve(definitions)) == ["a", "b"]


def test_resolve_orders_independent_modules_by_priority() -> None:
    """Unrelated modules should load in ascending priority."""
    definitions = (
        ModuleDefinition(name="late", priority=5),
        ModuleDefinition(name="early", priority=-1),
        ModuleDefinition(name="middle", priority=2),
    )

    assert _names(resolve_module_order(definitions)) == ["early", "middle", "late"]


def test_resolve_keeps_input_order_for_equal_priority() -> None:
    """Equal priority ties should keep the order the definitions were given in."""
    definitions = (
        ModuleDefinition(name="c"),
        ModuleDefinition(name="a"),
        ModuleDefinition(name="b"),
    )

    assert _names(resolve_module_order(definitions)) == ["c", "a", "b"]


def test_resolve_prefers_low_priority_once_dependencies_are_met() -> None:
    """A newly unblocked low-priority module should jump ahead of queued ones."""
    definitions = (
        ModuleDefinition(name="root", priority=1),
        ModuleDefinition(name="queued", priority=2),
        ModuleDefinition(name="urgent", priority=0, dependencies=("root",)),
    )

    assert _names(resolve_module_order(definitions)) == ["root", "urgent", "queued"]


def test_resolve_default_catalog_order() -> None:
    """The default kernel modules should resolve to a stable dependency order."""
    assert _names(resolve_module_order(DEFAULT_MODULES)) == [
        "scheduler",
        "memory-manager",
        "process-manager",
        "syscalls",
        "ipc-system",
    ]


def test_resolve_reports_missing_dependency() -> None:
    """A dependency absent from the set should name both module and missing items."""
    definitions = (
        ModuleDefinition(name="a", dependencies=("ghost", "b")),
        ModuleDefinition(name="b"),
    )

    with pytest.raises(DependencyError) as error:
        resolve_module_order(definitions)

    assert error.value.module == "a"
    assert error.value.missing == ("ghost",)


def test_resolve_reports_self_dependency_as_cycle() -> None:
    """A module depending on itself is a cycle of length one."""
    with pytest.raises(CycleError) as error:
        resolve_module_order((ModuleDefinition(name="a", dependencies=("a",)),))

    assert error.value.cycle == ("a",)


def test_resolve_reports_mutual_dependency_as_cycle() -> None:
    """Two modules depending on each other should both appear in the cycle."""
    definitions = (
        ModuleDefinition(name="a", dependencies=("b",)),
        ModuleDefinition(name="b", dependencies=("a",)),
    )

    with pytest.raises(CycleError) as error:
        resolve_module_order(definitions)

    assert sorted(error.value.cycle) == ["a", "b"]


def test_resolve_rejects_duplicate_module_names() -> None:
    """Two definitions sharing one name are a contract error."""
    with pytest.raises(BootContractError):
        resolve_module_order((ModuleDefinition(name="a"), ModuleDefinition(name="a")))


def test_resolve_empty_input_returns_empty_order() -> None:
    """Resolving nothing should return an empty tuple."""
    assert resolve_module_order(()) == tuple()
