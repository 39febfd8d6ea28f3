"""Priority-seeded dependency ordering for module definitions."""

from __future__ import annotations

import heapq
from collections.abc import Iterable
from graphlib import CycleError as GraphCycleError
from graphlib import TopologicalSorter

from packages.bootseq_shared.logging import get_logger

from .contracts import (
    BootContractError,
    CycleError,
    DependencyError,
    ModuleDefinition,
)

_LOGGER = get_logger(__name__)


class ModuleDependencyResolver:
    """Order module definitions so dependencies always load first.

    Among modules with no ordering constraint between them, lower ``priority``
    wins and equal priority keeps input order. This is a topological sort whose
    ready set is drained in ``(priority, input position)`` order.
    """

    def resolve(
        self, definitions: Iterable[ModuleDefinition]
    ) -> tuple[ModuleDefinition, ...]:
        """Return definitions in load order or raise a dependency error."""
        ordered_input = tuple(definitions)
        if not ordered_input:
            return tuple()

        by_name: dict[str, ModuleDefinition] = {}
        rank: dict[str, tuple[int, int]] = {}
        for position, definition in enumerate(ordered_input):
            if definition.name in by_name:
                raise BootContractError(
                    f"duplicate module definitions for '{definition.name}'"
                )
            by_name[definition.name] = definition
            rank[definition.name] = (definition.priority, position)

        graph: dict[str, tuple[str, ...]] = {}
        for definition in ordered_input:
            missing = [dep for dep in definition.dependencies if dep not in by_name]
            if missing:
                raise DependencyError(definition.name, missing)
            graph[definition.name] = definition.dependencies

        sorter = TopologicalSorter(graph)
        try:
            sorter.prepare()
        except GraphCycleError as exc:
            raise CycleError(_cycle_members(exc)) from exc

        ready: list[tuple[tuple[int, int], str]] = []
        order: list[ModuleDefinition] = []
        while sorter.is_active():
            for name in sorter.get_ready():
                heapq.heappush(ready, (rank[name], name))
            _, name = heapq.heappop(ready)
            order.append(by_name[name])
            sorter.done(name)

        _LOGGER.debug(
            "module load order resolved",
            extra={"order": [definition.name for definition in order]},
        )
        return tuple(order)


def _cycle_members(exc: GraphCycleError) -> tuple[str, ...]:
    """Extract cycle members from graphlib's error, which repeats the first node."""
    nodes = list(exc.args[1]) if len(exc.args) > 1 else []
    if len(nodes) > 1 and nodes[0] == nodes[-1]:
        nodes = nodes[:-1]
    # graphlib walks predecessor edges; reverse so each member depends on the next.
    nodes.reverse()
    return tuple(str(node) for node in nodes)


def resolve_module_order(
    definitions: Iterable[ModuleDefinition],
) -> tuple[ModuleDefinition, ...]:
    """Resolve load order with a default ``ModuleDependencyResolver``."""
    return ModuleDependencyResolver().resolve(definitions)
