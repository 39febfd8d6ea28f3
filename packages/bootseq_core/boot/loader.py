"""Module instantiation and symbol registration for one boot run."""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from packages.bootseq_shared.logging import fields, get_logger

from .contracts import (
    BootError,
    ModuleAlreadyLoadedError,
    ModuleDefinition,
    ModuleHandle,
    ModuleLoadError,
    Symbol,
    SymbolConflictError,
    UnsatisfiedDependencyError,
)
from .resolver import ModuleDependencyResolver

_LOGGER = get_logger(__name__)


class SymbolTable(Mapping[str, Symbol]):
    """Append-only table of exported symbols for one boot run.

    Registration is all-or-nothing per module: when any name collides, no
    name from that module is added.
    """

    def __init__(self) -> None:
        self._symbols: dict[str, Symbol] = {}

    def __getitem__(self, name: str) -> Symbol:
        return self._symbols[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def check(self, definition: ModuleDefinition) -> None:
        """Raise ``SymbolConflictError`` if any export of ``definition`` is taken."""
        for name, _ in definition.exported_symbols:
            existing = self._symbols.get(name)
            if existing is not None:
                raise SymbolConflictError(
                    name,
                    existing_module=existing.owning_module,
                    conflicting_module=definition.name,
                )

    def register(self, definition: ModuleDefinition) -> tuple[Symbol, ...]:
        """Register every export of one module, or none of them on conflict."""
        self.check(definition)
        registered = tuple(
            Symbol(name=name, owning_module=definition.name, kind=kind)
            for name, kind in definition.exported_symbols
        )
        for symbol in registered:
            self._symbols[symbol.name] = symbol
        return registered

    def owned_by(self, module: str) -> tuple[Symbol, ...]:
        """Return symbols exported by one module in registration order."""
        return tuple(
            symbol for symbol in self._symbols.values() if symbol.owning_module == module
        )

    def view(self) -> Mapping[str, Symbol]:
        """Return a read-only live view of the table."""
        return MappingProxyType(self._symbols)


class ModuleLoader:
    """Load modules into one run, enforcing dependency and symbol invariants."""

    def __init__(
        self,
        *,
        symbols: SymbolTable,
        resolver: ModuleDependencyResolver | None = None,
    ) -> None:
        self._symbols = symbols
        self._resolver = resolver or ModuleDependencyResolver()

    @property
    def symbols(self) -> SymbolTable:
        """Return the symbol table this loader registers into."""
        return self._symbols

    async def load(
        self,
        definition: ModuleDefinition,
        already_loaded: Mapping[str, ModuleHandle],
    ) -> ModuleHandle:
        """Instantiate one module whose dependencies are all in ``already_loaded``.

        ``already_loaded`` is never modified; the caller adds the returned
        handle. Dependency and symbol checks run before the initialization
        action, so a rejected load leaves no trace in the symbol table.
        """
        if definition.name in already_loaded:
            raise ModuleAlreadyLoadedError(definition.name)
        missing = [dep for dep in definition.dependencies if dep not in already_loaded]
        if missing:
            raise UnsatisfiedDependencyError(definition.name, missing)
        self._symbols.check(definition)

        state: object = None
        if definition.initialize is not None:
            dependencies = MappingProxyType(
                {dep: already_loaded[dep] for dep in definition.dependencies}
            )
            state = definition.initialize(dependencies)
            if inspect.isawaitable(state):
                state = await state

        # Re-check: another load may have registered a name while initialize awaited.
        self._symbols.register(definition)
        handle = ModuleHandle(
            name=definition.name,
            kind=definition.kind,
            state=state,
            initialized=True,
            dependencies=definition.dependencies,
        )
        _LOGGER.info(
            "module loaded",
            extra={
                fields.MODULE: definition.name,
                fields.DEPENDENCIES: list(definition.dependencies),
                "exports": len(definition.exported_symbols),
            },
        )
        return handle

    async def load_all(
        self,
        definitions: Iterable[ModuleDefinition],
        already_loaded: Mapping[str, ModuleHandle] | None = None,
    ) -> dict[str, ModuleHandle]:
        """Resolve load order, then load each module in turn, failing fast.

        Returns only the newly loaded handles, in load order. A failed load
        raises ``ModuleLoadError`` carrying the handles loaded before it.
        Resolver errors propagate as-is since nothing has loaded yet.
        """
        prior = dict(already_loaded or {})
        pending = [
            definition for definition in definitions if definition.name not in prior
        ]
        order = self._resolve_against(pending, prior)

        loaded: dict[str, ModuleHandle] = {}
        for definition in order:
            try:
                handle = await self.load(definition, {**prior, **loaded})
            except BootError as exc:
                _LOGGER.error(
                    "module load failed",
                    extra={fields.MODULE: definition.name, "error": str(exc)},
                )
                raise ModuleLoadError(definition.name, exc, loaded) from exc
            except Exception as exc:
                _LOGGER.exception(
                    "module initialization raised", extra={fields.MODULE: definition.name}
                )
                raise ModuleLoadError(definition.name, exc, loaded) from exc
            loaded[definition.name] = handle
        return loaded

    def _resolve_against(
        self,
        pending: list[ModuleDefinition],
        prior: Mapping[str, ModuleHandle],
    ) -> tuple[ModuleDefinition, ...]:
        """Order ``pending`` treating already loaded modules as satisfied roots."""
        satisfied = [
            ModuleDefinition(name=name, priority=-1)
            for name in prior
            if any(name in definition.dependencies for definition in pending)
        ]
        order = self._resolver.resolve([*satisfied, *pending])
        satisfied_names = {definition.name for definition in satisfied}
        return tuple(
            definition for definition in order if definition.name not in satisfied_names
        )
