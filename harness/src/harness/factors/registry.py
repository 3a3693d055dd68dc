from __future__ import annotations

import collections.abc
import inspect
import typing
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from harness.factors.errors import FactorSourceDefinitionError, FactorSourceResolutionError
from harness.factors.sources import (
    FactorSource,
    MaterializedFactorSource,
    SourceKind,
    StreamingFactorSource,
)

_SEPARATOR = "#"


@dataclass(frozen=True, slots=True)
class FactorSourceEntry:
    scope: str
    name: str
    kind: SourceKind
    provider: Callable[[], Any]

    @property
    def key(self) -> str:
        return f"{self.scope}{_SEPARATOR}{self.name}"

    def build(self) -> FactorSource:
        if self.kind == "cycling":
            return MaterializedFactorSource(self.name, self.provider, path=self.key)
        return StreamingFactorSource(self.name, self.key, self.provider)


class FactorSourceRegistry:
    """
    Explicit mapping of ``scope#name`` keys to factor providers.

    Providers are validated when they are registered: they must be plain
    callables (functions, static or class methods) taking no arguments and
    returning either a collection of configurations (cycling) or a single-pass
    iterable (sequential).
    """

    def __init__(self) -> None:
        self._entries: dict[str, FactorSourceEntry] = {}

    def register(
        self,
        provider: Callable[[], Any],
        *,
        name: str | None = None,
        scope: str | None = None,
        kind: SourceKind | None = None,
    ) -> Callable[[], Any]:
        entry = _build_entry(provider, name=name, scope=scope, kind=kind)
        if entry.key in self._entries:
            raise FactorSourceDefinitionError(f"Factor source '{entry.key}' is already registered")
        self._entries[entry.key] = entry
        return provider

    def source(
        self,
        *,
        name: str | None = None,
        scope: str | None = None,
        kind: SourceKind | None = None,
    ) -> Callable[[Callable[[], Any]], Callable[[], Any]]:
        """Decorator form of ``register``."""

        def decorate(provider: Callable[[], Any]) -> Callable[[], Any]:
            return self.register(provider, name=name, scope=scope, kind=kind)

        return decorate

    def get(self, key: str) -> FactorSourceEntry | None:
        return self._entries.get(key)

    def list(self) -> Iterable[FactorSourceEntry]:
        return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def resolve(
        self,
        reference: str,
        declaring_scope: str | None = None,
        fallback_scope: str | None = None,
    ) -> FactorSource:
        """
        Resolve a factor source reference.

        - ``name``: search ``declaring_scope``, then ``fallback_scope``.
        - ``Scope#name``: search ``Scope`` next to the declaring scope, then next
          to the fallback scope.
        - ``pkg.module.Scope#name``: direct lookup.
        """
        reference = reference.strip()
        if not reference:
            raise FactorSourceResolutionError("Factor source reference must not be empty")

        if _SEPARATOR not in reference:
            candidates = [
                f"{scope}{_SEPARATOR}{reference}"
                for scope in _distinct(declaring_scope, fallback_scope)
            ]
            hint = (
                "Use 'Scope#name' or fully qualified 'pkg.module.Scope#name' "
                "for explicit resolution."
            )
        else:
            scope_ref, name = reference.split(_SEPARATOR, 1)
            if "." in scope_ref:
                candidates = [reference]
                hint = "Check that the provider is registered under this exact path."
            else:
                namespaces = _distinct(
                    *(_namespace(scope) for scope in (declaring_scope, fallback_scope))
                )
                candidates = [
                    f"{namespace}.{scope_ref}{_SEPARATOR}{name}" if namespace else reference
                    for namespace in namespaces
                ] or [reference]
                hint = "Use fully qualified 'pkg.module.Scope#name' for explicit resolution."

        for key in candidates:
            entry = self._entries.get(key)
            if entry is not None:
                return entry.build()

        searched = "".join(f"\n  - {key}" for key in candidates) or "\n  - (no scopes given)"
        raise FactorSourceResolutionError(
            f"Cannot find factor source '{reference}'.\nSearched in:{searched}\nHint: {hint}"
        )


def resolve(
    reference: str,
    declaring_scope: str | None,
    fallback_scope: str | None,
    *,
    registry: FactorSourceRegistry,
) -> FactorSource:
    return registry.resolve(reference, declaring_scope, fallback_scope)


def scope_of(obj: object) -> str:
    """Dotted scope path for a class or an instance: ``module.QualName``."""
    cls = obj if inspect.isclass(obj) else type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


def _build_entry(
    provider: Callable[[], Any],
    *,
    name: str | None,
    scope: str | None,
    kind: SourceKind | None,
) -> FactorSourceEntry:
    if not callable(provider):
        raise FactorSourceDefinitionError(
            f"Factor source must be callable, got {type(provider).__name__}"
        )

    label = getattr(provider, "__qualname__", repr(provider))
    if inspect.ismethod(provider) and not inspect.isclass(provider.__self__):
        raise FactorSourceDefinitionError(
            f"Factor source '{label}' is bound to an instance; use a function, "
            "staticmethod or classmethod"
        )

    try:
        signature = inspect.signature(provider)
    except (TypeError, ValueError) as exc:
        raise FactorSourceDefinitionError(f"Cannot inspect factor source '{label}': {exc}") from exc

    required = [
        param.name
        for param in signature.parameters.values()
        if param.default is inspect.Parameter.empty
        and param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if required:
        if required[0] in ("self", "cls"):
            raise FactorSourceDefinitionError(
                f"Factor source '{label}' must be static (found '{required[0]}' parameter)"
            )
        raise FactorSourceDefinitionError(
            f"Factor source '{label}' must not take parameters, found: {required}"
        )

    resolved_kind = kind or _detect_kind(provider, label)
    resolved_name = name or getattr(provider, "__name__", None)
    if not resolved_name:
        raise FactorSourceDefinitionError(f"Factor source '{label}' needs an explicit name")
    resolved_scope = scope or _default_scope(provider)
    if not resolved_scope:
        raise FactorSourceDefinitionError(f"Factor source '{label}' needs an explicit scope")

    return FactorSourceEntry(
        scope=resolved_scope,
        name=resolved_name,
        kind=resolved_kind,
        provider=provider,
    )


def _detect_kind(provider: Callable[[], Any], label: str) -> SourceKind:
    target = getattr(provider, "__func__", provider)
    try:
        hints = typing.get_type_hints(target)
    except (NameError, TypeError):
        hints = {}

    annotation = hints.get("return")
    if annotation is None:
        if inspect.isgeneratorfunction(target):
            return "sequential"
        raise FactorSourceDefinitionError(
            f"Factor source '{label}' must declare a return type "
            "(a collection of configurations or an iterator) or be registered with kind="
        )

    origin = typing.get_origin(annotation) or annotation
    if isinstance(origin, type):
        if issubclass(origin, str | bytes):
            pass
        elif issubclass(origin, collections.abc.Iterator) or origin is collections.abc.Iterable:
            return "sequential"
        elif issubclass(origin, collections.abc.Collection):
            return "cycling"

    raise FactorSourceDefinitionError(
        f"Factor source '{label}' must return a collection of configurations or an iterator, "
        f"declared {annotation!r}"
    )


def _default_scope(provider: Callable[[], Any]) -> str | None:
    target = getattr(provider, "__func__", provider)
    module = getattr(target, "__module__", None)
    qualname = getattr(target, "__qualname__", None)
    if module is None:
        return None
    if not qualname:
        return module
    owners = qualname.split(".")[:-1]
    if not owners or "<locals>" in owners:
        return module
    return ".".join([module, *owners])


def _namespace(scope: str | None) -> str | None:
    if not scope:
        return None
    if "." not in scope:
        return ""
    return scope.rsplit(".", 1)[0]


def _distinct(*values: str | None) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value is not None and value not in seen:
            seen.append(value)
    return seen
