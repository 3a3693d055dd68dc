from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable, Collection, Iterable, Iterator
from typing import Any, Literal, Protocol, runtime_checkable

from harness.factors.configuration import FactorConfiguration, coerce_configuration
from harness.factors.errors import FactorSourceResolutionError

SourceKind = Literal["cycling", "sequential"]


@runtime_checkable
class FactorSource(Protocol):
    """A named provider of factor configurations."""

    @property
    def name(self) -> str: ...

    @property
    def kind(self) -> SourceKind: ...

    @property
    def source_hash(self) -> str: ...

    def factors(self) -> Iterator[FactorConfiguration]: ...


class MaterializedFactorSource:
    """
    Factor source whose configurations are held in memory for the whole run.

    The provider is invoked once, on first access, and the result is cached along
    with a SHA-256 hash over the configuration values. Reusing the same values
    yields the same hash.
    """

    def __init__(self, name: str, provider: Callable[[], Any], *, path: str | None = None) -> None:
        self._name = name
        self._path = path or name
        self._provider = provider
        self._lock = threading.Lock()
        self._configurations: tuple[FactorConfiguration, ...] | None = None
        self._hash: str | None = None

    @classmethod
    def from_configurations(
        cls, name: str, configurations: Iterable[FactorConfiguration]
    ) -> MaterializedFactorSource:
        items = tuple(configurations)
        source = cls(name, lambda: items)
        source._store(items)
        return source

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> SourceKind:
        return "cycling"

    @property
    def source_hash(self) -> str:
        self._ensure_materialized()
        assert self._hash is not None
        return self._hash

    @property
    def is_materialized(self) -> bool:
        return self._configurations is not None

    def configurations(self) -> tuple[FactorConfiguration, ...]:
        self._ensure_materialized()
        assert self._configurations is not None
        return self._configurations

    def factors(self) -> Iterator[FactorConfiguration]:
        return iter(self.configurations())

    def __len__(self) -> int:
        return len(self.configurations())

    def _ensure_materialized(self) -> None:
        if self._configurations is not None:
            return
        with self._lock:
            if self._configurations is not None:
                return
            result = self._provider()
            if (
                not isinstance(result, Collection)
                or isinstance(result, Iterator)
                or isinstance(result, str | bytes)
            ):
                raise FactorSourceResolutionError(
                    f"Factor source '{self._path}' must return a collection of configurations, "
                    f"got {type(result).__name__}"
                )
            try:
                items = tuple(coerce_configuration(item) for item in result)
            except TypeError as exc:
                raise FactorSourceResolutionError(f"Factor source '{self._path}': {exc}") from exc
            if not items:
                raise FactorSourceResolutionError(
                    f"Factor source '{self._path}' returned no factors"
                )
            self._store(items)

    def _store(self, items: tuple[FactorConfiguration, ...]) -> None:
        digest = hashlib.sha256()
        for item in items:
            digest.update(item.canonical().encode("utf-8"))
        self._hash = digest.hexdigest()
        self._configurations = items

    def __repr__(self) -> str:
        if self._configurations is None:
            return f"MaterializedFactorSource(name={self._name!r}, not materialized)"
        return (
            f"MaterializedFactorSource(name={self._name!r}, hash={self._hash[:8]}..., "
            f"factor_count={len(self._configurations)})"
        )


class StreamingFactorSource:
    """
    Factor source consumed lazily, one element per sample, never cached.

    Identity comes from the declaration path (``scope#name``) because the values
    are never fully materialized.
    """

    def __init__(self, name: str, path: str, provider: Callable[[], Iterable[Any]]) -> None:
        self._name = name
        self._path = path
        self._provider = provider
        self._hash = hashlib.sha256(path.encode("utf-8")).hexdigest()

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str:
        return self._path

    @property
    def kind(self) -> SourceKind:
        return "sequential"

    @property
    def source_hash(self) -> str:
        return self._hash

    def factors(self) -> Iterator[FactorConfiguration]:
        result = self._provider()
        if isinstance(result, str | bytes) or not isinstance(result, Iterable):
            raise FactorSourceResolutionError(
                f"Factor source '{self._path}' must return an iterable of configurations, "
                f"got {type(result).__name__}"
            )
        return self._coerced(result)

    def _coerced(self, items: Iterable[Any]) -> Iterator[FactorConfiguration]:
        for position, item in enumerate(items):
            try:
                configuration = coerce_configuration(item)
            except TypeError as exc:
                raise FactorSourceResolutionError(
                    f"Factor source '{self._path}' element {position}: {exc}"
                ) from exc
            yield configuration

    def __repr__(self) -> str:
        return (
            f"StreamingFactorSource(name={self._name!r}, path={self._path!r}, "
            f"hash={self._hash[:8]}...)"
        )
