from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import Protocol

from harness.factors.configuration import FactorConfiguration
from harness.factors.errors import FactorSourceExhaustedError
from harness.factors.sources import FactorSource, MaterializedFactorSource

_MISSING = object()


class FactorIterator(Protocol):
    @property
    def current_index(self) -> int: ...

    @property
    def total_samples(self) -> int: ...

    def has_next(self) -> bool: ...

    def __next__(self) -> FactorConfiguration: ...


class CyclingFactorIterator:
    """
    Cycles through a fixed list of configurations.

    Sample ``i`` (0-based) uses ``configurations[i % len(configurations)]``, so
    three configurations over seven samples give A, B, C, A, B, C, A.
    """

    def __init__(self, configurations: Sequence[FactorConfiguration], total_samples: int) -> None:
        if len(configurations) == 0:
            raise ValueError("configurations must not be empty")
        if total_samples < 0:
            raise ValueError("total_samples must be non-negative")
        self._configurations = tuple(configurations)
        self._total_samples = total_samples
        self._index = 0

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def total_samples(self) -> int:
        return self._total_samples

    @property
    def factor_count(self) -> int:
        return len(self._configurations)

    @property
    def approximate_usage_per_factor(self) -> int:
        """Upper bound on how often any single configuration is used."""
        count = len(self._configurations)
        return (self._total_samples + count - 1) // count

    def has_next(self) -> bool:
        return self._index < self._total_samples

    def __iter__(self) -> CyclingFactorIterator:
        return self

    def __next__(self) -> FactorConfiguration:
        if not self.has_next():
            raise StopIteration
        configuration = self._configurations[self._index % len(self._configurations)]
        self._index += 1
        return configuration

    def reset(self) -> None:
        self._index = 0


class SequentialFactorIterator:
    """
    Consumes a single-pass iterable, one element per sample, no cycling.

    ``has_next()`` turns false once ``total_samples`` elements were produced or
    the supply ran out; the latter sets ``exhausted`` and makes ``next()`` raise
    ``FactorSourceExhaustedError`` instead of silently truncating the run.
    """

    def __init__(self, factors: Iterable[FactorConfiguration], total_samples: int) -> None:
        if total_samples < 0:
            raise ValueError("total_samples must be non-negative")
        self._source: Iterator[FactorConfiguration] = iter(factors)
        self._total_samples = total_samples
        self._index = 0
        self._peeked: object = _MISSING
        self._exhausted = False
        self._closed = False

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def total_samples(self) -> int:
        return self._total_samples

    @property
    def remaining_samples(self) -> int:
        return self._total_samples - self._index

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def has_next(self) -> bool:
        if self._closed or self._index >= self._total_samples:
            return False
        return self._peek()

    def __iter__(self) -> SequentialFactorIterator:
        return self

    def __next__(self) -> FactorConfiguration:
        if self._closed:
            raise RuntimeError("iterator has been closed")
        if self._index >= self._total_samples:
            raise StopIteration
        if not self._peek():
            raise FactorSourceExhaustedError(self._index, self._total_samples)
        configuration = self._peeked
        self._peeked = _MISSING
        self._index += 1
        return configuration  # type: ignore[return-value]

    def close(self) -> None:
        self._closed = True
        self._peeked = _MISSING

    def _peek(self) -> bool:
        if self._peeked is not _MISSING:
            return True
        if self._exhausted:
            return False
        try:
            self._peeked = next(self._source)
        except StopIteration:
            self._exhausted = True
            return False
        return True


def iterator_for(source: FactorSource, total_samples: int) -> FactorIterator:
    if isinstance(source, MaterializedFactorSource):
        return CyclingFactorIterator(source.configurations(), total_samples)
    return SequentialFactorIterator(source.factors(), total_samples)
