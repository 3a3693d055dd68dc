from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from harness.configuration import expand_grid_overrides


@dataclass(frozen=True, slots=True)
class FactorConfiguration:
    """
    One input variant for a sample: an ordered, named tuple of factor values.

    Example: ``FactorConfiguration.of(model="gpt-4", temperature=0.7)``.
    """

    names: tuple[str, ...]
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        if len(self.names) != len(self.values):
            raise ValueError(
                f"factor names and values differ in length: {len(self.names)} != {len(self.values)}"
            )
        if len(set(self.names)) != len(self.names):
            raise ValueError(f"duplicate factor names: {list(self.names)}")

    @classmethod
    def of(cls, **values: Any) -> FactorConfiguration:
        return cls(names=tuple(values.keys()), values=tuple(values.values()))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> FactorConfiguration:
        return cls(names=tuple(str(key) for key in payload.keys()), values=tuple(payload.values()))

    @classmethod
    def table(
        cls, names: Sequence[str], rows: Iterable[Sequence[Any]]
    ) -> list[FactorConfiguration]:
        """Build one configuration per row, sharing a single header of factor names."""
        header = tuple(names)
        return [cls(names=header, values=tuple(row)) for row in rows]

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, name: str) -> Any:
        try:
            return self.values[self.names.index(name)]
        except ValueError as exc:
            raise KeyError(name) from exc

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self.names:
            return default
        return self[name]

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self.names, self.values, strict=True))

    def canonical(self) -> str:
        """Stable text form, used for hashing and for log lines."""
        pairs = [[name, value] for name, value in zip(self.names, self.values, strict=True)]
        return json.dumps(pairs, separators=(",", ":"), default=str)

    def describe(self) -> str:
        pairs = zip(self.names, self.values, strict=True)
        return ", ".join(f"{name}={value}" for name, value in pairs)


def grid(**choices: Sequence[Any]) -> list[FactorConfiguration]:
    """Cartesian product of factor choices, keys in sorted order."""
    return list(iter_grid(choices))


def iter_grid(choices: Mapping[str, Sequence[Any]]) -> Iterator[FactorConfiguration]:
    lists = {key: list(values) for key, values in choices.items()}
    for combination in expand_grid_overrides(lists):
        yield FactorConfiguration.from_mapping(combination)


def coerce_configuration(item: Any) -> FactorConfiguration:
    if isinstance(item, FactorConfiguration):
        return item
    if isinstance(item, Mapping):
        return FactorConfiguration.from_mapping(item)
    raise TypeError(
        f"factor sources must yield FactorConfiguration or mappings, got {type(item).__name__}"
    )
