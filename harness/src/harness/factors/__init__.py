"""Factor configurations, factor sources and the iterators that feed samples."""

from harness.factors.configuration import FactorConfiguration, coerce_configuration, grid, iter_grid
from harness.factors.errors import (
    FactorSourceDefinitionError,
    FactorSourceExhaustedError,
    FactorSourceResolutionError,
)
from harness.factors.iterators import (
    CyclingFactorIterator,
    FactorIterator,
    SequentialFactorIterator,
    iterator_for,
)
from harness.factors.registry import FactorSourceEntry, FactorSourceRegistry, resolve, scope_of
from harness.factors.sources import (
    FactorSource,
    MaterializedFactorSource,
    SourceKind,
    StreamingFactorSource,
)

__all__ = [
    "FactorConfiguration",
    "coerce_configuration",
    "grid",
    "iter_grid",
    "FactorSource",
    "MaterializedFactorSource",
    "StreamingFactorSource",
    "SourceKind",
    "FactorSourceEntry",
    "FactorSourceRegistry",
    "resolve",
    "scope_of",
    "FactorIterator",
    "CyclingFactorIterator",
    "SequentialFactorIterator",
    "iterator_for",
    "FactorSourceDefinitionError",
    "FactorSourceResolutionError",
    "FactorSourceExhaustedError",
]
