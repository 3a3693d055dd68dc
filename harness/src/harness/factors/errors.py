from __future__ import annotations

from harness.configuration import ConfigError


class FactorSourceDefinitionError(ConfigError):
    """A provider was rejected when it was registered."""


class FactorSourceResolutionError(ConfigError):
    """A factor source reference could not be turned into a usable source."""


class FactorSourceExhaustedError(RuntimeError):
    """A sequential source ran dry before the requested number of samples."""

    def __init__(self, produced: int, requested: int) -> None:
        super().__init__(
            f"Factor source exhausted after {produced} elements, but {requested} samples "
            "were requested. Either provide more factors or reduce the sample count."
        )
        self.produced = produced
        self.requested = requested
