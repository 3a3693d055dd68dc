from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ConfigurableUseCase(Protocol):
    """
    Optional use case extension for centralized params defaults + validation.
    """

    def default_params(self) -> Mapping[str, Any]:
        """Return use case owned default params payload."""
        ...

    def validate_params(
        self, params: Mapping[str, Any], *, strict: bool = True
    ) -> Mapping[str, Any]:
        """
        Validate use case params payload and return normalized values.
        """
        ...


@runtime_checkable
class CovariateProvider(Protocol):
    """Optional hook: environment facts (model name, region, ...) recorded with a baseline."""

    def covariates(self, params: Mapping[str, Any]) -> Mapping[str, str]: ...
