from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from harness.contracts.use_case_contracts.use_case import UseCase, UseCaseInfo


class UseCaseNotFoundError(KeyError):
    pass


@runtime_checkable
class UseCaseRegistry(Protocol):
    def get(self, use_case_key: str) -> UseCase:
        """Return use case for key or raise UseCaseNotFoundError."""
        ...

    def list(self) -> Iterable[UseCaseInfo]:
        """List available use cases (for CLI / debugging)."""
        ...
