from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from harness.contracts import UseCase, UseCaseInfo, UseCaseNotFoundError, UseCaseRegistry


@dataclass
class DictUseCaseRegistry(UseCaseRegistry):
    use_cases: dict[str, UseCase]

    @classmethod
    def of(cls, *use_cases: UseCase) -> DictUseCaseRegistry:
        return cls({use_case.info.key: use_case for use_case in use_cases})

    def get(self, use_case_key: str) -> UseCase:
        try:
            return self.use_cases[use_case_key]
        except KeyError as e:
            raise UseCaseNotFoundError(use_case_key) from e

    def list(self) -> Iterable[UseCaseInfo]:
        return [u.info for u in self.use_cases.values()]
