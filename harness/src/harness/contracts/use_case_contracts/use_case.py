from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from harness.contracts.run_contracts.sample import SampleContext, SampleOutcome

if TYPE_CHECKING:
    from harness.factors import FactorConfiguration


@dataclass(frozen=True, slots=True)
class UseCaseInfo:
    key: str
    name: str
    version: str = "0.1.0"
    description: str | None = None


@runtime_checkable
class UseCase(Protocol):
    """
    Use case interface contract.

    A use case is the non-deterministic operation under study (for example a call
    to an LLM-backed service). The harness calls ``sample`` once per sample slot.
    """

    @property
    def info(self) -> UseCaseInfo: ...

    def sample(
        self, configuration: FactorConfiguration, *, context: SampleContext
    ) -> SampleOutcome:
        """
        Execute one sample for the given factor configuration.

        Raising is allowed: the exception is recorded as a failure categorized by
        its type and the run continues.
        """
        ...
