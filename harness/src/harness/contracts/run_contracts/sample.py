from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from harness.factors import FactorConfiguration


@dataclass(frozen=True, slots=True)
class CriterionResult:
    """Outcome of one named acceptance criterion for one sample."""

    name: str
    passed: bool
    reason: str | None = None
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class SampleOutcome:
    """
    Result of one sample execution.

    Raw exceptions are not carried here; the host passes them to
    ``ExperimentSession.record_result(handle, error=exc)`` instead.
    """

    success: bool
    failure_category: str | None = None
    criteria: tuple[CriterionResult, ...] = ()
    tokens: int = 0
    # time spent inside the use case itself, excluding pacing waits
    elapsed_ms: float | None = None

    @classmethod
    def passed(
        cls,
        *,
        tokens: int = 0,
        criteria: tuple[CriterionResult, ...] = (),
        elapsed_ms: float | None = None,
    ) -> SampleOutcome:
        return cls(
            success=True,
            criteria=criteria,
            tokens=tokens,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def failed(
        cls,
        category: str | None = None,
        *,
        tokens: int = 0,
        criteria: tuple[CriterionResult, ...] = (),
        elapsed_ms: float | None = None,
    ) -> SampleOutcome:
        return cls(
            success=False,
            failure_category=category,
            criteria=criteria,
            tokens=tokens,
            elapsed_ms=elapsed_ms,
        )


@dataclass(frozen=True, slots=True)
class SampleContext:
    """
    Harness-provided context for one sample.

    Keep this stable: use cases should only depend on these fields.
    """

    run_id: str
    sample_index: int
    configuration: FactorConfiguration
    params: Mapping[str, Any]
    logger: logging.Logger
