from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from harness.spec.model import Specification

RunStatus = Literal["ok", "failed", "skipped"]


@dataclass(frozen=True, slots=True)
class ExperimentResult:
    """
    Public experiment outcome contract.

    Keep this stable: API callers should not depend on internals.
    """

    run_id: str
    status: RunStatus

    started_at_utc: str
    ended_at_utc: str
    duration_s: float

    termination_reason: str | None = None
    specification: Specification | None = None
    spec_path: str | None = None

    # Freeform outputs: observed rate, sample counts, artifact uri, etc.
    outputs: Mapping[str, Any] = field(default_factory=dict)

    # Human-readable message for quick debugging
    message: str | None = None


@dataclass(frozen=True, slots=True)
class ExploreVariantFailure:
    variant_id: str
    factors: Mapping[str, Any]
    error: str


@dataclass(frozen=True, slots=True)
class ExploreResult:
    explore_id: str
    started_at_utc: str
    ended_at_utc: str
    duration_s: float
    results: Sequence[ExperimentResult] = field(default_factory=list)
    failures: Sequence[ExploreVariantFailure] = field(default_factory=list)
    metadata: Mapping[str, Any] = field(default_factory=dict)
