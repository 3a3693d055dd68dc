from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from harness.contracts import CriterionResult, SampleOutcome
from harness.engine.budget import TerminationReason

Z_95 = 1.96
UNKNOWN_CATEGORY = "unknown"
_MAX_FAILURE_MESSAGES = 5


@dataclass(slots=True)
class CriterionStats:
    name: str
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    failure_messages: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def pass_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.passed / self.total

    def record(self, result: CriterionResult) -> None:
        if result.passed and not result.skipped:
            self.passed += 1
        elif result.skipped:
            self.skipped += 1
        else:
            self.failed += 1
            if result.reason and len(self.failure_messages) < _MAX_FAILURE_MESSAGES:
                self.failure_messages.append(result.reason)


@dataclass(frozen=True, slots=True)
class AggregateSnapshot:
    """Consistent, immutable read of a ResultAggregator taken under its lock."""

    use_case_id: str
    samples_planned: int
    samples_executed: int
    successes: int
    failures: int
    observed_rate: float
    standard_error: float
    confidence_interval_95: tuple[float, float]
    failure_distribution: Mapping[str, int]
    criteria_pass_rates: Mapping[str, float]
    criteria_all_passed_rate: float | None
    total_tokens: int
    elapsed_ms: int
    avg_time_per_sample_ms: int
    avg_tokens_per_sample: int
    avg_sample_latency_ms: int | None
    started_at: datetime
    last_sample_at: datetime
    termination_reason: TerminationReason | None
    termination_details: str | None


class ResultAggregator:
    """
    Online accumulator for one experiment run.

    Append-only and thread-safe: every mutation and every compound read runs
    under one re-entrant lock. Statistics are derived on read, so late
    mutations are always reflected.
    """

    def __init__(
        self,
        use_case_id: str,
        samples_planned: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        if samples_planned < 0:
            raise ValueError("samples_planned must be non-negative")
        self._use_case_id = use_case_id
        self._samples_planned = samples_planned
        self._clock = clock
        self._now = now or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()

        self._start = clock()
        self._end: float | None = None
        self._started_at = self._now()
        self._last_sample_at = self._started_at

        self._successes = 0
        self._failures = 0
        self._total_tokens = 0
        self._latency_total_ms = 0.0
        self._latency_samples = 0
        self._failure_distribution: dict[str, int] = {}
        self._criteria: dict[str, CriterionStats] = {}
        self._criteria_samples = 0
        self._criteria_all_passed = 0
        self._termination_reason: TerminationReason | None = None
        self._termination_details: str | None = None

    # mutations

    def record_success(self, outcome: SampleOutcome | None = None) -> None:
        with self._lock:
            self._successes += 1
            self._record_latency(outcome)
            self._touch()

    def record_failure(
        self, outcome: SampleOutcome | None = None, category: str | None = None
    ) -> None:
        if not category and outcome is not None:
            category = outcome.failure_category
        with self._lock:
            self._failures += 1
            self._bump_category(category or UNKNOWN_CATEGORY)
            self._record_latency(outcome)
            self._touch()

    def record_exception(self, error: BaseException | None) -> None:
        category = type(error).__name__ if error is not None else UNKNOWN_CATEGORY
        with self._lock:
            self._failures += 1
            self._bump_category(category)
            self._touch()

    def record_criteria(self, results: Iterable[CriterionResult]) -> None:
        items = list(results)
        with self._lock:
            self._criteria_samples += 1
            all_passed = True
            for result in items:
                stats = self._criteria.get(result.name)
                if stats is None:
                    stats = CriterionStats(result.name)
                    self._criteria[result.name] = stats
                stats.record(result)
                if not result.passed or result.skipped:
                    all_passed = False
            if all_passed:
                self._criteria_all_passed += 1

    def add_tokens(self, tokens: int) -> None:
        if tokens <= 0:
            return
        with self._lock:
            self._total_tokens += tokens

    def set_terminated(self, reason: TerminationReason, details: str | None = None) -> bool:
        """Record why the run stopped. Only the first call wins."""
        with self._lock:
            if self._termination_reason is not None:
                return False
            self._termination_reason = reason
            self._termination_details = details
            self._end = self._clock()
            return True

    def set_completed(self) -> bool:
        return self.set_terminated(TerminationReason.COMPLETED)

    # reads

    @property
    def use_case_id(self) -> str:
        return self._use_case_id

    @property
    def samples_planned(self) -> int:
        return self._samples_planned

    @property
    def successes(self) -> int:
        with self._lock:
            return self._successes

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    @property
    def samples_executed(self) -> int:
        with self._lock:
            return self._successes + self._failures

    @property
    def total_tokens(self) -> int:
        with self._lock:
            return self._total_tokens

    @property
    def observed_rate(self) -> float:
        with self._lock:
            executed = self._successes + self._failures
            if executed == 0:
                return 0.0
            return self._successes / executed

    @property
    def standard_error(self) -> float:
        with self._lock:
            n = self._successes + self._failures
            if n < 2:
                return 0.0
            p = self.observed_rate
            return math.sqrt(p * (1 - p) / n)

    @property
    def confidence_interval_95(self) -> tuple[float, float]:
        with self._lock:
            p = self.observed_rate
            margin = Z_95 * self.standard_error
            return max(0.0, p - margin), min(1.0, p + margin)

    @property
    def failure_distribution(self) -> dict[str, int]:
        with self._lock:
            return dict(self._failure_distribution)

    @property
    def criteria_stats(self) -> dict[str, CriterionStats]:
        with self._lock:
            return {
                name: CriterionStats(
                    name=stats.name,
                    passed=stats.passed,
                    failed=stats.failed,
                    skipped=stats.skipped,
                    failure_messages=list(stats.failure_messages),
                )
                for name, stats in self._criteria.items()
            }

    @property
    def criteria_pass_rates(self) -> dict[str, float]:
        with self._lock:
            return {name: stats.pass_rate for name, stats in self._criteria.items()}

    @property
    def criteria_all_passed_rate(self) -> float | None:
        """Share of samples whose criteria all passed; ``None`` if no criteria were recorded."""
        with self._lock:
            if self._criteria_samples == 0:
                return None
            return self._criteria_all_passed / self._criteria_samples

    @property
    def elapsed_ms(self) -> int:
        with self._lock:
            end = self._end if self._end is not None else self._clock()
            return max(0, int((end - self._start) * 1000))

    @property
    def avg_time_per_sample_ms(self) -> int:
        with self._lock:
            executed = self._successes + self._failures
            if executed == 0:
                return 0
            return self.elapsed_ms // executed

    @property
    def avg_tokens_per_sample(self) -> int:
        with self._lock:
            executed = self._successes + self._failures
            if executed == 0:
                return 0
            return self._total_tokens // executed

    @property
    def avg_sample_latency_ms(self) -> int | None:
        """Mean in-use-case time over samples that reported one; excludes pacing waits."""
        with self._lock:
            if self._latency_samples == 0:
                return None
            return int(round(self._latency_total_ms / self._latency_samples))

    @property
    def remaining_samples(self) -> int:
        with self._lock:
            return max(0, self._samples_planned - self._successes - self._failures)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            if self._termination_reason is not None:
                return True
            return self._successes + self._failures >= self._samples_planned

    @property
    def termination_reason(self) -> TerminationReason | None:
        with self._lock:
            return self._termination_reason

    @property
    def termination_details(self) -> str | None:
        with self._lock:
            return self._termination_details

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def last_sample_at(self) -> datetime:
        with self._lock:
            return self._last_sample_at

    def snapshot(self) -> AggregateSnapshot:
        with self._lock:
            return AggregateSnapshot(
                use_case_id=self._use_case_id,
                samples_planned=self._samples_planned,
                samples_executed=self.samples_executed,
                successes=self._successes,
                failures=self._failures,
                observed_rate=self.observed_rate,
                standard_error=self.standard_error,
                confidence_interval_95=self.confidence_interval_95,
                failure_distribution=self.failure_distribution,
                criteria_pass_rates=self.criteria_pass_rates,
                criteria_all_passed_rate=self.criteria_all_passed_rate,
                total_tokens=self._total_tokens,
                elapsed_ms=self.elapsed_ms,
                avg_time_per_sample_ms=self.avg_time_per_sample_ms,
                avg_tokens_per_sample=self.avg_tokens_per_sample,
                avg_sample_latency_ms=self.avg_sample_latency_ms,
                started_at=self._started_at,
                last_sample_at=self._last_sample_at,
                termination_reason=self._termination_reason,
                termination_details=self._termination_details,
            )

    def _bump_category(self, category: str) -> None:
        self._failure_distribution[category] = self._failure_distribution.get(category, 0) + 1

    def _record_latency(self, outcome: SampleOutcome | None) -> None:
        if outcome is None or outcome.elapsed_ms is None:
            return
        self._latency_total_ms += max(0.0, outcome.elapsed_ms)
        self._latency_samples += 1

    def _touch(self) -> None:
        self._last_sample_at = self._now()
