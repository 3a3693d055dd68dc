from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime

from harness.contracts import ExperimentSettings, GoalConfig, SampleOutcome
from harness.engine.aggregator import ResultAggregator
from harness.engine.budget import Budget, BudgetController, TerminationReason
from harness.engine.goal import GoalEvaluator
from harness.engine.pacing import Pacer
from harness.factors import (
    FactorConfiguration,
    FactorSource,
    FactorSourceExhaustedError,
    FactorSourceResolutionError,
    MaterializedFactorSource,
    iterator_for,
)
from harness.spec import Specification, build_specification

_NO_FACTORS = FactorConfiguration(names=(), values=())


@dataclass(frozen=True, slots=True)
class SampleHandle:
    """One claimed sample slot: must be passed back to ``record_result`` exactly once."""

    index: int
    sequence: int
    configuration: FactorConfiguration


class ExperimentSession:
    """
    Per-run orchestration state handed to the sample executor.

    The host loops ``next_sample_slot()`` / ``record_result()`` until a slot comes
    back as ``None``. The session owns the aggregator, budget controller, goal
    evaluator and factor iterator of the run; only the pacer may be shared
    between sessions of one explore run. The session lock covers slot
    bookkeeping only, never a sample execution or a pacing wait.

    The specification is frozen exactly once, when the run has stopped and the
    last in-flight sample was recorded. Runs that executed no sample produce none.
    """

    def __init__(
        self,
        use_case_id: str,
        *,
        samples: int,
        source: FactorSource | None = None,
        budget: Budget | None = None,
        goal: GoalConfig | None = None,
        pacer: Pacer | None = None,
        expires_in_days: int = 0,
        experiment_id: str | None = None,
        footprint: str | None = None,
        covariates: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if samples < 1:
            raise ValueError("samples must be >= 1")
        self._use_case_id = use_case_id
        self._samples = samples
        self._source = source
        self._expires_in_days = expires_in_days
        self._experiment_id = experiment_id
        self._footprint = footprint
        self._covariates = dict(covariates or {})
        self._now = now
        self._logger = logger or logging.getLogger(f"baseline_harness.experiment.{use_case_id}")

        # resolves and validates the source before any sample runs
        effective_source = source or MaterializedFactorSource.from_configurations(
            "default", [_NO_FACTORS]
        )
        self._iterator = iterator_for(effective_source, samples)

        self._aggregator = ResultAggregator(use_case_id, samples, clock=clock, now=now)
        self._controller = BudgetController(budget, clock=clock)
        self._goal = GoalEvaluator(goal)
        self._pacer = pacer or Pacer(0, clock=clock)

        self._lock = threading.Lock()
        self._issued = 0
        self._outstanding: set[int] = set()
        self._stopping = False
        self._generated = False
        self._error: BaseException | None = None
        self._specification: Specification | None = None
        self._finished = threading.Event()

    @classmethod
    def from_settings(
        cls,
        settings: ExperimentSettings,
        *,
        use_case_id: str,
        source: FactorSource | None = None,
        pacer: Pacer | None = None,
        samples: int | None = None,
        footprint: str | None = None,
        covariates: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> ExperimentSession:
        return cls(
            use_case_id,
            samples=samples if samples is not None else settings.samples,
            source=source,
            budget=Budget(time_ms=settings.time_budget_ms, tokens=settings.token_budget),
            goal=settings.goal,
            pacer=pacer or Pacer.from_config(settings.pacing, clock=clock),
            expires_in_days=settings.expires_in_days,
            experiment_id=settings.experiment_id,
            footprint=footprint,
            covariates=covariates,
            clock=clock,
            now=now,
            logger=logger,
        )

    @property
    def use_case_id(self) -> str:
        return self._use_case_id

    @property
    def samples_planned(self) -> int:
        return self._samples

    @property
    def aggregator(self) -> ResultAggregator:
        return self._aggregator

    @property
    def controller(self) -> BudgetController:
        return self._controller

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    @property
    def goal(self) -> GoalEvaluator:
        return self._goal

    @property
    def source(self) -> FactorSource | None:
        return self._source

    @property
    def footprint(self) -> str | None:
        return self._footprint

    @property
    def covariates(self) -> dict[str, str]:
        return dict(self._covariates)

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def specification(self) -> Specification | None:
        """The frozen baseline, once the run is finished and at least one sample ran."""
        with self._lock:
            return self._specification

    def next_sample_slot(self) -> SampleHandle | None:
        """Claim the next sample, or ``None`` once the run must stop."""
        with self._lock:
            if self._stopping or self._complete_if_done_locked():
                return None

        sequence = self._pacer.acquire()

        with self._lock:
            if self._stopping:
                return None

            decision = self._controller.check_termination(self._aggregator.total_tokens)
            if decision.should_stop:
                if decision.just_terminated:
                    self._logger.info(
                        "Stopping %s after %d samples: %s",
                        self._use_case_id,
                        self._aggregator.samples_executed,
                        decision.details,
                    )
                self._stop_locked()
                return None

            if self._complete_if_done_locked():
                return None

            try:
                configuration = next(self._iterator)
            except (FactorSourceExhaustedError, FactorSourceResolutionError) as exc:
                self._fail_locked(exc)
                raise

            handle = SampleHandle(
                index=self._issued, sequence=sequence, configuration=configuration
            )
            self._issued += 1
            self._outstanding.add(handle.index)
            return handle

    def record_result(
        self,
        handle: SampleHandle,
        outcome: SampleOutcome | None = None,
        *,
        error: BaseException | None = None,
    ) -> None:
        """Fold one sample's outcome (or the exception it raised) into the run."""
        if outcome is None and error is None:
            raise ValueError("record_result needs an outcome or an error")
        with self._lock:
            if handle.index not in self._outstanding:
                raise ValueError(f"Sample slot {handle.index} is not outstanding")

        if error is not None:
            self._logger.debug(
                "Sample %d raised %s: %s", handle.index, type(error).__name__, error
            )
            self._aggregator.record_exception(error)
        elif outcome is not None:
            if outcome.success:
                self._aggregator.record_success(outcome)
            else:
                self._aggregator.record_failure(outcome, outcome.failure_category)
            if outcome.criteria:
                self._aggregator.record_criteria(outcome.criteria)
            self._aggregator.add_tokens(outcome.tokens)

        goal_reached = self._goal.is_met(self._aggregator)

        with self._lock:
            self._outstanding.discard(handle.index)
            if goal_reached and self._controller.terminate(
                TerminationReason.GOAL_ACHIEVED, f"Goal reached: {self._goal.describe()}"
            ):
                self._logger.info(
                    "Goal reached for %s after %d samples",
                    self._use_case_id,
                    self._aggregator.samples_executed,
                )
                self._stopping = True
            self._maybe_finalize_locked()

    def wait(self, timeout: float | None = None) -> bool:
        return self._finished.wait(timeout)

    def close(self) -> None:
        """Stop handing out slots and end pending pacing waits."""
        with self._lock:
            details = (
                f"Session closed after {self._aggregator.samples_executed} "
                f"of {self._samples} samples"
            )
            if not self._stopping:
                self._controller.terminate(TerminationReason.COMPLETED, details)
            self._stop_locked()
        self._pacer.interrupt()
        self._close_iterator()

    def _fail_locked(self, error: BaseException) -> None:
        self._error = error
        self._stopping = True
        self._generated = True
        self._finished.set()
        self._close_iterator()
        self._logger.error("Aborting %s: %s", self._use_case_id, error)

    def _close_iterator(self) -> None:
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()

    def _complete_if_done_locked(self) -> bool:
        if self._iterator.current_index < self._iterator.total_samples:
            return False
        self._controller.complete()
        self._stop_locked()
        return True

    def _stop_locked(self) -> None:
        self._stopping = True
        self._maybe_finalize_locked()

    def _maybe_finalize_locked(self) -> None:
        if not self._stopping or self._outstanding or self._generated:
            return
        self._generated = True
        # the clock stops only once no sample is in flight
        self._aggregator.set_terminated(
            self._controller.reason or TerminationReason.COMPLETED, self._controller.details
        )
        if self._aggregator.samples_executed == 0:
            self._logger.warning(
                "No samples executed for %s (%s); no specification produced",
                self._use_case_id,
                self._aggregator.termination_details or "run stopped",
            )
        else:
            self._specification = build_specification(
                self._aggregator,
                generated_at=self._now() if self._now is not None else None,
                expires_in_days=self._expires_in_days,
                footprint=self._footprint,
                covariates=self._covariates,
                factor_source=self._source,
                experiment_id=self._experiment_id,
            )
        self._finished.set()
