from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class TerminationReason(str, Enum):
    COMPLETED = "COMPLETED"
    TIME_BUDGET_EXHAUSTED = "TIME_BUDGET_EXHAUSTED"
    TOKEN_BUDGET_EXHAUSTED = "TOKEN_BUDGET_EXHAUSTED"
    GOAL_ACHIEVED = "GOAL_ACHIEVED"

    @property
    def is_budget_exhaustion(self) -> bool:
        return self in (
            TerminationReason.TIME_BUDGET_EXHAUSTED,
            TerminationReason.TOKEN_BUDGET_EXHAUSTED,
        )


@dataclass(frozen=True, slots=True)
class Budget:
    """Time (ms) and token ceilings for one run; 0 means unlimited."""

    time_ms: int = 0
    tokens: int = 0

    def __post_init__(self) -> None:
        if self.time_ms < 0 or self.tokens < 0:
            raise ValueError("budgets must be non-negative")

    @property
    def has_time_budget(self) -> bool:
        return self.time_ms > 0

    @property
    def has_token_budget(self) -> bool:
        return self.tokens > 0

    @property
    def is_unlimited(self) -> bool:
        return not self.has_time_budget and not self.has_token_budget


@dataclass(frozen=True, slots=True)
class TerminationDecision:
    reason: TerminationReason | None = None
    details: str | None = None
    # true for exactly one caller: the one whose check caused the transition
    just_terminated: bool = False

    @property
    def should_stop(self) -> bool:
        return self.reason is not None


_CONTINUE = TerminationDecision()


class BudgetController:
    """
    Run state machine: RUNNING, then one terminal reason.

    Every transition is a compare-and-set under a lock, so concurrent callers
    observing exhaustion at the same time see exactly one transition.
    """

    def __init__(
        self, budget: Budget | None = None, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._budget = budget or Budget()
        self._clock = clock
        self._start = clock()
        self._lock = threading.Lock()
        self._reason: TerminationReason | None = None
        self._details: str | None = None

    @property
    def budget(self) -> Budget:
        return self._budget

    @property
    def elapsed_ms(self) -> int:
        return max(0, int((self._clock() - self._start) * 1000))

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._reason is None

    @property
    def reason(self) -> TerminationReason | None:
        with self._lock:
            return self._reason

    @property
    def details(self) -> str | None:
        with self._lock:
            return self._details

    def check_termination(self, tokens_consumed: int = 0) -> TerminationDecision:
        """Check the budgets before a sample starts."""
        with self._lock:
            if self._reason is not None:
                return TerminationDecision(self._reason, self._details)

            elapsed = self.elapsed_ms
            if self._budget.has_time_budget and elapsed >= self._budget.time_ms:
                self._reason = TerminationReason.TIME_BUDGET_EXHAUSTED
                self._details = (
                    f"Time budget exhausted: {elapsed}ms elapsed >= {self._budget.time_ms}ms budget"
                )
            elif self._budget.has_token_budget and tokens_consumed >= self._budget.tokens:
                self._reason = TerminationReason.TOKEN_BUDGET_EXHAUSTED
                self._details = (
                    f"Token budget exhausted: {tokens_consumed} tokens >= "
                    f"{self._budget.tokens} budget"
                )
            else:
                return _CONTINUE
            return TerminationDecision(self._reason, self._details, just_terminated=True)

    def terminate(self, reason: TerminationReason, details: str | None = None) -> bool:
        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
            self._details = details
            return True

    def complete(self) -> bool:
        return self.terminate(TerminationReason.COMPLETED)
