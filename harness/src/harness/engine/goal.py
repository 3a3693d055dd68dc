from __future__ import annotations

from harness.contracts import GoalConfig
from harness.engine.aggregator import AggregateSnapshot, ResultAggregator


class GoalEvaluator:
    """
    Stateless early-success predicate over aggregate state.

    Every configured criterion must hold. With nothing configured the evaluator
    has no goal and never reports success.
    """

    def __init__(self, goal: GoalConfig | None = None) -> None:
        self._goal = goal or GoalConfig()

    @property
    def goal(self) -> GoalConfig:
        return self._goal

    @property
    def has_goal(self) -> bool:
        return self._goal.has_goal

    def is_met(self, state: ResultAggregator | AggregateSnapshot) -> bool:
        if not self.has_goal:
            return False
        if state.samples_executed < self._goal.min_samples:
            return False
        goal = self._goal
        if goal.min_success_rate is not None and state.observed_rate < goal.min_success_rate:
            return False
        if (
            goal.max_avg_latency_ms is not None
            and state.avg_time_per_sample_ms > goal.max_avg_latency_ms
        ):
            return False
        if goal.max_avg_tokens is not None and state.avg_tokens_per_sample > goal.max_avg_tokens:
            return False
        return True

    def describe(self) -> str:
        if not self.has_goal:
            return "(no goal)"
        parts: list[str] = []
        if self._goal.min_success_rate is not None:
            parts.append(f"successRate >= {self._goal.min_success_rate:.2f}")
        if self._goal.max_avg_latency_ms is not None:
            parts.append(f"avgLatencyMs <= {self._goal.max_avg_latency_ms:.0f}")
        if self._goal.max_avg_tokens is not None:
            parts.append(f"avgTokens <= {self._goal.max_avg_tokens:.0f}")
        return " && ".join(parts)
