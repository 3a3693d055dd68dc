"""Run-time engine: aggregation, budgets, pacing, goals and the sample session."""

from harness.engine.aggregator import AggregateSnapshot, CriterionStats, ResultAggregator
from harness.engine.budget import Budget, BudgetController, TerminationDecision, TerminationReason
from harness.engine.goal import GoalEvaluator
from harness.engine.pacing import Pacer
from harness.engine.session import ExperimentSession, SampleHandle

__all__ = [
    "AggregateSnapshot",
    "CriterionStats",
    "ResultAggregator",
    "Budget",
    "BudgetController",
    "TerminationDecision",
    "TerminationReason",
    "GoalEvaluator",
    "Pacer",
    "ExperimentSession",
    "SampleHandle",
]
