from .experiment_config import (
    ExperimentConfig,
    ExperimentMode,
    ExperimentSettings,
    GoalConfig,
    OutputConfig,
    PacingConfig,
    UseCaseRef,
)
from .experiment_result import ExperimentResult, ExploreResult, ExploreVariantFailure, RunStatus
from .sample import CriterionResult, SampleContext, SampleOutcome

__all__ = [
    "ExperimentConfig",
    "ExperimentMode",
    "ExperimentSettings",
    "GoalConfig",
    "OutputConfig",
    "PacingConfig",
    "UseCaseRef",
    "ExperimentResult",
    "ExploreResult",
    "ExploreVariantFailure",
    "RunStatus",
    "CriterionResult",
    "SampleContext",
    "SampleOutcome",
]
