from .run_contracts import (
    CriterionResult,
    ExperimentConfig,
    ExperimentMode,
    ExperimentResult,
    ExperimentSettings,
    ExploreResult,
    ExploreVariantFailure,
    GoalConfig,
    OutputConfig,
    PacingConfig,
    RunStatus,
    SampleContext,
    SampleOutcome,
    UseCaseRef,
)
from .tracking import TrackingClient
from .use_case_contracts import (
    ConfigurableUseCase,
    CovariateProvider,
    UseCase,
    UseCaseInfo,
    UseCaseNotFoundError,
    UseCaseRegistry,
)

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
    "UseCase",
    "UseCaseInfo",
    "ConfigurableUseCase",
    "CovariateProvider",
    "UseCaseRegistry",
    "UseCaseNotFoundError",
    "TrackingClient",
]
