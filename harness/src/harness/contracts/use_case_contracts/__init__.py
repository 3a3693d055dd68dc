from .configurable_use_case import ConfigurableUseCase, CovariateProvider
from .registry import UseCaseNotFoundError, UseCaseRegistry
from .use_case import UseCase, UseCaseInfo

__all__ = [
    "UseCase",
    "UseCaseInfo",
    "ConfigurableUseCase",
    "CovariateProvider",
    "UseCaseRegistry",
    "UseCaseNotFoundError",
]
