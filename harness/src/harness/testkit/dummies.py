from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from harness.contracts import SampleContext, SampleOutcome, UseCase, UseCaseInfo
from harness.factors import FactorConfiguration

Step = SampleOutcome | BaseException | Callable[[FactorConfiguration, SampleContext], SampleOutcome]


class ScriptedUseCase(UseCase):
    """
    Use case that replays a fixed script of outcomes, cycling when it runs out.

    A script entry may be a SampleOutcome, an exception instance (raised) or a
    callable receiving the configuration and context. Every call is recorded.
    """

    def __init__(
        self,
        script: Iterable[Step] | None = None,
        *,
        key: str = "scripted",
        params: Mapping[str, Any] | None = None,
        covariates: Mapping[str, str] | None = None,
    ) -> None:
        steps = list(script) if script is not None else [SampleOutcome.passed(tokens=10)]
        if not steps:
            raise ValueError("script must not be empty")
        self._key = key
        self._steps = itertools.cycle(steps)
        self._params = dict(params or {})
        self._covariates = dict(covariates or {})
        self._lock = threading.Lock()
        self.seen: list[FactorConfiguration] = []
        self.contexts: list[SampleContext] = []

    @property
    def info(self) -> UseCaseInfo:
        return UseCaseInfo(key=self._key, name="Scripted Use Case", version="0.1.0")

    def default_params(self) -> Mapping[str, Any]:
        return dict(self._params)

    def validate_params(
        self, params: Mapping[str, Any], *, strict: bool = True
    ) -> Mapping[str, Any]:
        return dict(params)

    def covariates(self, params: Mapping[str, Any]) -> Mapping[str, str]:
        return dict(self._covariates)

    def sample(
        self, configuration: FactorConfiguration, *, context: SampleContext
    ) -> SampleOutcome:
        with self._lock:
            step = next(self._steps)
            self.seen.append(configuration)
            self.contexts.append(context)
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(configuration, context)
        return step
