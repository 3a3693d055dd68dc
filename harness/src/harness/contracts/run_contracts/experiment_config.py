from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ExperimentMode = Literal["measure", "explore"]


class UseCaseRef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str = Field(min_length=1)


class PacingConfig(BaseModel):
    """Rate limits for sample starts; 0 disables a constraint."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min_ms_per_sample: int = Field(default=0, ge=0)
    max_requests_per_second: float = Field(default=0, ge=0)
    max_requests_per_minute: float = Field(default=0, ge=0)
    max_requests_per_hour: float = Field(default=0, ge=0)

    @property
    def has_pacing(self) -> bool:
        return self.effective_min_delay_ms > 0

    @property
    def effective_min_delay_ms(self) -> int:
        """The most restrictive of all configured constraints, in milliseconds."""
        delays = [self.min_ms_per_sample]
        if self.max_requests_per_second > 0:
            delays.append(math.ceil(1000 / self.max_requests_per_second))
        if self.max_requests_per_minute > 0:
            delays.append(math.ceil(60_000 / self.max_requests_per_minute))
        if self.max_requests_per_hour > 0:
            delays.append(math.ceil(3_600_000 / self.max_requests_per_hour))
        return max(delays)


class GoalConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    min_success_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    max_avg_latency_ms: float | None = Field(default=None, ge=0.0)
    max_avg_tokens: float | None = Field(default=None, ge=0.0)
    # goal is not evaluated before this many samples
    min_samples: int = Field(default=1, ge=1)

    @property
    def has_goal(self) -> bool:
        return (
            self.min_success_rate is not None
            or self.max_avg_latency_ms is not None
            or self.max_avg_tokens is not None
        )


class ExperimentSettings(BaseModel):
    """
    Per-run experiment settings, constructed once and never mutated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    use_case_id: str | None = None
    experiment_id: str | None = None
    samples: int = Field(default=1000, ge=1)
    time_budget_ms: int = Field(default=0, ge=0)
    token_budget: int = Field(default=0, ge=0)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    factor_source: str | None = None
    scope: str | None = None
    factors: dict[str, list[Any]] | None = None
    goal: GoalConfig = Field(default_factory=GoalConfig)
    expires_in_days: int = Field(default=0, ge=0)
    concurrency: int = Field(default=1, ge=1)
    mode: ExperimentMode = "measure"
    samples_per_config: int = Field(default=1, ge=1)

    @field_validator("factors")
    @classmethod
    def _validate_factors(cls, value: dict[str, list[Any]] | None) -> dict[str, list[Any]] | None:
        if value is None:
            return None
        if not value:
            raise ValueError("factors must not be empty when provided")
        for name, choices in value.items():
            if not isinstance(choices, list) or len(choices) == 0:
                raise ValueError(f"factors.{name} must be a non-empty list")
        return value

    @model_validator(mode="after")
    def _validate_factor_inputs(self) -> ExperimentSettings:
        if self.factor_source is not None and self.factors is not None:
            raise ValueError("Set either factor_source or factors, not both")
        if self.mode == "explore" and self.factor_source is None and self.factors is None:
            raise ValueError("explore mode needs factor_source or factors")
        return self


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    specs_dir: str | None = None
    fingerprint: bool = True
    footprint_naming: bool = False


class ExperimentConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    use_case: UseCaseRef
    experiment: ExperimentSettings = Field(default_factory=ExperimentSettings)
    output: OutputConfig = Field(default_factory=OutputConfig)
    strict: bool = True
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _coerce_params_dict(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        raise ValueError("params must be a mapping")
