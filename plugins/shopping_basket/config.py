from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AssistantConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = "mock-basket-1"
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    region: str = "eu-west"


class BehaviourConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success_rate: float = Field(default=0.9, ge=0.0, le=1.0)
    # each temperature unit above zero costs this much success rate
    temperature_penalty: float = Field(default=0.1, ge=0.0, le=1.0)
    min_tokens: int = Field(default=200, ge=0)
    max_tokens: int = Field(default=500, ge=0)
    latency_ms: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _validate_tokens(self) -> BehaviourConfig:
        if self.max_tokens < self.min_tokens:
            raise ValueError(
                f"max_tokens must be >= min_tokens, got {self.max_tokens} < {self.min_tokens}"
            )
        return self


class ShoppingBasketParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    behaviour: BehaviourConfig = Field(default_factory=BehaviourConfig)
    seed: int | None = Field(default=None, ge=0)


def default_params() -> dict[str, Any]:
    return ShoppingBasketParams().model_dump(mode="python")


def validate_params(params: Mapping[str, Any] | None, *, strict: bool = True) -> dict[str, Any]:
    raw_params = dict(params or {})
    if strict:
        validated = ShoppingBasketParams.model_validate(raw_params)
        return validated.model_dump(mode="python")

    known_subset = _extract_known_fields(raw_params, ShoppingBasketParams)
    validated = ShoppingBasketParams.model_validate(known_subset)
    return _deep_merge(raw_params, validated.model_dump(mode="python"))


def parse_config(params: Mapping[str, Any] | None) -> ShoppingBasketParams:
    known_subset = _extract_known_fields(dict(params or {}), ShoppingBasketParams)
    return ShoppingBasketParams.model_validate(known_subset)


def _extract_known_fields(data: Mapping[str, Any], model_type: type[BaseModel]) -> dict[str, Any]:
    known: dict[str, Any] = {}
    for field_name, field in model_type.model_fields.items():
        if field_name not in data:
            continue
        value = data[field_name]
        nested_type = _as_model_type(field.annotation)
        if nested_type is not None and isinstance(value, Mapping):
            known[field_name] = _extract_known_fields(value, nested_type)
            continue
        known[field_name] = value
    return known


def _as_model_type(annotation: Any) -> type[BaseModel] | None:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(dict(base))
    for key, value in override.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged
