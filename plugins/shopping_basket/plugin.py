from __future__ import annotations

import random
import time
from collections.abc import Iterator, Mapping
from typing import Any

from harness.contracts import (
    SampleContext,
    SampleOutcome,
    UseCase,
    UseCaseInfo,
)
from harness.factors import FactorConfiguration, FactorSourceRegistry, grid

from .assistant import MockShoppingAssistant
from .checks import check_basket, first_failure
from .config import default_params, parse_config, validate_params

REQUESTS = (
    "Add two litres of milk and a loaf of bread",
    "I need eggs, butter and cheese for the weekend",
    "Something for breakfast please",
    "Get me coffee and yoghurt",
    "Ingredients for a tomato pasta",
    "Restock the fruit bowl with apples and bananas",
)


class ShoppingBasketUseCase(UseCase):
    """Translate a free-text shopping request into a structured basket."""

    @property
    def info(self) -> UseCaseInfo:
        return UseCaseInfo(
            key="shopping.basket",
            name="Shopping Basket Assistant",
            version="0.1.0",
            description="Mock LLM assistant that turns shopping requests into JSON baskets.",
        )

    def default_params(self) -> Mapping[str, Any]:
        return default_params()

    def validate_params(
        self, params: Mapping[str, Any], *, strict: bool = True
    ) -> Mapping[str, Any]:
        return validate_params(params, strict=strict)

    def covariates(self, params: Mapping[str, Any]) -> Mapping[str, str]:
        config = parse_config(params)
        return {"model": config.assistant.model, "region": config.assistant.region}

    def sample(
        self, configuration: FactorConfiguration, *, context: SampleContext
    ) -> SampleOutcome:
        config = parse_config(context.params)
        temperature = float(configuration.get("temperature", config.assistant.temperature))
        penalty = config.behaviour.temperature_penalty * temperature
        success_rate = min(1.0, max(0.0, config.behaviour.success_rate - penalty))
        rng = random.Random(
            None if config.seed is None else f"{config.seed}:{context.sample_index}"
        )
        assistant = MockShoppingAssistant(
            success_rate=success_rate,
            min_tokens=config.behaviour.min_tokens,
            max_tokens=config.behaviour.max_tokens,
            rng=rng,
        )

        start = time.perf_counter()
        if config.behaviour.latency_ms:
            time.sleep(config.behaviour.latency_ms / 1000.0)
        reply = assistant.respond(str(configuration.get("request", REQUESTS[0])))
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        criteria = check_basket(reply.text)
        failure = first_failure(criteria)
        if failure is None:
            return SampleOutcome.passed(
                tokens=reply.tokens,
                criteria=criteria,
                elapsed_ms=elapsed_ms,
            )
        context.logger.debug("Sample %d failed %s", context.sample_index, failure)
        return SampleOutcome.failed(
            failure,
            tokens=reply.tokens,
            criteria=criteria,
            elapsed_ms=elapsed_ms,
        )

    @staticmethod
    def standard_requests() -> list[FactorConfiguration]:
        """Fixed request set, cycled across samples."""
        return [FactorConfiguration.of(request=request) for request in REQUESTS]

    @staticmethod
    def customer_requests() -> Iterator[dict[str, str]]:
        """One-shot stream of recorded requests; each is used once."""
        for request in REQUESTS:
            for suffix in ("", " (urgent)", " for delivery tomorrow"):
                yield {"request": f"{request}{suffix}"}

    @staticmethod
    def temperature_sweep() -> list[FactorConfiguration]:
        return grid(request=REQUESTS[:2], temperature=[0.0, 0.7, 1.4])


FACTOR_SOURCES = FactorSourceRegistry()
FACTOR_SOURCES.register(ShoppingBasketUseCase.standard_requests)
FACTOR_SOURCES.register(ShoppingBasketUseCase.customer_requests)
FACTOR_SOURCES.register(ShoppingBasketUseCase.temperature_sweep)
