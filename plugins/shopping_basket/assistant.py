from __future__ import annotations

import json
import random
from dataclasses import dataclass
from enum import Enum

CATALOGUE: dict[str, float] = {
    "apples": 2.49,
    "bananas": 1.29,
    "bread": 2.99,
    "butter": 3.49,
    "cheese": 5.99,
    "coffee": 7.99,
    "eggs": 3.19,
    "milk": 1.09,
    "pasta": 1.79,
    "rice": 2.29,
    "tomatoes": 2.69,
    "yoghurt": 0.99,
}

ITEM_FIELDS = ("product", "quantity", "unit_price")


class FailureMode(str, Enum):
    MALFORMED_JSON = "malformed_json"
    HALLUCINATED_FIELDS = "hallucinated_fields"
    INVALID_VALUES = "invalid_values"
    MISSING_FIELDS = "missing_fields"


@dataclass(frozen=True, slots=True)
class AssistantReply:
    text: str
    tokens: int
    injected_failure: FailureMode | None = None


class MockShoppingAssistant:
    """
    Stand-in for an LLM that turns a shopping request into a JSON basket.

    With probability ``1 - success_rate`` the reply carries one of the failure
    modes. Token usage is uniform in ``[min_tokens, max_tokens]``.
    """

    def __init__(
        self,
        *,
        success_rate: float,
        min_tokens: int = 200,
        max_tokens: int = 500,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be in [0, 1], got {success_rate}")
        self._success_rate = success_rate
        self._min_tokens = min_tokens
        self._max_tokens = max_tokens
        self._rng = rng or random.Random()

    @property
    def success_rate(self) -> float:
        return self._success_rate

    def respond(self, request: str) -> AssistantReply:
        items = self._basket_for(request)
        tokens = self._rng.randint(self._min_tokens, self._max_tokens)
        if self._rng.random() < self._success_rate:
            return AssistantReply(text=json.dumps({"items": items}), tokens=tokens)

        mode = self._rng.choice(list(FailureMode))
        return AssistantReply(text=_inject(mode, items), tokens=tokens, injected_failure=mode)

    def _basket_for(self, request: str) -> list[dict[str, object]]:
        lowered = request.lower()
        products = [name for name in CATALOGUE if name in lowered]
        if not products:
            products = self._rng.sample(sorted(CATALOGUE), k=self._rng.randint(1, 3))
        return [
            {
                "product": name,
                "quantity": self._rng.randint(1, 4),
                "unit_price": CATALOGUE[name],
            }
            for name in products
        ]


def _inject(mode: FailureMode, items: list[dict[str, object]]) -> str:
    if mode is FailureMode.MALFORMED_JSON:
        return json.dumps({"items": items})[:-2]
    broken = [dict(item) for item in items]
    if mode is FailureMode.HALLUCINATED_FIELDS:
        broken[0]["loyalty_discount"] = "15%"
    elif mode is FailureMode.INVALID_VALUES:
        broken[0]["quantity"] = -1
    else:
        del broken[0]["quantity"]
    return json.dumps({"items": broken})
