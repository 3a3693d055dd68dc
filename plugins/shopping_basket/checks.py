from __future__ import annotations

import json
from typing import Any

from harness.contracts import CriterionResult

from .assistant import CATALOGUE, ITEM_FIELDS, FailureMode

CRITERIA = (
    FailureMode.MALFORMED_JSON,
    FailureMode.MISSING_FIELDS,
    FailureMode.HALLUCINATED_FIELDS,
    FailureMode.INVALID_VALUES,
)


def check_basket(text: str) -> tuple[CriterionResult, ...]:
    """Evaluate a reply against every basket criterion; later checks skip on bad JSON."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        failed = CriterionResult(FailureMode.MALFORMED_JSON.value, passed=False, reason=str(exc))
        return (failed,) + tuple(
            CriterionResult(mode.value, passed=False, reason="reply is not JSON", skipped=True)
            for mode in CRITERIA[1:]
        )

    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list) or not items:
        return (
            CriterionResult(FailureMode.MALFORMED_JSON.value, passed=False, reason="no items list"),
        ) + tuple(
            CriterionResult(mode.value, passed=False, reason="no items", skipped=True)
            for mode in CRITERIA[1:]
        )

    return (
        CriterionResult(FailureMode.MALFORMED_JSON.value, passed=True),
        _check_missing(items),
        _check_extra(items),
        _check_values(items),
    )


def first_failure(results: tuple[CriterionResult, ...]) -> str | None:
    for result in results:
        if not result.passed and not result.skipped:
            return result.name
    return None


def _check_missing(items: list[Any]) -> CriterionResult:
    for index, item in enumerate(items):
        missing = [name for name in ITEM_FIELDS if not isinstance(item, dict) or name not in item]
        if missing:
            return CriterionResult(
                FailureMode.MISSING_FIELDS.value,
                passed=False,
                reason=f"item {index} lacks {missing}",
            )
    return CriterionResult(FailureMode.MISSING_FIELDS.value, passed=True)


def _check_extra(items: list[Any]) -> CriterionResult:
    for index, item in enumerate(items):
        extra = sorted(set(item) - set(ITEM_FIELDS)) if isinstance(item, dict) else []
        if extra:
            return CriterionResult(
                FailureMode.HALLUCINATED_FIELDS.value,
                passed=False,
                reason=f"item {index} has unexpected {extra}",
            )
    return CriterionResult(FailureMode.HALLUCINATED_FIELDS.value, passed=True)


def _check_values(items: list[Any]) -> CriterionResult:
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        product = item.get("product")
        quantity = item.get("quantity")
        if product is not None and product not in CATALOGUE:
            return CriterionResult(
                FailureMode.INVALID_VALUES.value,
                passed=False,
                reason=f"item {index}: unknown product {product!r}",
            )
        if quantity is not None and (not isinstance(quantity, int) or quantity < 1):
            return CriterionResult(
                FailureMode.INVALID_VALUES.value,
                passed=False,
                reason=f"item {index}: quantity {quantity!r}",
            )
    return CriterionResult(FailureMode.INVALID_VALUES.value, passed=True)
