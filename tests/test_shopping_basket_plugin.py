from __future__ import annotations

import json
import logging
import random
from pathlib import Path

import pytest

from harness.api import run_experiment, run_explore
from harness.configuration import load_experiment_config, load_experiment_config_dict
from harness.contracts import SampleContext
from harness.factors import FactorConfiguration, scope_of
from harness.orchestration.registry import DictUseCaseRegistry
from harness.spec import load_specification
from harness.tracking.fakes import FakeTrackingClient
from plugins.shopping_basket import FACTOR_SOURCES, REQUESTS, ShoppingBasketUseCase
from plugins.shopping_basket.assistant import FailureMode, MockShoppingAssistant
from plugins.shopping_basket.checks import check_basket, first_failure

CONFIGS_DIR = Path(__file__).resolve().parents[1] / "apps" / "configs"


def _context(params: dict, index: int = 0) -> SampleContext:
    return SampleContext(
        run_id="run_test",
        sample_index=index,
        configuration=FactorConfiguration.of(request=REQUESTS[0]),
        params=params,
        logger=logging.getLogger("test"),
    )


def test_shopping_use_case_info() -> None:
    info = ShoppingBasketUseCase().info
    assert info.key == "shopping.basket"
    assert info.version == "0.1.0"
    assert info.description


def test_assistant_always_succeeds_at_full_success_rate() -> None:
    assistant = MockShoppingAssistant(success_rate=1.0, rng=random.Random(1))

    for _ in range(20):
        reply = assistant.respond("milk and bread please")
        assert reply.injected_failure is None
        assert 200 <= reply.tokens <= 500
        items = json.loads(reply.text)["items"]
        assert {item["product"] for item in items} == {"milk", "bread"}


@pytest.mark.parametrize("mode", list(FailureMode))
def test_checks_detect_every_injected_failure_mode(mode: FailureMode) -> None:
    rng = random.Random(0)
    assistant = MockShoppingAssistant(success_rate=0.0, rng=rng)

    replies = [assistant.respond("eggs") for _ in range(200)]
    reply = next(item for item in replies if item.injected_failure is mode)

    assert first_failure(check_basket(reply.text)) == mode.value


def test_checks_skip_field_criteria_when_reply_is_not_json() -> None:
    results = check_basket("{not json")

    assert results[0].name == "malformed_json"
    assert not results[0].passed
    assert all(result.skipped for result in results[1:])


def test_sample_is_deterministic_for_a_seed() -> None:
    use_case = ShoppingBasketUseCase()
    params = use_case.validate_params({"seed": 5})
    configuration = FactorConfiguration.of(request=REQUESTS[1])

    first = use_case.sample(configuration, context=_context(params, index=3))
    second = use_case.sample(configuration, context=_context(params, index=3))

    assert first.success == second.success
    assert first.tokens == second.tokens
    assert len(first.criteria) == 4
    assert first.elapsed_ms is not None and first.elapsed_ms >= 0.0


def test_covariates_come_from_params() -> None:
    use_case = ShoppingBasketUseCase()
    params = use_case.validate_params({"assistant": {"model": "m-2", "region": "us"}})

    assert use_case.covariates(params) == {"model": "m-2", "region": "us"}


def test_factor_sources_are_registered_under_use_case_scope() -> None:
    scope = scope_of(ShoppingBasketUseCase)

    assert FACTOR_SOURCES.get(f"{scope}#standard_requests").kind == "cycling"
    assert FACTOR_SOURCES.get(f"{scope}#customer_requests").kind == "sequential"
    assert FACTOR_SOURCES.get(f"{scope}#temperature_sweep").kind == "cycling"


def test_measure_run_produces_baseline(tmp_path: Path) -> None:
    config = load_experiment_config(
        CONFIGS_DIR / "shopping_basket.yaml",
        overrides={
            "experiment.samples": 60,
            "experiment.pacing.max_requests_per_second": 0,
            "output.specs_dir": str(tmp_path),
        },
    )
    tracking = FakeTrackingClient()

    result = run_experiment(
        config,
        registry=DictUseCaseRegistry.of(ShoppingBasketUseCase()),
        factor_sources=FACTOR_SOURCES,
        tracking=tracking,
    )

    assert result.status == "ok", result.message
    spec = load_specification(result.spec_path, require_fingerprint=True)
    assert spec.use_case_id == "shopping.basket.v1"
    assert spec.execution.samples_executed == 60
    assert spec.covariates == {"model": "mock-basket-1", "region": "eu-west"}
    assert set(spec.statistics.criteria_pass_rates) == {mode.value for mode in FailureMode}
    assert 0.0 <= spec.min_pass_rate <= spec.observed_rate
    assert spec.expiration.validity_days == 30
    assert spec.cost.avg_sample_latency_ms is not None
    assert tracking.run(result.run_id).artifacts == [(result.spec_path, "specs")]


def test_customer_requests_run_out_before_large_sample_counts(tmp_path: Path) -> None:
    config = load_experiment_config_dict(
        {
            "use_case": {"key": "shopping.basket"},
            "experiment": {
                "samples": len(REQUESTS) * 3 + 1,
                "factor_source": "customer_requests",
            },
            "output": {"specs_dir": str(tmp_path)},
        }
    )

    result = run_experiment(
        config,
        registry=DictUseCaseRegistry.of(ShoppingBasketUseCase()),
        factor_sources=FACTOR_SOURCES,
    )

    assert result.status == "failed"
    assert "exhausted" in result.message


def test_explore_run_covers_temperature_sweep(tmp_path: Path) -> None:
    config = load_experiment_config(
        CONFIGS_DIR / "shopping_basket_explore.yaml",
        overrides={"output.specs_dir": str(tmp_path), "experiment.samples_per_config": 4},
    )

    result = run_explore(
        config,
        registry=DictUseCaseRegistry.of(ShoppingBasketUseCase()),
        factor_sources=FACTOR_SOURCES,
    )

    assert result.failures == []
    assert len(result.results) == 6
    assert all(item.specification.execution.samples_executed == 4 for item in result.results)
    assert len({item.spec_path for item in result.results}) == 6
