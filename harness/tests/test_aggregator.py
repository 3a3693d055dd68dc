import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from harness.contracts import CriterionResult, SampleOutcome
from harness.engine import ResultAggregator, TerminationReason


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _aggregator(successes: int, failures: int, planned: int | None = None) -> ResultAggregator:
    aggregator = ResultAggregator("shopping", planned or successes + failures)
    for _ in range(successes):
        aggregator.record_success()
    for _ in range(failures):
        aggregator.record_failure(category="malformed_json")
    return aggregator


def test_statistics_for_nine_hundred_of_a_thousand():
    aggregator = _aggregator(900, 100)

    assert aggregator.samples_executed == 1000
    assert aggregator.observed_rate == pytest.approx(0.9)
    assert aggregator.standard_error == pytest.approx(0.009487, abs=1e-6)
    lower, upper = aggregator.confidence_interval_95
    assert lower == pytest.approx(0.8814, abs=1e-4)
    assert upper == pytest.approx(0.9186, abs=1e-4)
    assert aggregator.failure_distribution == {"malformed_json": 100}


def test_statistics_before_any_sample():
    aggregator = ResultAggregator("shopping", 10)

    assert aggregator.observed_rate == 0.0
    assert aggregator.standard_error == 0.0
    assert aggregator.confidence_interval_95 == (0.0, 0.0)
    assert aggregator.criteria_all_passed_rate is None
    assert aggregator.remaining_samples == 10


def test_standard_error_is_zero_with_a_single_sample():
    aggregator = _aggregator(1, 0)

    assert aggregator.standard_error == 0.0
    assert aggregator.confidence_interval_95 == (1.0, 1.0)


def test_confidence_interval_is_clamped():
    aggregator = _aggregator(9, 1)

    lower, upper = aggregator.confidence_interval_95

    assert lower == pytest.approx(0.714, abs=1e-3)
    assert upper == 1.0


def test_failure_categories():
    aggregator = ResultAggregator("shopping", 4)

    aggregator.record_failure()
    aggregator.record_failure(SampleOutcome.failed("missing_fields"))
    aggregator.record_exception(TimeoutError("slow"))
    aggregator.record_exception(TimeoutError("slower"))

    assert aggregator.failures == 4
    assert aggregator.failure_distribution == {
        "unknown": 1,
        "missing_fields": 1,
        "TimeoutError": 2,
    }


def test_criteria_pass_rates_count_skipped_results():
    aggregator = ResultAggregator("shopping", 3)

    aggregator.record_criteria(
        [CriterionResult("valid_json", True), CriterionResult("fields", True)]
    )
    aggregator.record_criteria(
        [CriterionResult("valid_json", True), CriterionResult("fields", False, "missing")]
    )
    aggregator.record_criteria(
        [
            CriterionResult("valid_json", False, "bad json"),
            CriterionResult("fields", False, "not json", skipped=True),
        ]
    )

    assert aggregator.criteria_pass_rates == {
        "valid_json": pytest.approx(2 / 3),
        "fields": pytest.approx(1 / 3),
    }
    assert aggregator.criteria_all_passed_rate == pytest.approx(1 / 3)
    stats = aggregator.criteria_stats["fields"]
    assert (stats.passed, stats.failed, stats.skipped) == (1, 1, 1)
    assert stats.failure_messages == ["missing"]


def test_tokens_and_cost_averages():
    clock = FakeClock()
    aggregator = ResultAggregator("shopping", 4, clock=clock)

    for tokens in (100, 200, 300, 400):
        aggregator.record_success()
        aggregator.add_tokens(tokens)
    aggregator.add_tokens(-5)
    clock.now = 2.0

    assert aggregator.total_tokens == 1000
    assert aggregator.avg_tokens_per_sample == 250
    assert aggregator.elapsed_ms == 2000
    assert aggregator.avg_time_per_sample_ms == 500


def test_sample_latency_averages_reported_elapsed_times_only():
    aggregator = ResultAggregator("shopping", 4)

    assert aggregator.avg_sample_latency_ms is None
    aggregator.record_success(SampleOutcome.passed(elapsed_ms=30.0))
    aggregator.record_failure(SampleOutcome.failed("invalid_values", elapsed_ms=50.0))
    aggregator.record_success(SampleOutcome.passed())
    aggregator.record_exception(TimeoutError())

    assert aggregator.avg_sample_latency_ms == 40
    assert aggregator.snapshot().avg_sample_latency_ms == 40


def test_termination_first_call_wins_and_freezes_elapsed_time():
    clock = FakeClock()
    aggregator = ResultAggregator("shopping", 10, clock=clock)
    aggregator.record_success()
    clock.now = 1.0

    assert aggregator.set_terminated(TerminationReason.TOKEN_BUDGET_EXHAUSTED, "tokens")
    assert not aggregator.set_completed()
    clock.now = 5.0

    assert aggregator.termination_reason is TerminationReason.TOKEN_BUDGET_EXHAUSTED
    assert aggregator.termination_details == "tokens"
    assert aggregator.elapsed_ms == 1000
    assert aggregator.is_complete


def test_snapshot_is_consistent():
    aggregator = _aggregator(3, 1)

    snapshot = aggregator.snapshot()
    aggregator.record_success()

    assert snapshot.samples_executed == 4
    assert snapshot.observed_rate == pytest.approx(0.75)
    assert aggregator.samples_executed == 5


def test_concurrent_recording_loses_no_updates():
    aggregator = ResultAggregator("shopping", 4000)
    barrier = threading.Barrier(8)

    def worker(index: int) -> None:
        barrier.wait()
        for _ in range(500):
            if index % 2:
                aggregator.record_success()
            else:
                aggregator.record_failure(category="flaky")
            aggregator.add_tokens(1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(8)))

    assert aggregator.samples_executed == 4000
    assert aggregator.successes == 2000
    assert aggregator.failure_distribution == {"flaky": 2000}
    assert aggregator.total_tokens == 4000
