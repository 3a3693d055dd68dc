import pytest

from harness.contracts import GoalConfig, SampleOutcome
from harness.engine import Budget, ExperimentSession, TerminationReason
from harness.factors import (
    FactorConfiguration,
    FactorSourceExhaustedError,
    FactorSourceResolutionError,
    MaterializedFactorSource,
    StreamingFactorSource,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _drain(session: ExperimentSession, outcome: SampleOutcome, *, on_sample=None) -> list:
    configurations = []
    while True:
        handle = session.next_sample_slot()
        if handle is None:
            return configurations
        configurations.append(handle.configuration)
        if on_sample is not None:
            on_sample(handle)
        session.record_result(handle, outcome)


def test_session_runs_planned_samples_and_freezes_one_specification():
    source = MaterializedFactorSource.from_configurations(
        "labels", [FactorConfiguration.of(label=label) for label in "ABC"]
    )
    session = ExperimentSession("shopping", samples=7, source=source, expires_in_days=30)

    seen = _drain(session, SampleOutcome.passed(tokens=10))

    assert [configuration["label"] for configuration in seen] == list("ABCABCA")
    spec = session.specification
    assert spec is not None
    assert session.is_finished
    assert spec.execution.samples_executed == 7
    assert spec.execution.termination_reason == "COMPLETED"
    assert spec.cost.total_tokens == 70
    assert spec.factor_source.name == "labels"
    assert spec.factor_source.kind == "cycling"
    assert spec.expiration.validity_days == 30
    assert session.next_sample_slot() is None
    assert session.specification is spec


def test_session_without_source_uses_empty_configuration():
    session = ExperimentSession("shopping", samples=2)

    seen = _drain(session, SampleOutcome.passed())

    assert [len(configuration) for configuration in seen] == [0, 0]
    assert session.specification.factor_source is None


def test_goal_stops_the_run_early():
    session = ExperimentSession(
        "shopping", samples=100, goal=GoalConfig(min_success_rate=0.9, min_samples=5)
    )

    _drain(session, SampleOutcome.passed())

    spec = session.specification
    assert spec.execution.samples_executed == 5
    assert spec.execution.termination_reason == TerminationReason.GOAL_ACHIEVED.value
    assert spec.execution.termination_details == "Goal reached: successRate >= 0.90"


def test_token_budget_is_checked_before_each_sample():
    session = ExperimentSession("shopping", samples=10, budget=Budget(tokens=1000))

    _drain(session, SampleOutcome.passed(tokens=400))

    spec = session.specification
    assert spec.execution.samples_executed == 3
    assert spec.execution.samples_planned == 10
    assert spec.execution.termination_reason == "TOKEN_BUDGET_EXHAUSTED"
    assert spec.cost.total_tokens == 1200


def test_time_budget_with_fake_clock():
    clock = FakeClock()
    session = ExperimentSession("shopping", samples=10, budget=Budget(time_ms=100), clock=clock)

    def advance(_handle) -> None:
        clock.now += 0.05

    _drain(session, SampleOutcome.passed(), on_sample=advance)

    spec = session.specification
    assert spec.execution.samples_executed == 2
    assert spec.execution.termination_reason == "TIME_BUDGET_EXHAUSTED"
    assert spec.cost.elapsed_ms == 100


def test_no_specification_when_no_sample_ran():
    clock = FakeClock()
    session = ExperimentSession("shopping", samples=10, budget=Budget(time_ms=100), clock=clock)
    clock.now = 1.0

    assert session.next_sample_slot() is None
    assert session.is_finished
    assert session.specification is None
    assert session.aggregator.termination_reason is TerminationReason.TIME_BUDGET_EXHAUSTED


def test_specification_waits_for_in_flight_samples():
    session = ExperimentSession("shopping", samples=2)

    first = session.next_sample_slot()
    second = session.next_sample_slot()
    assert session.next_sample_slot() is None

    session.record_result(first, SampleOutcome.passed())
    assert session.specification is None
    session.record_result(second, error=ValueError("boom"))

    spec = session.specification
    assert spec.statistics.successes == 1
    assert spec.statistics.failure_distribution == {"ValueError": 1}


def test_cost_includes_samples_still_in_flight_when_slots_run_out():
    clock = FakeClock()
    session = ExperimentSession("shopping", samples=2, clock=clock)

    first = session.next_sample_slot()
    second = session.next_sample_slot()
    clock.now = 0.1
    assert session.next_sample_slot() is None
    assert session.aggregator.termination_reason is None

    clock.now = 5.0
    session.record_result(first, SampleOutcome.passed())
    session.record_result(second, SampleOutcome.passed())

    spec = session.specification
    assert spec.execution.termination_reason == "COMPLETED"
    assert spec.cost.elapsed_ms == 5000
    assert spec.cost.avg_time_per_sample_ms == 2500


def test_time_budget_cost_includes_samples_still_in_flight():
    clock = FakeClock()
    session = ExperimentSession("shopping", samples=10, budget=Budget(time_ms=100), clock=clock)

    handle = session.next_sample_slot()
    clock.now = 0.2
    assert session.next_sample_slot() is None
    clock.now = 0.3
    session.record_result(handle, SampleOutcome.passed())

    spec = session.specification
    assert spec.execution.termination_reason == "TIME_BUDGET_EXHAUSTED"
    assert spec.cost.elapsed_ms == 300


def test_record_result_accepts_each_slot_once():
    session = ExperimentSession("shopping", samples=2)
    handle = session.next_sample_slot()
    session.record_result(handle, SampleOutcome.failed("missing_fields"))

    with pytest.raises(ValueError, match="not outstanding"):
        session.record_result(handle, SampleOutcome.passed())
    with pytest.raises(ValueError, match="outcome or an error"):
        session.record_result(session.next_sample_slot())


def test_exhausted_sequential_source_fails_the_run():
    source = StreamingFactorSource(
        "short", "tests.Short#short", lambda: iter([{"label": "A"}, {"label": "B"}])
    )
    session = ExperimentSession("shopping", samples=5, source=source)

    with pytest.raises(FactorSourceExhaustedError):
        _drain(session, SampleOutcome.passed())

    assert isinstance(session.error, FactorSourceExhaustedError)
    assert session.is_finished
    assert session.specification is None
    assert session.next_sample_slot() is None


def test_malformed_streaming_element_fails_the_run():
    source = StreamingFactorSource(
        "broken", "tests.Broken#broken", lambda: iter([{"label": "A"}, "not-a-mapping"])
    )
    session = ExperimentSession("shopping", samples=5, source=source)

    with pytest.raises(FactorSourceResolutionError, match="element 1"):
        _drain(session, SampleOutcome.passed())

    assert isinstance(session.error, FactorSourceResolutionError)
    assert session.is_finished
    assert session.specification is None
    assert session.next_sample_slot() is None


def test_close_stops_handing_out_slots():
    session = ExperimentSession("shopping", samples=10)
    handle = session.next_sample_slot()

    session.close()

    assert session.next_sample_slot() is None
    assert not session.is_finished
    session.record_result(handle, SampleOutcome.passed())
    spec = session.specification
    assert spec.execution.samples_executed == 1
    assert spec.execution.termination_details == "Session closed after 0 of 10 samples"
    assert session.pacer.interrupted
