import pytest

from harness.tracking.fakes import FakeTrackingClient


def test_fake_tracking_client_records_calls_in_order():
    client = FakeTrackingClient(base_artifact_uri="file:///tmp/artifacts")

    run_id = client.start_run(run_name="demo", tags={"use_case_id": "shopping"})
    client.log_param("samples", 100)
    client.log_metric("observed_rate", 0.92, step=1)
    client.set_tags({"termination_reason": "COMPLETED"})
    client.log_artifact("/tmp/shopping.yaml", artifact_path="specs")

    assert client.get_artifact_uri() == f"file:///tmp/artifacts/{run_id}"

    client.end_run(status="ok")

    names = [call.name for call in client.calls]
    assert names == ["start_run", "log_param", "log_metric", "set_tags", "log_artifact", "end_run"]
    assert client.active_run_id is None
    assert client.get_artifact_uri() is None


def test_fake_tracking_client_merges_run_view():
    client = FakeTrackingClient()

    run_id = client.start_run(run_name="demo", tags={"mode": "measure"})
    client.log_params({"samples": 10, "token_budget": 0})
    client.log_metrics({"observed_rate": 0.5, "standard_error": 0.1})
    client.set_tags({"termination_reason": "GOAL_ACHIEVED"})
    client.end_run(status="ok")

    run = client.run(run_id)
    assert run.params == {"samples": 10, "token_budget": 0}
    assert run.metrics["observed_rate"] == 0.5
    assert run.tags == {"mode": "measure", "termination_reason": "GOAL_ACHIEVED"}
    assert run.status == "ok"


def test_fake_tracking_client_strict_lifecycle():
    client = FakeTrackingClient()

    with pytest.raises(RuntimeError, match="No active run"):
        client.log_metric("observed_rate", 1.0)

    client.start_run(run_name="demo", tags={})

    with pytest.raises(RuntimeError, match="already active"):
        client.start_run(run_name="dup", tags={})

    client.end_run(status="ok")

    with pytest.raises(RuntimeError, match="No active run"):
        client.end_run(status="failed")
