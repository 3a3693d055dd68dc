from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from harness.contracts import RunStatus


@dataclass(frozen=True, slots=True)
class TrackingCall:
    """Record of a tracking call for assertions in tests."""

    name: str
    args: tuple[Any, ...]
    kwargs: dict[str, Any]


@dataclass(slots=True)
class TrackedRun:
    """Everything logged into one fake run, merged across calls."""

    run_id: str
    run_name: str
    tags: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)
    artifacts: list[tuple[str, str | None]] = field(default_factory=list)
    status: RunStatus | None = None


class FakeTrackingClient:
    """
    In-memory TrackingClient for unit tests.

    ``calls`` keeps the raw call log; ``runs`` holds the merged view per run,
    which is what most experiment assertions need.
    """

    def __init__(self, *, base_artifact_uri: str | None = None) -> None:
        self._base_artifact_uri = base_artifact_uri
        self._active_run_id: str | None = None
        self._run_counter = 0
        self._calls: list[TrackingCall] = []
        self._runs: dict[str, TrackedRun] = {}

    @property
    def active_run_id(self) -> str | None:
        return self._active_run_id

    @property
    def calls(self) -> list[TrackingCall]:
        return list(self._calls)

    @property
    def runs(self) -> dict[str, TrackedRun]:
        return dict(self._runs)

    def run(self, run_id: str) -> TrackedRun:
        return self._runs[run_id]

    def start_run(self, *, run_name: str, tags: Mapping[str, str]) -> str:
        self._ensure_no_active_run()
        self._run_counter += 1
        run_id = f"run_{self._run_counter}"
        self._active_run_id = run_id
        self._runs[run_id] = TrackedRun(run_id=run_id, run_name=run_name, tags=dict(tags))
        self._record("start_run", run_name=run_name, tags=dict(tags))
        return run_id

    def end_run(self, *, status: RunStatus) -> None:
        self._active().status = status
        self._record("end_run", status=status)
        self._active_run_id = None

    def log_param(self, key: str, value: Any) -> None:
        self._active().params[key] = value
        self._record("log_param", key=key, value=value)

    def log_params(self, params: Mapping[str, Any]) -> None:
        self._active().params.update(params)
        self._record("log_params", params=dict(params))

    def log_metric(self, key: str, value: float, *, step: int | None = None) -> None:
        self._active().metrics[key] = value
        self._record("log_metric", key=key, value=value, step=step)

    def log_metrics(self, metrics: Mapping[str, float], *, step: int | None = None) -> None:
        self._active().metrics.update(metrics)
        self._record("log_metrics", metrics=dict(metrics), step=step)

    def set_tags(self, tags: Mapping[str, str]) -> None:
        self._active().tags.update(tags)
        self._record("set_tags", tags=dict(tags))

    def log_artifact(self, local_path: str, *, artifact_path: str | None = None) -> None:
        self._active().artifacts.append((local_path, artifact_path))
        self._record("log_artifact", local_path=local_path, artifact_path=artifact_path)

    def get_artifact_uri(self) -> str | None:
        if self._active_run_id is None or self._base_artifact_uri is None:
            return None
        return f"{self._base_artifact_uri}/{self._active_run_id}"

    def _record(self, name: str, **kwargs: Any) -> None:
        self._calls.append(TrackingCall(name=name, args=(), kwargs=kwargs))

    def _active(self) -> TrackedRun:
        if self._active_run_id is None:
            raise RuntimeError("No active run. Call start_run first.")
        return self._runs[self._active_run_id]

    def _ensure_no_active_run(self) -> None:
        if self._active_run_id is not None:
            raise RuntimeError("A run is already active.")
