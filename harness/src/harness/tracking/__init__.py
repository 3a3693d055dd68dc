from .fakes import FakeTrackingClient, TrackedRun, TrackingCall
from .mlflow_client import MlflowTrackingClient

__all__ = [
    "FakeTrackingClient",
    "TrackedRun",
    "TrackingCall",
    "MlflowTrackingClient",
]
