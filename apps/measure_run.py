from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from harness.api import load_baseline, run_from_yaml
from harness.configuration import parse_dotpath_assignment
from harness.contracts import TrackingClient
from harness.orchestration.registry import DictUseCaseRegistry
from harness.spec import describe_expiration
from harness.tracking import FakeTrackingClient, MlflowTrackingClient
from plugins.shopping_basket import FACTOR_SOURCES, ShoppingBasketUseCase


def _resolve_tracking_uri() -> str | None:
    return os.environ.get("MLFLOW_TRACKING_URI")


def _resolve_experiment_name() -> str:
    return os.environ.get("MLFLOW_EXPERIMENT", "baseline-harness-dev")


def build_registry() -> DictUseCaseRegistry:
    return DictUseCaseRegistry.of(ShoppingBasketUseCase())


def build_tracking() -> TrackingClient:
    tracking_uri = _resolve_tracking_uri()
    if tracking_uri is None:
        return FakeTrackingClient()
    return MlflowTrackingClient(
        tracking_uri=tracking_uri,
        experiment_name=_resolve_experiment_name(),
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a baseline experiment from YAML config.")
    parser.add_argument("config_yaml", type=Path, help="Path to experiment YAML")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="PATH=VALUE",
        help="Override a config value, e.g. --set experiment.samples=50 (repeatable)",
    )
    parser.add_argument(
        "--check",
        dest="check_spec",
        type=Path,
        default=None,
        help="Only load an existing specification and report its expiration status",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.check_spec is not None:
        spec, status = load_baseline(args.check_spec, require_fingerprint=True)
        print(f"{spec.use_case_id}: minPassRate={spec.min_pass_rate:.4f}")
        print(describe_expiration(status, spec.expiration) or type(status).__name__)
        return

    overrides = dict(parse_dotpath_assignment(item) for item in args.overrides)
    result = run_from_yaml(
        args.config_yaml,
        registry=build_registry(),
        factor_sources=FACTOR_SOURCES,
        tracking=build_tracking(),
        overrides=overrides,
    )
    print(result)


if __name__ == "__main__":
    main()
