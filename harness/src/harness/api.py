from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from harness.configuration import (
    ConfigError,
    coerce_mapping,
    deep_merge,
    load_experiment_config,
    variant_id_from_factors,
)
from harness.contracts import (
    ConfigurableUseCase,
    CovariateProvider,
    ExperimentConfig,
    ExperimentResult,
    ExploreResult,
    ExploreVariantFailure,
    RunStatus,
    SampleContext,
    SampleOutcome,
    TrackingClient,
    UseCase,
    UseCaseNotFoundError,
    UseCaseRegistry,
)
from harness.engine import ExperimentSession, GoalEvaluator, Pacer
from harness.factors import (
    FactorSource,
    FactorSourceExhaustedError,
    FactorSourceRegistry,
    FactorSourceResolutionError,
    MaterializedFactorSource,
    grid,
    scope_of,
)
from harness.runtime import resolve_specs_root
from harness.spec import (
    ExpirationStatus,
    Specification,
    compute_footprint,
    describe_expiration,
    evaluate_expiration,
    load_specification,
    specification_filename,
    write_specification,
)
from harness.tracking import FakeTrackingClient


@dataclass(frozen=True, slots=True)
class _Prepared:
    use_case: UseCase
    use_case_id: str
    params: dict[str, Any]
    source: FactorSource | None
    covariates: dict[str, str]


def run_experiment(
    config: ExperimentConfig,
    *,
    registry: UseCaseRegistry,
    factor_sources: FactorSourceRegistry | None = None,
    tracking: TrackingClient | None = None,
) -> ExperimentResult:
    """
    Run one measure experiment and freeze its baseline.

    Configuration and factor source problems raise before any sample runs. A
    missing use case, a tracking start failure or a sequential source running
    dry come back as a failed ExperimentResult.
    """
    if config.experiment.mode != "measure":
        raise ConfigError("run_experiment() runs measure experiments; use run_explore()")

    try:
        use_case = registry.get(config.use_case.key)
    except UseCaseNotFoundError:
        return _not_started(config.use_case.key, f"Use case not found: {config.use_case.key}")

    prepared = _prepare(config, use_case, factor_sources)
    footprint = compute_footprint(prepared.use_case_id, None, list(prepared.covariates))
    if config.output.footprint_naming:
        filename = specification_filename(prepared.use_case_id, footprint, prepared.covariates)
    else:
        filename = specification_filename(prepared.use_case_id)
    spec_path = resolve_specs_root(config.output.specs_dir) / filename

    return _execute(
        config,
        prepared,
        source=prepared.source,
        samples=config.experiment.samples,
        pacer=Pacer.from_config(config.experiment.pacing),
        footprint=footprint,
        spec_path=spec_path,
        tracking=tracking or FakeTrackingClient(),
        extra_tags={},
    )


def run_explore(
    config: ExperimentConfig,
    *,
    registry: UseCaseRegistry,
    factor_sources: FactorSourceRegistry | None = None,
    tracking: TrackingClient | None = None,
) -> ExploreResult:
    """
    Run ``samples_per_config`` samples for every factor configuration.

    Each configuration gets its own aggregator and its own specification file;
    pacing is shared so rate limits hold across configuration boundaries.
    """
    if config.experiment.mode != "explore":
        raise ConfigError("run_explore() needs experiment.mode: explore")

    use_case = registry.get(config.use_case.key)
    prepared = _prepare(config, use_case, factor_sources)
    if not isinstance(prepared.source, MaterializedFactorSource):
        raise ConfigError("explore mode needs a cycling (list-returning) factor source")

    explore_id = f"explore-{datetime.now(UTC).strftime('%Y%m%dT%H%M%S')}-{uuid.uuid4().hex[:8]}"
    explore_dir = (
        resolve_specs_root(config.output.specs_dir)
        / "explore"
        / specification_filename(prepared.use_case_id).removesuffix(".yaml")
    )
    pacer = Pacer.from_config(config.experiment.pacing)
    tracking_client = tracking or FakeTrackingClient()

    started = datetime.now(UTC)
    results: list[ExperimentResult] = []
    failures: list[ExploreVariantFailure] = []
    configurations = prepared.source.configurations()

    for configuration in configurations:
        factors = configuration.as_dict()
        variant_id = variant_id_from_factors(factors)
        try:
            footprint = compute_footprint(prepared.use_case_id, factors, list(prepared.covariates))
            variant_source = MaterializedFactorSource.from_configurations(
                f"{prepared.source.name}:{variant_id}", [configuration]
            )
            results.append(
                _execute(
                    config,
                    prepared,
                    source=variant_source,
                    samples=config.experiment.samples_per_config,
                    pacer=pacer,
                    footprint=footprint,
                    spec_path=explore_dir
                    / specification_filename(prepared.use_case_id, footprint, prepared.covariates),
                    tracking=tracking_client,
                    extra_tags={
                        "explore_id": explore_id,
                        "variant_id": variant_id,
                        "variant_summary": configuration.describe(),
                    },
                )
            )
        except Exception as exc:
            failures.append(
                ExploreVariantFailure(variant_id=variant_id, factors=factors, error=str(exc))
            )

    ended = datetime.now(UTC)
    summary = {
        "explore_id": explore_id,
        "use_case_id": prepared.use_case_id,
        "started_at_utc": started.isoformat(),
        "ended_at_utc": ended.isoformat(),
        "duration_s": (ended - started).total_seconds(),
        "variant_count": len(configurations),
        "success_count": len(results),
        "failed_count": len(failures),
        "results": [_result_summary(item) for item in results],
        "failures": [asdict(item) for item in failures],
    }
    summary_path = explore_dir / f"{explore_id}.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with summary_path.open("w", encoding="utf-8") as handle:
        json.dump(summary, handle, indent=2, sort_keys=True, default=str)

    return ExploreResult(
        explore_id=explore_id,
        started_at_utc=started.isoformat(),
        ended_at_utc=ended.isoformat(),
        duration_s=(ended - started).total_seconds(),
        results=results,
        failures=failures,
        metadata={
            "variant_count": len(configurations),
            "explore_dir": str(explore_dir),
            "explore_summary_path": str(summary_path),
        },
    )


def run_from_yaml(
    config_yaml: str | Path,
    *,
    registry: UseCaseRegistry,
    factor_sources: FactorSourceRegistry | None = None,
    tracking: TrackingClient | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ExperimentResult | ExploreResult:
    config = load_experiment_config(config_yaml, overrides=overrides)
    if config.experiment.mode == "explore":
        return run_explore(
            config, registry=registry, factor_sources=factor_sources, tracking=tracking
        )
    return run_experiment(
        config, registry=registry, factor_sources=factor_sources, tracking=tracking
    )


def load_baseline(
    path: str | Path,
    *,
    at: datetime | None = None,
    require_fingerprint: bool = False,
) -> tuple[Specification, ExpirationStatus]:
    """Load a specification, verify its fingerprint and log any expiration warning."""
    spec = load_specification(path, require_fingerprint=require_fingerprint)
    status = evaluate_expiration(spec, at)
    if status.requires_warning:
        logging.getLogger("baseline_harness.spec").warning(
            "%s: %s", spec.use_case_id, describe_expiration(status, spec.expiration)
        )
    return spec, status


def _prepare(
    config: ExperimentConfig,
    use_case: UseCase,
    factor_sources: FactorSourceRegistry | None,
) -> _Prepared:
    settings = config.experiment
    params = _resolve_params(config, use_case)

    source: FactorSource | None = None
    if settings.factor_source is not None:
        if factor_sources is None:
            raise ConfigError(
                f"experiment.factor_source '{settings.factor_source}' "
                "needs a factor source registry"
            )
        source = factor_sources.resolve(
            settings.factor_source,
            declaring_scope=settings.scope,
            fallback_scope=scope_of(use_case),
        )
    elif settings.factors is not None:
        source = MaterializedFactorSource.from_configurations(
            "experiment.factors", grid(**settings.factors)
        )

    if isinstance(source, MaterializedFactorSource):
        # materialize now so empty or malformed sources fail before sampling
        source.configurations()

    covariates: dict[str, str] = {}
    if isinstance(use_case, CovariateProvider):
        covariates = {str(key): str(value) for key, value in use_case.covariates(params).items()}

    return _Prepared(
        use_case=use_case,
        use_case_id=settings.use_case_id or use_case.info.key,
        params=params,
        source=source,
        covariates=covariates,
    )


def _resolve_params(config: ExperimentConfig, use_case: UseCase) -> dict[str, Any]:
    if not isinstance(use_case, ConfigurableUseCase):
        return dict(config.params)
    defaults = coerce_mapping(use_case.default_params())
    merged = deep_merge(defaults, config.params)
    return coerce_mapping(use_case.validate_params(merged, strict=config.strict))


def _execute(
    config: ExperimentConfig,
    prepared: _Prepared,
    *,
    source: FactorSource | None,
    samples: int,
    pacer: Pacer,
    footprint: str,
    spec_path: Path,
    tracking: TrackingClient,
    extra_tags: Mapping[str, str],
) -> ExperimentResult:
    settings = config.experiment
    tags = _build_run_tags(config, prepared)
    tags.update(extra_tags)
    start = datetime.now(UTC)
    try:
        run_id = tracking.start_run(run_name=f"{prepared.use_case_id}:{settings.mode}", tags=tags)
    except Exception as exc:
        return _not_started(prepared.use_case.info.key, f"Tracking start failed: {exc}")

    logger = logging.getLogger(f"baseline_harness.experiment.{run_id}")
    end_status: RunStatus = "failed"
    try:
        session = ExperimentSession.from_settings(
            settings,
            use_case_id=prepared.use_case_id,
            source=source,
            pacer=pacer,
            samples=samples,
            footprint=footprint,
            covariates=prepared.covariates,
            logger=logger,
        )
        tracking.log_params(_build_run_params(config, prepared, samples, pacer, source))
        logger.info(
            "Running %d samples of %s (%s)",
            samples,
            prepared.use_case_id,
            source.name if source is not None else "no factors",
        )

        try:
            _drive(
                session,
                prepared,
                run_id=run_id,
                logger=logger,
                concurrency=settings.concurrency,
            )
        except (FactorSourceExhaustedError, FactorSourceResolutionError) as exc:
            end = datetime.now(UTC)
            return ExperimentResult(
                run_id=run_id,
                status="failed",
                started_at_utc=start.isoformat(),
                ended_at_utc=end.isoformat(),
                duration_s=(end - start).total_seconds(),
                outputs=_build_outputs(session, tracking),
                message=str(exc),
            )

        spec = session.specification
        reason = session.aggregator.termination_reason
        tracking.set_tags({"termination_reason": reason.value if reason is not None else "NONE"})
        tracking.log_metrics(_build_run_metrics(session, spec))

        status: RunStatus = "ok"
        message: str | None = None
        written: Path | None = None
        if spec is None:
            status = "skipped"
            message = "No samples executed; no specification produced"
        else:
            try:
                written = write_specification(
                    spec, spec_path, fingerprint=config.output.fingerprint
                )
            except OSError as exc:
                logger.warning("Failed to write specification to %s", spec_path, exc_info=True)
                status = "failed"
                message = f"Specification write failed: {exc}"
            else:
                _log_spec_artifact_best_effort(tracking, written, run_id)

        end = datetime.now(UTC)
        end_status = status
        return ExperimentResult(
            run_id=run_id,
            status=status,
            started_at_utc=start.isoformat(),
            ended_at_utc=end.isoformat(),
            duration_s=(end - start).total_seconds(),
            termination_reason=reason.value if reason is not None else None,
            specification=spec,
            spec_path=str(written) if written is not None else None,
            outputs=_build_outputs(session, tracking),
            message=message,
        )
    finally:
        tracking.end_run(status=end_status)


def _drive(
    session: ExperimentSession,
    prepared: _Prepared,
    *,
    run_id: str,
    logger: logging.Logger,
    concurrency: int,
) -> None:
    if concurrency <= 1:
        _sample_loop(session, prepared, run_id=run_id, logger=logger)
        return

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="harness-sample") as pool:
        futures = [
            pool.submit(_sample_loop, session, prepared, run_id=run_id, logger=logger)
            for _ in range(concurrency)
        ]
        try:
            for future in futures:
                future.result()
        except BaseException:
            session.close()
            raise


def _sample_loop(
    session: ExperimentSession,
    prepared: _Prepared,
    *,
    run_id: str,
    logger: logging.Logger,
) -> None:
    while True:
        handle = session.next_sample_slot()
        if handle is None:
            return
        context = SampleContext(
            run_id=run_id,
            sample_index=handle.index,
            configuration=handle.configuration,
            params=prepared.params,
            logger=logger,
        )
        try:
            outcome = prepared.use_case.sample(handle.configuration, context=context)
        except Exception as exc:
            session.record_result(handle, error=exc)
            continue
        if not isinstance(outcome, SampleOutcome):
            session.record_result(
                handle,
                error=TypeError(f"sample() returned {type(outcome).__name__}, not SampleOutcome"),
            )
            continue
        session.record_result(handle, outcome)


def _build_run_tags(config: ExperimentConfig, prepared: _Prepared) -> dict[str, str]:
    tags = {
        "use_case_key": config.use_case.key,
        "use_case_id": prepared.use_case_id,
        "mode": config.experiment.mode,
    }
    if config.experiment.experiment_id:
        tags["experiment_id"] = config.experiment.experiment_id
    info = prepared.use_case.info
    tags["use_case_name"] = info.name
    tags["use_case_version"] = info.version
    for key, value in prepared.covariates.items():
        tags[f"covariate.{key}"] = value
    return tags


def _build_run_params(
    config: ExperimentConfig,
    prepared: _Prepared,
    samples: int,
    pacer: Pacer,
    source: FactorSource | None,
) -> dict[str, object]:
    settings = config.experiment
    params: dict[str, object] = {
        "samples": samples,
        "time_budget_ms": settings.time_budget_ms,
        "token_budget": settings.token_budget,
        "pacing_delay_ms": pacer.delay_ms,
        "concurrency": settings.concurrency,
        "expires_in_days": settings.expires_in_days,
    }
    if settings.goal.has_goal:
        params["goal"] = GoalEvaluator(settings.goal).describe()
    if source is not None:
        params["factor_source"] = source.name
        params["factor_source_kind"] = source.kind
    for key, value in prepared.params.items():
        params[f"params.{key}"] = value
    return params


def _build_run_metrics(
    session: ExperimentSession, spec: Specification | None
) -> dict[str, float]:
    snapshot = session.aggregator.snapshot()
    metrics = {
        "samples_executed": float(snapshot.samples_executed),
        "successes": float(snapshot.successes),
        "failures": float(snapshot.failures),
        "observed_rate": snapshot.observed_rate,
        "standard_error": snapshot.standard_error,
        "ci95_lower": snapshot.confidence_interval_95[0],
        "ci95_upper": snapshot.confidence_interval_95[1],
        "total_tokens": float(snapshot.total_tokens),
        "elapsed_ms": float(snapshot.elapsed_ms),
    }
    if snapshot.avg_sample_latency_ms is not None:
        metrics["avg_sample_latency_ms"] = float(snapshot.avg_sample_latency_ms)
    if spec is not None:
        metrics["min_pass_rate"] = spec.min_pass_rate
    return metrics


def _build_outputs(session: ExperimentSession, tracking: TrackingClient) -> dict[str, object]:
    outputs: dict[str, object] = {
        "use_case_id": session.use_case_id,
        "samples_planned": session.samples_planned,
        "samples_executed": session.aggregator.samples_executed,
        "observed_rate": session.aggregator.observed_rate,
    }
    if session.footprint:
        outputs["footprint"] = session.footprint
    artifact_uri = tracking.get_artifact_uri()
    if artifact_uri is not None:
        outputs["artifact_uri"] = artifact_uri
    return outputs


def _log_spec_artifact_best_effort(tracking: TrackingClient, path: Path, run_id: str) -> None:
    try:
        tracking.log_artifact(str(path), artifact_path="specs")
    except Exception:
        logging.getLogger("baseline_harness.tracking").warning(
            "Failed to log specification artifact for %s",
            run_id,
            exc_info=True,
        )


def _result_summary(result: ExperimentResult) -> dict[str, object]:
    return {
        "run_id": result.run_id,
        "status": result.status,
        "termination_reason": result.termination_reason,
        "spec_path": result.spec_path,
        "outputs": dict(result.outputs),
        "message": result.message,
    }


def _not_started(use_case_key: str, message: str) -> ExperimentResult:
    start = datetime.now(UTC)
    end = datetime.now(UTC)
    return ExperimentResult(
        run_id="not-started",
        status="failed",
        started_at_utc=start.isoformat(),
        ended_at_utc=end.isoformat(),
        duration_s=(end - start).total_seconds(),
        outputs={"use_case_key": use_case_key},
        message=message,
    )

