"""Frozen baselines: build, write, load and expiration status."""

from harness.spec.builder import (
    build_specification,
    compute_footprint,
    covariate_value_hash,
    derive_min_pass_rate,
    specification_filename,
)
from harness.spec.expiration import (
    Expired,
    ExpirationPolicy,
    ExpirationStatus,
    ExpiringImminently,
    ExpiringSoon,
    NoExpiration,
    Valid,
    describe_expiration,
    evaluate_expiration,
    format_duration,
)
from harness.spec.loader import load_specification, parse_specification, verify_fingerprint
from harness.spec.model import (
    SCHEMA_VERSION,
    CostSummary,
    ExecutionSummary,
    FactorSourceSummary,
    Requirements,
    Specification,
    SpecificationError,
    SpecificationIntegrityError,
    StatisticsSummary,
)
from harness.spec.writer import compute_fingerprint, to_yaml, write_specification

__all__ = [
    "SCHEMA_VERSION",
    "Specification",
    "ExecutionSummary",
    "StatisticsSummary",
    "CostSummary",
    "Requirements",
    "FactorSourceSummary",
    "SpecificationError",
    "SpecificationIntegrityError",
    "build_specification",
    "compute_footprint",
    "covariate_value_hash",
    "derive_min_pass_rate",
    "specification_filename",
    "ExpirationPolicy",
    "ExpirationStatus",
    "NoExpiration",
    "Valid",
    "ExpiringSoon",
    "ExpiringImminently",
    "Expired",
    "evaluate_expiration",
    "describe_expiration",
    "format_duration",
    "to_yaml",
    "write_specification",
    "compute_fingerprint",
    "parse_specification",
    "load_specification",
    "verify_fingerprint",
]
