"""Measure non-deterministic use cases and freeze their success rate into baselines."""
