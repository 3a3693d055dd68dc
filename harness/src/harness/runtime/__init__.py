"""Runtime helpers for experiment runs."""

from harness.runtime.specs import resolve_specs_root

__all__ = ["resolve_specs_root"]
