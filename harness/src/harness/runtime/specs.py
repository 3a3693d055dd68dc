from __future__ import annotations

import os
import tempfile
from pathlib import Path

_ENV_SPECS_ROOT = "HARNESS_SPECS_DIR"
_LOCAL_SPECS_DIRNAME = "specs"
_TEMP_SPECS_DIRNAME = "baseline-harness-specs"


def resolve_specs_root(configured: str | Path | None = None) -> Path:
    """
    Resolve a writable directory for specification files and ensure it exists.

    Candidates, first writable wins: the configured directory, ``$HARNESS_SPECS_DIR``,
    ``./specs`` and a directory under the system temp dir.
    """
    candidates: list[Path] = []

    if configured:
        candidates.append(Path(configured).expanduser())

    env_value = os.environ.get(_ENV_SPECS_ROOT)
    if env_value:
        candidates.append(Path(env_value).expanduser())

    candidates.append(Path.cwd() / _LOCAL_SPECS_DIRNAME)
    candidates.append(Path(tempfile.gettempdir()) / _TEMP_SPECS_DIRNAME)

    for candidate in candidates:
        if _ensure_writable_dir(candidate):
            return candidate

    raise RuntimeError("Unable to resolve a writable specifications directory.")


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    return _validate_writable(path)


def _validate_writable(path: Path) -> bool:
    test_file = path / ".write_test"
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        return False
