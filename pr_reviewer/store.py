"""JSON persistence of engine state and run snapshots."""

import os
import tempfile
from pathlib import Path

import pydantic as pyd

from pr_reviewer.config import StorePaths
from pr_reviewer.models import EngineState, RunSnapshot


def load_json_or_default[ModelT: pyd.BaseModel](path: Path, model: type[ModelT]) -> ModelT:
    """Load a model from a JSON file, or return its default when absent.

    Args:
        path: JSON file
        model: Model class

    Returns:
        Loaded or default model instance

    Raises:
        ValueError: The file exists but does not hold a valid model

    """
    if not path.exists():
        return model()
    content = path.read_text(encoding="utf-8")
    try:
        return model.model_validate_json(content)
    except pyd.ValidationError as e:
        message = f"failed to parse json: {path}: {e}"
        raise ValueError(message) from e


def save_json(path: Path, value: pyd.BaseModel) -> None:
    """Write a model as pretty JSON, replacing the file atomically.

    Args:
        path: Destination file
        value: Model to write

    """
    path.parent.mkdir(parents=True, exist_ok=True)
    content = value.model_dump_json(indent=2)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.write("\n")
        Path(tmp_name).replace(path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def load_engine_state(paths: StorePaths) -> EngineState:
    """Load engine-state.json (default when absent)."""
    return load_json_or_default(paths.state, EngineState)


def save_engine_state(paths: StorePaths, state: EngineState) -> None:
    """Persist engine-state.json."""
    save_json(paths.state, state)


def load_snapshot(paths: StorePaths) -> RunSnapshot:
    """Load run-snapshot.json (default when absent)."""
    return load_json_or_default(paths.snapshot, RunSnapshot)


def save_snapshot(paths: StorePaths, snapshot: RunSnapshot) -> None:
    """Persist run-snapshot.json."""
    save_json(paths.snapshot, snapshot)
