"""Locations of the data directory shared by the watcher services."""

from __future__ import annotations

import os

_APP_DIR_NAME = "go-xwatch"


def data_dir() -> str:
    """Return the base data directory (ProgramData/go-xwatch) without creating it."""
    program_data = os.environ.get("ProgramData", "")
    if not program_data:
        raise RuntimeError("ProgramData is empty")
    return os.path.join(program_data, _APP_DIR_NAME)


def ensure_data_dir() -> str:
    """Create the data directory if needed and return its path."""
    directory = data_dir()
    _ensure_dir(directory)
    return directory


def data_dir_for_suffix(suffix: str) -> str:
    """Return the data directory of one service instance without creating it.

    A blank suffix means the base data directory (single-service mode).
    """
    base = data_dir()
    if not suffix.strip():
        return base
    return os.path.join(base, suffix)


def ensure_data_dir_for_suffix(suffix: str) -> str:
    """Create the data directory of one service instance and return its path."""
    directory = data_dir_for_suffix(suffix)
    _ensure_dir(directory)
    return directory


def _ensure_dir(directory: str) -> None:
    os.makedirs(directory, mode=0o755, exist_ok=True)