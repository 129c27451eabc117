"""Temporary file helpers: every artifact is removed best-effort."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from trimforge.logging_utils import get_logger

logger = get_logger(__name__)


def new_temp_path(suffix: str = "", directory: Path | None = None) -> Path:
    """Reserve a collision-free temporary file name and return its path."""
    fd, name = tempfile.mkstemp(prefix="trimforge_", suffix=suffix, dir=directory)
    os.close(fd)
    return Path(name)


def remove_quietly(path: Path | None) -> None:
    """Delete *path* if it exists. Failures are logged and swallowed."""
    if path is None:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.debug("Could not remove temporary file %s: %s", path, e)


class TempArtifacts:
    """Tracks temporary files owned by one operation and removes them together."""

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory
        self.paths: list[Path] = []

    def new(self, suffix: str = "") -> Path:
        path = new_temp_path(suffix=suffix, directory=self.directory)
        self.paths.append(path)
        return path

    def cleanup(self) -> None:
        for path in self.paths:
            remove_quietly(path)

    def __enter__(self) -> "TempArtifacts":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()
