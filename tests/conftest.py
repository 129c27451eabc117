"""Shared test fixtures."""

import sys
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


@pytest.fixture
def fake_engine():
    """Build a command that runs *script* with the current interpreter.

    Stands in for ffmpeg/ffprobe when exercising the process runner.
    """
    def build(script: str) -> list[str]:
        return [sys.executable, "-c", script]
    return build
