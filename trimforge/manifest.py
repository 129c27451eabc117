"""JSON manifest schema: the contract between CLI/API and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from trimforge.analyzers.keyframes import LOOKAROUND_PACKETS
from trimforge.timecode import END, ZERO, Timecode


@dataclass
class EngineConfig:
    """Names or paths of the ffmpeg/ffprobe binaries."""

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"


@dataclass
class LocatorConfig:
    """Packets searched on each side of the keyframe for the encode boundary."""

    window: int = LOOKAROUND_PACKETS

    def __post_init__(self) -> None:
        if self.window < 1:
            raise ValueError("locator window must be at least 1")


@dataclass
class TrimManifest:
    """Top-level trimming manifest."""

    input: Path
    output: Path
    start: Timecode = ZERO
    end: Timecode = END
    version: str = "1"
    engine: EngineConfig = field(default_factory=EngineConfig)
    locator: LocatorConfig = field(default_factory=LocatorConfig)


def load_manifest(path: str | Path) -> TrimManifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    start = Timecode.parse(data["from"]) if data.get("from") is not None else ZERO
    end = Timecode.parse(data["to"]) if data.get("to") is not None else END
    engine = EngineConfig(**data["engine"]) if "engine" in data else EngineConfig()
    locator = LocatorConfig(**data["locator"]) if "locator" in data else LocatorConfig()

    return TrimManifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        start=start,
        end=end,
        engine=engine,
        locator=locator,
    )
