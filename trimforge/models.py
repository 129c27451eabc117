"""Shared data types used across TrimForge."""

from dataclasses import dataclass, field

from trimforge.timecode import Timecode


@dataclass
class TimeRange:
    """A start/end pair on the source timeline. ``end`` may be END."""

    start: Timecode
    end: Timecode


@dataclass(frozen=True)
class StreamEncoder:
    """A video stream index and the ffmpeg encoder that reproduces it."""

    index: int
    encoder: str


@dataclass
class ProbeResult:
    """Container and video stream encoders reported by ffprobe."""

    container: str
    video_streams: list[StreamEncoder] = field(default_factory=list)


@dataclass(frozen=True)
class PacketRecord:
    timestamp: Timecode
    is_keyframe: bool


@dataclass(frozen=True)
class SplitPoint:
    """Boundary between the re-encoded head and the stream-copied tail.

    ``remux_boundary`` is the first keyframe at or after the requested start;
    ``encode_boundary`` is the closest packet before it (ZERO if none).
    """

    encode_boundary: Timecode
    remux_boundary: Timecode
