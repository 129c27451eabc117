"""Exception hierarchy shared across TrimForge."""

from __future__ import annotations


class TrimError(Exception):
    """Base error for every failure TrimForge reports."""


class TimecodeParseError(TrimError, ValueError):
    """Raised when a timecode string does not match [[HH:]MM:]SS[.ffffff]."""


class TimecodeRangeError(TrimError, ValueError):
    """Raised when a timecode value is negative, too large, or END is misused."""


class InvalidRangeError(TrimError, ValueError):
    """Raised when the requested start is not before the requested end."""


class ProbeError(TrimError):
    """Raised when the source is missing or reports no usable container."""


class NoSplitPointFoundError(TrimError):
    """Raised when no keyframe exists at or after the requested start."""

    def __init__(self, start) -> None:
        self.start = start
        super().__init__(f"Unable to find a split point after {start}")


class FFmpegNotFoundError(TrimError, RuntimeError):
    pass


class EngineInvocationError(TrimError):
    """Raised when an ffmpeg/ffprobe process exits with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str) -> None:
        self.cmd = list(cmd)
        self.program = cmd[0] if cmd else "?"
        self.returncode = returncode
        self.stderr = stderr
        message = f"{self.program} failed (rc={returncode})"
        if stderr.strip():
            message += f":\n{stderr.strip()}"
        super().__init__(message)
