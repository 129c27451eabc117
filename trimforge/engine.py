"""Orchestrator: runs the smart-trim pipeline defined by a TrimManifest."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from trimforge import ffutil
from trimforge.analyzers.keyframes import locate_split_point
from trimforge.concurrency import gather_or_cancel
from trimforge.editors.merge import merge_segments
from trimforge.editors.segments import plan_segments, produce_segments
from trimforge.errors import InvalidRangeError
from trimforge.logging_utils import get_logger
from trimforge.manifest import TrimManifest
from trimforge.models import SplitPoint
from trimforge.tempfiles import TempArtifacts

logger = get_logger(__name__)


class TrimState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    LOCATING = "locating"
    PRODUCING = "producing"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[TrimState, set[TrimState]] = {
    TrimState.IDLE: {TrimState.PROBING},
    TrimState.PROBING: {TrimState.LOCATING, TrimState.FAILED},
    TrimState.LOCATING: {TrimState.PRODUCING, TrimState.FAILED},
    TrimState.PRODUCING: {TrimState.MERGING, TrimState.FAILED},
    TrimState.MERGING: {TrimState.DONE, TrimState.FAILED},
    TrimState.DONE: set(),
    TrimState.FAILED: set(),
}

_STAGES: dict[TrimState, tuple[str, float]] = {
    TrimState.PROBING: ("Probing video metadata", 0.0),
    TrimState.LOCATING: ("Finding keyframe", 0.05),
    TrimState.PRODUCING: ("Encoding and remuxing", 0.15),
    TrimState.MERGING: ("Merging clips", 0.75),
    TrimState.DONE: ("Done", 1.0),
}


@dataclass
class TrimResult:
    output_path: Path
    split_point: SplitPoint
    container: str
    transcoded: bool = False
    copied: bool = False


class SmartTrimmer:
    """Trims ``manifest.input`` to [start, end) re-encoding as little as possible.

    Probing and keyframe location run concurrently, then the transcode and
    copy jobs, then the two merge passes. Any failure removes every temporary
    file and leaves the destination untouched.
    """

    def __init__(
        self,
        manifest: TrimManifest,
        on_progress: Callable[[str, float], None] | None = None,
    ) -> None:
        self.manifest = manifest
        self.on_progress = on_progress
        self.state = TrimState.IDLE

    def _enter(self, state: TrimState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        if state in _STAGES:
            stage, frac = _STAGES[state]
            logger.info(stage)
            if self.on_progress:
                self.on_progress(stage, frac)

    async def run(self) -> TrimResult:
        m = self.manifest
        if self.state is not TrimState.IDLE:
            raise RuntimeError("SmartTrimmer instances can only run once")
        if m.start >= m.end:
            raise InvalidRangeError(
                f"The starting point ({m.start}) must be before the ending ({m.end})"
            )

        ffutil.check_ffmpeg(m.engine.ffmpeg, m.engine.ffprobe)

        self._enter(TrimState.PROBING)
        temps = TempArtifacts()
        try:
            probe_job = ffutil.probe(m.input, ffprobe=m.engine.ffprobe)
            self._enter(TrimState.LOCATING)
            locate_job = locate_split_point(
                m.input, m.start, ffprobe=m.engine.ffprobe, window=m.locator.window
            )
            probe_result, split = await gather_or_cancel(probe_job, locate_job)

            self._enter(TrimState.PRODUCING)
            plan = plan_segments(m.start, m.end, split)
            suffix = Path(m.input).suffix
            segments = await produce_segments(
                m.input,
                probe_result,
                plan,
                head_path=temps.new(suffix),
                tail_path=temps.new(suffix),
                ffmpeg=m.engine.ffmpeg,
            )

            self._enter(TrimState.MERGING)
            output_path = await merge_segments(
                segments,
                m.input,
                probe_result.container,
                m.start,
                m.end,
                m.output,
                ffmpeg=m.engine.ffmpeg,
            )
        except BaseException:
            self._enter(TrimState.FAILED)
            logger.debug("Trim of %s failed", m.input)
            raise
        finally:
            temps.cleanup()

        self._enter(TrimState.DONE)
        logger.info("Your video is stored at %s", output_path)
        return TrimResult(
            output_path=output_path,
            split_point=split,
            container=probe_result.container,
            transcoded=plan.head is not None,
            copied=plan.tail is not None,
        )


def process(
    manifest: TrimManifest,
    on_progress: Callable[[str, float], None] | None = None,
) -> TrimResult:
    """Execute the full trimming pipeline.

    Args:
        manifest: Validated trimming manifest.
        on_progress: Optional callback(stage_name, fraction_complete).
    """
    return asyncio.run(SmartTrimmer(manifest, on_progress=on_progress).run())
