"""Segment editor: re-encodes the head and stream-copies the tail."""

from dataclasses import dataclass
from pathlib import Path

from trimforge import ffutil
from trimforge.concurrency import gather_or_cancel
from trimforge.logging_utils import get_logger
from trimforge.models import ProbeResult, SplitPoint, TimeRange
from trimforge.tempfiles import remove_quietly
from trimforge.timecode import Timecode

logger = get_logger(__name__)


@dataclass
class SegmentPlan:
    """Ranges to transcode (head) and copy (tail); either may be absent."""

    head: TimeRange | None = None
    tail: TimeRange | None = None


def plan_segments(start: Timecode, end: Timecode, split: SplitPoint) -> SegmentPlan:
    """Decide which parts of [start, end] need re-encoding."""
    if end <= split.remux_boundary:
        # The whole request ends before the keyframe.
        return SegmentPlan(head=TimeRange(start=start, end=end))

    tail = TimeRange(start=split.remux_boundary, end=end)
    if start >= split.remux_boundary:
        return SegmentPlan(tail=tail)
    if split.encode_boundary > start:
        return SegmentPlan(head=TimeRange(start=start, end=split.encode_boundary), tail=tail)
    # Start lies between the last pre-keyframe packet and the keyframe.
    return SegmentPlan(head=TimeRange(start=start, end=split.remux_boundary), tail=tail)


async def produce_segments(
    input_path: Path,
    probe_result: ProbeResult,
    plan: SegmentPlan,
    head_path: Path,
    tail_path: Path,
    ffmpeg: str = "ffmpeg",
) -> list[Path]:
    """Run the planned transcode and copy jobs side by side.

    Returns the produced segment paths in playback order. If either job
    fails the other is cancelled, both outputs are removed and the first
    error is raised.
    """
    jobs = []
    outputs: list[Path] = []

    if plan.head is not None:
        logger.info("Transcoding %s -> %s", plan.head.start, plan.head.end)
        jobs.append(
            ffutil.transcode(
                input_path, head_path, plan.head.start, plan.head.end, probe_result, ffmpeg=ffmpeg
            )
        )
        outputs.append(head_path)

    if plan.tail is not None:
        logger.info("Copying %s -> %s", plan.tail.start, plan.tail.end)
        jobs.append(
            ffutil.stream_copy(
                input_path, tail_path, plan.tail.start, plan.tail.end,
                probe_result.container, ffmpeg=ffmpeg,
            )
        )
        outputs.append(tail_path)

    if not jobs:
        raise ValueError("Segment plan has neither a head nor a tail")

    try:
        await gather_or_cancel(*jobs)
    except BaseException:
        remove_quietly(head_path)
        remove_quietly(tail_path)
        raise

    return outputs
