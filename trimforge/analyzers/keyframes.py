"""Split-point analyzer: finds where a lossless cut can begin."""

from collections import deque
from pathlib import Path
from typing import AsyncIterator

from trimforge import ffutil
from trimforge.errors import NoSplitPointFoundError
from trimforge.logging_utils import get_logger
from trimforge.models import PacketRecord, SplitPoint
from trimforge.timecode import ZERO, Timecode

logger = get_logger(__name__)

# ffprobe lists packets in decode order, so with B-frames the packet that
# presents right before a keyframe may be reported a few records after it.
# This many records on each side of the keyframe are searched. It is a
# tolerance, not a guarantee.
LOOKAROUND_PACKETS = 10


async def find_split_point(
    records: AsyncIterator[PacketRecord],
    start: Timecode,
    window: int = LOOKAROUND_PACKETS,
) -> SplitPoint | None:
    """Locate the first keyframe at or after *start* in a packet stream.

    Returns the keyframe as ``remux_boundary`` together with the latest
    packet timestamp that precedes it among the *window* records before and
    the *window* records after it, or None if the stream holds no such
    keyframe. *records* is left open after the look-ahead.
    """
    if window < 1:
        raise ValueError("window must be at least 1")

    recent: deque[Timecode] = deque(maxlen=window)
    keyframe: Timecode | None = None

    async for record in records:
        recent.append(record.timestamp)
        if record.is_keyframe and record.timestamp >= start:
            keyframe = record.timestamp
            break

    if keyframe is None:
        return None

    candidates = list(recent)
    for _ in range(window):
        record = await anext(records, None)
        if record is None:
            break
        candidates.append(record.timestamp)

    encode_boundary = max((t for t in candidates if t < keyframe), default=ZERO)
    return SplitPoint(encode_boundary=encode_boundary, remux_boundary=keyframe)


async def locate_split_point(
    input_path: Path,
    start: Timecode,
    ffprobe: str = "ffprobe",
    window: int = LOOKAROUND_PACKETS,
) -> SplitPoint:
    """Probe *input_path* from *start* and return its split point."""

    async def consume(records: AsyncIterator[PacketRecord]) -> SplitPoint | None:
        return await find_split_point(records, start, window=window)

    split = await ffutil.probe_packets(input_path, start, consume, ffprobe=ffprobe)
    if split is None:
        raise NoSplitPointFoundError(start)

    logger.info(
        "Split point for %s: encode until %s, copy from %s",
        start, split.encode_boundary, split.remux_boundary,
    )
    return split
