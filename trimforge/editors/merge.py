"""Merge editor: splices segments and restores the source's audio/subtitles.

https://ffmpeg.org/ffmpeg-formats.html#concat
"""

import os
from pathlib import Path

from trimforge import ffutil
from trimforge.logging_utils import get_logger
from trimforge.tempfiles import TempArtifacts, new_temp_path, remove_quietly
from trimforge.timecode import Timecode

logger = get_logger(__name__)


def _quote(path: Path) -> str:
    return "'" + str(path).replace("'", "'\\''") + "'"


def build_concat_list(segments: list[Path]) -> str:
    """Render an ffconcat list naming *segments* in order."""
    lines = ["ffconcat version 1.0"]
    lines += [f"file {_quote(Path(p).resolve())}" for p in segments]
    return "\n".join(lines) + "\n"


async def merge_segments(
    segments: list[Path],
    source_path: Path,
    container: str,
    start: Timecode,
    end: Timecode,
    output_path: Path,
    ffmpeg: str = "ffmpeg",
) -> Path:
    """Concatenate video-only *segments* and mux them with the source's other streams.

    The spliced video no longer shares timestamps with the original audio, so
    audio and subtitles are cut again from *source_path* over [start, end].
    The result is written next to *output_path* and renamed onto it only once
    both engine passes succeeded.
    """
    if not segments:
        raise ValueError("merge_segments called with empty segment list")

    output_path = Path(output_path)
    suffix = Path(source_path).suffix

    with TempArtifacts() as temps:
        list_path = temps.new(".ffconcat")
        intermediate = temps.new(suffix)
        list_path.write_text(build_concat_list(segments), encoding="utf-8")

        logger.info("Concatenating %d segment(s)", len(segments))
        await ffutil.concat(list_path, intermediate, container, ffmpeg=ffmpeg)

        # Let ffmpeg pick the muxer from the destination's extension if it has one.
        out_container = None if output_path.suffix else container
        staging = new_temp_path(suffix=output_path.suffix, directory=output_path.parent)
        try:
            logger.info("Re-trimming audio/subtitles from %s", source_path)
            await ffutil.mux_with_source(
                intermediate, source_path, start, end, staging, out_container, ffmpeg=ffmpeg
            )
            os.replace(staging, output_path)
        except BaseException:
            remove_quietly(staging)
            raise

    return output_path
