"""FFmpeg/ffprobe subprocess helpers."""

import asyncio
import shlex
import shutil
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from trimforge.errors import (
    EngineInvocationError,
    FFmpegNotFoundError,
    ProbeError,
)
from trimforge.logging_utils import get_logger
from trimforge.models import PacketRecord, ProbeResult, StreamEncoder
from trimforge.timecode import Timecode

logger = get_logger(__name__)

T = TypeVar("T")

LineConsumer = Callable[[AsyncIterator[str]], Awaitable[T]]


def check_ffmpeg(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in (ffmpeg, ffprobe):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


# ---------------------------------------------------------------------------
# Process runner
# ---------------------------------------------------------------------------

async def _read_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    while True:
        raw = await stream.readline()
        if not raw:
            return
        yield raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_engine(cmd: list[str], consume: LineConsumer | None = None):
    """Run an engine command and raise EngineInvocationError on non-zero exit.

    stderr is drained from the moment the process starts so a chatty engine
    can never stall on a full pipe. When *consume* is given it receives stdout
    line by line; if it returns before stdout is exhausted the process is
    killed and its exit status ignored. Returns whatever *consume* returned.
    """
    logger.debug("Running %s", shlex.join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if consume else asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise FFmpegNotFoundError(f"{cmd[0]} not found on PATH") from e

    stderr_task = asyncio.ensure_future(proc.stderr.read())
    result = None
    stopped_early = False
    try:
        if consume is not None:
            result = await consume(_read_lines(proc.stdout))
            if not proc.stdout.at_eof():
                stopped_early = True
                _kill(proc)
        stderr = await stderr_task
        returncode = await proc.wait()
    except BaseException:
        _kill(proc)
        stderr_task.cancel()
        await asyncio.gather(stderr_task, proc.wait(), return_exceptions=True)
        raise

    if returncode != 0 and not stopped_early:
        raise EngineInvocationError(cmd, returncode, stderr.decode("utf-8", errors="replace"))
    return result


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------

def resolve_container(path: Path, available: list[str]) -> str:
    """Pick the extension-implied container if ffprobe offers it, else the first."""
    ext = Path(path).suffix[1:].lower()
    if ext and ext in available:
        return ext
    return available[0]


def _stream_encoder(fields: list[str]) -> StreamEncoder:
    # stream|<index>|<codec_name>[|<encoder tag>]
    index = int(fields[1])
    codec = fields[2] if len(fields) > 2 else ""
    tag = fields[3].strip() if len(fields) > 3 else ""

    # Only libavcodec tags ("Lavc60.3.100 libx264") name a usable encoder.
    if tag.startswith("Lavc") and " " in tag:
        return StreamEncoder(index=index, encoder=tag.split(" ", 1)[1])
    return StreamEncoder(index=index, encoder=codec)


def parse_probe_output(input_path: Path, lines: list[str]) -> ProbeResult:
    """Parse ``compact=nokey=1`` stream/format records from ffprobe."""
    streams: list[StreamEncoder] = []
    container: str | None = None

    for line in lines:
        fields = line.split("|")
        if fields[0] == "stream" and len(fields) > 1:
            streams.append(_stream_encoder(fields))
        elif fields[0] == "format" and len(fields) > 1:
            available = [name for name in fields[-1].split(",") if name]
            if available:
                container = resolve_container(input_path, available)

    if container is None:
        raise ProbeError(f"{input_path} does not contain any container")

    streams.sort(key=lambda s: s.index)
    return ProbeResult(container=container, video_streams=streams)


async def probe(input_path: Path, ffprobe: str = "ffprobe") -> ProbeResult:
    """Report the container and video stream encoders of *input_path*."""
    input_path = Path(input_path)
    if not input_path.exists():
        raise ProbeError(f"File not found: {input_path}")

    cmd = [
        ffprobe,
        "-loglevel", "error",
        "-select_streams", "v",
        "-show_entries", "stream=index,codec_name:stream_tags=encoder:format=format_name",
        "-of", "compact=nokey=1",
        "-i", str(input_path),
    ]

    async def collect(lines: AsyncIterator[str]) -> list[str]:
        return [line async for line in lines]

    lines = await run_engine(cmd, consume=collect)
    return parse_probe_output(input_path, lines)


def parse_packet_line(line: str) -> PacketRecord | None:
    """Parse a ``packet|<pts_time>|<flags>`` record.

    Returns None for other records and for packets without a usable
    presentation time (``N/A`` or negative).
    """
    fields = line.strip().split("|")
    if len(fields) < 3 or fields[0] != "packet":
        return None
    pts, flags = fields[1], fields[2]
    if pts in ("", "N/A") or pts.startswith("-"):
        return None
    return PacketRecord(timestamp=Timecode.of_seconds(pts), is_keyframe=flags.startswith("K"))


async def _packet_records(lines: AsyncIterator[str]) -> AsyncIterator[PacketRecord]:
    async for line in lines:
        record = parse_packet_line(line)
        if record is not None:
            yield record


async def probe_packets(
    input_path: Path,
    start: Timecode,
    consume: Callable[[AsyncIterator[PacketRecord]], Awaitable[T]],
    ffprobe: str = "ffprobe",
) -> T:
    """Stream video packet records from *start* onward into *consume*."""
    cmd = [
        ffprobe,
        "-loglevel", "error",
        "-read_intervals", start.format(),
        "-select_streams", "v",
        "-show_entries", "packet=pts_time,flags",
        "-of", "compact=nokey=1",
        "-i", str(input_path),
    ]

    async def consume_lines(lines: AsyncIterator[str]) -> T:
        return await consume(_packet_records(lines))

    return await run_engine(cmd, consume=consume_lines)


# ---------------------------------------------------------------------------
# Encoding, copying and merging
# ---------------------------------------------------------------------------

def _seek_args(start: Timecode, end: Timecode) -> list[str]:
    args = ["-ss", start.format()]
    if not end.is_end:
        args += ["-to", end.format()]
    return args


def build_transcode_cmd(
    input_path: Path,
    output_path: Path,
    start: Timecode,
    end: Timecode,
    probe_result: ProbeResult,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    cmd = [ffmpeg, "-loglevel", "error", "-y", *_seek_args(start, end)]
    cmd += ["-i", str(input_path), "-f", probe_result.container]
    # Output stream n is the n-th video stream because only video is mapped.
    for n, stream in enumerate(probe_result.video_streams):
        if stream.encoder:
            cmd += [f"-c:v:{n}", stream.encoder]
    cmd += ["-map", "v", str(output_path)]
    return cmd


def build_copy_cmd(
    input_path: Path,
    output_path: Path,
    start: Timecode,
    end: Timecode,
    container: str,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    return [
        ffmpeg, "-loglevel", "error", "-y",
        *_seek_args(start, end),
        "-i", str(input_path),
        "-f", container,
        "-c", "copy",
        "-map", "v",
        str(output_path),
    ]


def build_concat_cmd(
    list_path: Path, output_path: Path, container: str, ffmpeg: str = "ffmpeg"
) -> list[str]:
    return [
        ffmpeg, "-loglevel", "error", "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-c", "copy",
        "-map", "v",
        "-f", container,
        str(output_path),
    ]


def build_mux_cmd(
    video_path: Path,
    source_path: Path,
    start: Timecode,
    end: Timecode,
    output_path: Path,
    container: str | None,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """Pair the spliced video with audio/subtitles re-trimmed from the source."""
    cmd = [
        ffmpeg, "-loglevel", "error", "-y",
        "-i", str(video_path),
        *_seek_args(start, end),
        "-i", str(source_path),
        "-c", "copy",
        "-map", "0:v",
        "-map", "1:a?",
        "-map", "1:s?",
    ]
    if container:
        cmd += ["-f", container]
    cmd.append(str(output_path))
    return cmd


async def transcode(input_path, output_path, start, end, probe_result, ffmpeg="ffmpeg") -> None:
    """Re-encode the video of [start, end] with the source's own encoders."""
    await run_engine(build_transcode_cmd(input_path, output_path, start, end, probe_result, ffmpeg))


async def stream_copy(input_path, output_path, start, end, container, ffmpeg="ffmpeg") -> None:
    """Copy the video of [start, end] without re-encoding."""
    await run_engine(build_copy_cmd(input_path, output_path, start, end, container, ffmpeg))


async def concat(list_path, output_path, container, ffmpeg="ffmpeg") -> None:
    await run_engine(build_concat_cmd(list_path, output_path, container, ffmpeg))


async def mux_with_source(
    video_path, source_path, start, end, output_path, container, ffmpeg="ffmpeg"
) -> None:
    await run_engine(
        build_mux_cmd(video_path, source_path, start, end, output_path, container, ffmpeg)
    )
