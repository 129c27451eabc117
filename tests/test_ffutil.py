"""Unit tests for ffutil: report parsing, command shapes and the process runner."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from trimforge.errors import EngineInvocationError, FFmpegNotFoundError, ProbeError
from trimforge.ffutil import (
    build_concat_cmd,
    build_copy_cmd,
    build_mux_cmd,
    build_transcode_cmd,
    check_ffmpeg,
    parse_packet_line,
    parse_probe_output,
    probe,
    probe_packets,
    resolve_container,
    run_engine,
)
from trimforge.models import PacketRecord, ProbeResult, StreamEncoder
from trimforge.timecode import END, Timecode

MP4_FORMATS = "mov,mp4,m4a,3gp,3g2,mj2"


# ---------------------------------------------------------------------------
# Probe report parsing (pure, no subprocess)
# ---------------------------------------------------------------------------

class TestResolveContainer:
    def test_extension_match(self):
        assert resolve_container(Path("a.mp4"), MP4_FORMATS.split(",")) == "mp4"

    def test_extension_not_offered(self):
        assert resolve_container(Path("a.mkv"), ["matroska", "webm"]) == "matroska"

    def test_no_extension(self):
        assert resolve_container(Path("video"), MP4_FORMATS.split(",")) == "mov"

    def test_extension_case_insensitive(self):
        assert resolve_container(Path("A.MP4"), MP4_FORMATS.split(",")) == "mp4"


class TestParseProbeOutput:
    def test_libavcodec_encoder_tag(self):
        lines = [
            "stream|0|h264|Lavc60.3.100 libx264",
            f"format|{MP4_FORMATS}",
        ]
        result = parse_probe_output(Path("src.mp4"), lines)
        assert result == ProbeResult(
            container="mp4", video_streams=[StreamEncoder(index=0, encoder="libx264")]
        )

    def test_missing_tag_falls_back_to_codec(self):
        lines = ["stream|1|hevc", "format|matroska,webm"]
        result = parse_probe_output(Path("src.mkv"), lines)
        assert result.container == "matroska"
        assert result.video_streams == [StreamEncoder(index=1, encoder="hevc")]

    def test_foreign_encoder_tag_falls_back_to_codec(self):
        lines = ["stream|0|h264|JVT/AVC Coding", f"format|{MP4_FORMATS}"]
        result = parse_probe_output(Path("src.mp4"), lines)
        assert result.video_streams == [StreamEncoder(index=0, encoder="h264")]

    def test_streams_sorted_by_index(self):
        lines = ["stream|2|h264", "stream|0|mjpeg", f"format|{MP4_FORMATS}"]
        result = parse_probe_output(Path("src.mp4"), lines)
        assert [s.index for s in result.video_streams] == [0, 2]

    def test_no_format_raises(self):
        with pytest.raises(ProbeError, match="container"):
            parse_probe_output(Path("src.mp4"), ["stream|0|h264"])

    def test_ignores_blank_lines(self):
        result = parse_probe_output(Path("src.mp4"), ["", f"format|{MP4_FORMATS}"])
        assert result.video_streams == []


class TestParsePacketLine:
    def test_keyframe(self):
        assert parse_packet_line("packet|62.000000|K__") == PacketRecord(
            timestamp=Timecode.parse("1:02"), is_keyframe=True
        )

    def test_non_keyframe(self):
        record = parse_packet_line("packet|61.958333|___")
        assert record.is_keyframe is False
        assert record.timestamp == Timecode.of_seconds("61.958333")

    def test_newer_flag_format(self):
        assert parse_packet_line("packet|1.0|K_").is_keyframe is True

    @pytest.mark.parametrize(
        "line", ["", "packet|N/A|K__", "packet|-0.041667|___", "side_data|x|y", "packet|1.0"]
    )
    def test_skipped(self, line):
        assert parse_packet_line(line) is None


# ---------------------------------------------------------------------------
# Command shapes
# ---------------------------------------------------------------------------

PROBE_RESULT = ProbeResult(
    container="mp4",
    video_streams=[StreamEncoder(index=1, encoder="libx264")],
)


class TestBuildCommands:
    def test_transcode(self):
        cmd = build_transcode_cmd(
            Path("in.mp4"), Path("head.mp4"),
            Timecode.parse("1:00.5"), Timecode.parse("1:01"), PROBE_RESULT,
        )
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-ss") + 1] == "00:01:00.500000"
        assert cmd[cmd.index("-to") + 1] == "00:01:01.000000"
        assert cmd.index("-to") < cmd.index("-i")
        assert cmd[cmd.index("-f") + 1] == "mp4"
        assert cmd[cmd.index("-c:v:0") + 1] == "libx264"
        assert cmd[-3:] == ["-map", "v", "head.mp4"]

    def test_copy_open_ended(self):
        cmd = build_copy_cmd(Path("in.mp4"), Path("tail.mp4"), Timecode.parse("2"), END, "mp4")
        assert "-to" not in cmd
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[-1] == "tail.mp4"

    def test_copy_bounded(self):
        cmd = build_copy_cmd(
            Path("in.mp4"), Path("tail.mp4"), Timecode.parse("2"), Timecode.parse("10"), "mp4",
            ffmpeg="/opt/ffmpeg",
        )
        assert cmd[0] == "/opt/ffmpeg"
        assert cmd[cmd.index("-to") + 1] == "00:00:10.000000"

    def test_concat(self):
        cmd = build_concat_cmd(Path("list.txt"), Path("joined.mp4"), "mp4")
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-safe") + 1] == "0"
        assert cmd[cmd.index("-i") + 1] == "list.txt"
        assert "copy" in cmd

    def test_mux_trims_only_source_input(self):
        cmd = build_mux_cmd(
            Path("joined.mp4"), Path("src.mp4"),
            Timecode.parse("1:00.5"), END, Path("out.mp4"), None,
        )
        first_input = cmd.index("-i")
        second_input = cmd.index("-i", first_input + 1)
        assert cmd[first_input + 1] == "joined.mp4"
        assert first_input < cmd.index("-ss") < second_input
        assert cmd[second_input + 1] == "src.mp4"
        assert "-to" not in cmd
        for mapping in ("0:v", "1:a?", "1:s?"):
            assert mapping in cmd
        assert "-f" not in cmd

    def test_mux_with_explicit_container(self):
        cmd = build_mux_cmd(
            Path("joined"), Path("src"), Timecode.parse("0"), Timecode.parse("5"),
            Path("out"), "matroska",
        )
        assert cmd[cmd.index("-f") + 1] == "matroska"
        assert cmd[cmd.index("-to") + 1] == "00:00:05.000000"


# ---------------------------------------------------------------------------
# Process runner (real child processes standing in for the engine)
# ---------------------------------------------------------------------------

class TestRunEngine:
    def test_success(self, fake_engine):
        assert asyncio.run(run_engine(fake_engine("pass"))) is None

    def test_non_zero_exit_carries_stderr(self, fake_engine):
        cmd = fake_engine("import sys; sys.stderr.write('bad input'); sys.exit(3)")
        with pytest.raises(EngineInvocationError, match="bad input") as exc_info:
            asyncio.run(run_engine(cmd))
        assert exc_info.value.returncode == 3
        assert exc_info.value.cmd == cmd

    def test_large_stderr_does_not_block(self, fake_engine):
        script = "import sys; sys.stderr.write('x' * 1_000_000); sys.exit(1)"
        with pytest.raises(EngineInvocationError) as exc_info:
            asyncio.run(run_engine(fake_engine(script)))
        assert len(exc_info.value.stderr) == 1_000_000

    def test_consumer_receives_lines(self, fake_engine):
        async def collect(lines):
            return [line async for line in lines]

        cmd = fake_engine("print('a|1'); print('b|2')")
        assert asyncio.run(run_engine(cmd, consume=collect)) == ["a|1", "b|2"]

    def test_consumer_stopping_early_stops_process(self, fake_engine):
        async def first(lines):
            async for line in lines:
                return line

        script = "import itertools\nfor i in itertools.count():\n    print(i, flush=True)"
        assert asyncio.run(run_engine(fake_engine(script), consume=first)) == "0"

    def test_failure_reported_after_full_read(self, fake_engine):
        async def collect(lines):
            return [line async for line in lines]

        cmd = fake_engine("import sys; print('partial'); sys.exit(2)")
        with pytest.raises(EngineInvocationError):
            asyncio.run(run_engine(cmd, consume=collect))

    def test_missing_binary(self):
        with pytest.raises(FFmpegNotFoundError, match="not found"):
            asyncio.run(run_engine(["definitely-not-an-engine-binary"]))

    def test_cancellation_kills_process(self, fake_engine):
        async def scenario():
            task = asyncio.ensure_future(run_engine(fake_engine("import time; time.sleep(30)")))
            await asyncio.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(asyncio.wait_for(scenario(), timeout=10))


class TestCheckFfmpeg:
    @patch("trimforge.ffutil.shutil.which", return_value=None)
    def test_missing(self, mock_which):
        with pytest.raises(FFmpegNotFoundError, match="ffmpeg not found"):
            check_ffmpeg()

    @patch("trimforge.ffutil.shutil.which", return_value="/usr/bin/x")
    def test_present(self, mock_which):
        check_ffmpeg("ffmpeg", "ffprobe")
        assert mock_which.call_count == 2


# ---------------------------------------------------------------------------
# probe / probe_packets (mocked runner)
# ---------------------------------------------------------------------------

def _feeding(lines):
    async def fake_run(cmd, consume=None):
        async def gen():
            for line in lines:
                yield line
        return await consume(gen())
    return fake_run


class TestProbe:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ProbeError, match="not found"):
            asyncio.run(probe(tmp_path / "missing.mp4"))

    def test_basic(self, tmp_path):
        src = tmp_path / "src.mp4"
        src.write_bytes(b"")
        lines = ["stream|0|h264|Lavc61.3.100 libx264", f"format|{MP4_FORMATS}"]
        with patch("trimforge.ffutil.run_engine", side_effect=_feeding(lines)) as mock_run:
            result = asyncio.run(probe(src, ffprobe="ffprobe7"))
        assert result.container == "mp4"
        assert result.video_streams == [StreamEncoder(0, "libx264")]
        cmd = mock_run.call_args[0][0]
        assert cmd[0] == "ffprobe7"
        assert cmd[cmd.index("-select_streams") + 1] == "v"

    def test_engine_failure_propagates(self, tmp_path):
        src = tmp_path / "src.mp4"
        src.write_bytes(b"")
        error = EngineInvocationError(["ffprobe"], 1, "Invalid data found")
        with patch("trimforge.ffutil.run_engine", side_effect=error):
            with pytest.raises(EngineInvocationError, match="Invalid data"):
                asyncio.run(probe(src))


class TestProbePackets:
    def test_streams_parsed_records(self):
        lines = ["packet|0.000000|K__", "packet|N/A|___", "packet|0.041667|___"]

        async def collect(records):
            return [r async for r in records]

        with patch("trimforge.ffutil.run_engine", side_effect=_feeding(lines)) as mock_run:
            records = asyncio.run(probe_packets(Path("src.mp4"), Timecode.parse("1:00"), collect))
        assert [r.is_keyframe for r in records] == [True, False]
        cmd = mock_run.call_args[0][0]
        assert cmd[cmd.index("-read_intervals") + 1] == "00:01:00.000000"
        assert "packet=pts_time,flags" in cmd
