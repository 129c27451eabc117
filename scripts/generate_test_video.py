#!/usr/bin/env python3
"""Generate a synthetic test video for TrimForge end-to-end runs.

Produces a 20-second H.264/AAC video whose keyframes sit exactly every 2
seconds (GOP of 48 frames at 24 fps, B-frames enabled), so a trim starting
between keyframes exercises both the transcode and the copy path:
  testsrc2 pattern with a running timestamp burned in
  440 Hz tone on the audio track
"""

import subprocess
import sys
from pathlib import Path


def generate_test_video(output: Path, duration: int = 20, gop: int = 48) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        "ffmpeg", "-y",
        "-f", "lavfi", "-i", f"testsrc2=s=320x240:r=24:d={duration}",
        "-f", "lavfi", "-i", f"sine=f=440:d={duration}",
        "-map", "0:v",
        "-map", "1:a",
        "-c:v", "libx264",
        "-g", str(gop),
        "-keyint_min", str(gop),
        "-sc_threshold", "0",
        "-bf", "2",
        "-c:a", "aac",
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures/synthetic.mp4")
    generate_test_video(out)
