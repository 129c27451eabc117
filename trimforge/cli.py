"""Thin CLI entry point: builds a TrimManifest and calls the engine."""

import argparse
import sys
from pathlib import Path

from trimforge.engine import process
from trimforge.errors import TrimError
from trimforge.logging_utils import setup_logging
from trimforge.manifest import EngineConfig, LocatorConfig, TrimManifest, load_manifest
from trimforge.timecode import END, ZERO, Timecode


def _timecode(text: str) -> Timecode:
    try:
        return Timecode.parse(text)
    except TrimError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trimforge",
        description="TrimForge: trim videos re-encoding only up to the first keyframe.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command")

    trim = sub.add_parser("trim", help="Trim a video file")
    trim.add_argument("video", nargs="?", type=Path, help="Input video file")
    trim.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    trim.add_argument("--output", "-o", type=Path, help="Output file path")
    trim.add_argument("--from", "-ss", dest="start", type=_timecode, default=ZERO,
                      help="Start timecode [[HH:]MM:]SS[.ffffff] (default: start of media)")
    trim.add_argument("--to", "-to", dest="end", type=_timecode, default=END,
                      help="End timecode (default: end of media)")
    trim.add_argument("--window", type=int, default=None,
                      help="Packets searched around the keyframe (default: 10)")
    trim.add_argument("--ffmpeg", type=str, default="ffmpeg", help="ffmpeg binary")
    trim.add_argument("--ffprobe", type=str, default="ffprobe", help="ffprobe binary")

    serve = sub.add_parser("serve", help="Launch the web API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    setup_logging(args.log_level)

    if args.command == "serve":
        from trimforge.web import create_app
        app = create_app()
        print(f"TrimForge web API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    try:
        if args.manifest:
            m = load_manifest(args.manifest)
        elif args.video:
            output = args.output or args.video.with_stem(args.video.stem + "_trimmed")
            m = TrimManifest(
                input=args.video,
                output=output,
                start=args.start,
                end=args.end,
                engine=EngineConfig(ffmpeg=args.ffmpeg, ffprobe=args.ffprobe),
                locator=LocatorConfig(window=args.window) if args.window is not None else LocatorConfig(),
            )
        else:
            print("Error: provide either a VIDEO argument or --manifest.", file=sys.stderr)
            sys.exit(1)

        def on_progress(stage: str, frac: float) -> None:
            print(f"  [{frac:3.0%}] {stage}")

        result = process(m, on_progress=on_progress)
    except (TrimError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Done! Output: {result.output_path}")
    if result.copied:
        print(f"  Copied from keyframe: {result.split_point.remux_boundary}")
    if result.transcoded:
        print(f"  Re-encoded until: {result.split_point.encode_boundary}")
