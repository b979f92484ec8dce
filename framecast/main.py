# framecast/main.py
"""framecast

Create deterministic screenshots of web pages using Chromium with virtual
time, and encode them into an H.264 video.
"""
from __future__ import annotations
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from . import __version__
from .errors import BrowserNotFoundError, FramecastError, ProtocolError
from .models import CaptureConfig
from .render import render_capture

logger = logging.getLogger("framecast.main")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_ENCODER = 3


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="framecast",
        description="Create deterministic screenshots of webpages using Chromium with virtual time.",
    )
    parser.add_argument("--url", required=True, help="The url to screenshot.")
    parser.add_argument("--width", type=int, default=300, help="Width of the screenshot in pixels.")
    parser.add_argument("--height", type=int, default=300, help="Height of the screenshot in pixels.")
    parser.add_argument(
        "--frame-interval", type=int, default=1000,
        help="Interval between frames in milliseconds of virtual time.",
    )
    parser.add_argument("--frame-count", type=int, default=300, help="The number of frames to create.")
    parser.add_argument(
        "--output-filename", default="output.mp4",
        help="The filename of the output MP4/H264 file.",
    )
    parser.add_argument(
        "--screenshot-format", default="jpeg", choices=["jpeg", "png"],
        help="The format of screenshots created.",
    )
    parser.add_argument(
        "--screenshot-jpeg-quality", type=int, default=85,
        help="The quality of the JPEG screenshot from 0-100. 100 is best.",
    )
    parser.add_argument("--no-video", action="store_true", help="Do not encode a video from the created frames.")
    parser.add_argument("--keep-frames", action="store_true", help="Keep the generated frames.")
    parser.add_argument("--frames-dir", default=".", help="Directory the frames are written to.")
    parser.add_argument("--executable-path", default=None, help="Chromium executable to use instead of Playwright's.")
    parser.add_argument("--ffmpeg-path", default=None, help="ffmpeg executable to use instead of the bundled one.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every frame.")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> CaptureConfig:
    return CaptureConfig(
        url=args.url,
        width=args.width,
        height=args.height,
        frame_interval=args.frame_interval,
        frame_count=args.frame_count,
        output_filename=Path(args.output_filename),
        screenshot_format=args.screenshot_format,
        screenshot_jpeg_quality=args.screenshot_jpeg_quality,
        no_video=args.no_video,
        keep_frames=args.keep_frames,
        frames_dir=Path(args.frames_dir),
        executable_path=Path(args.executable_path) if args.executable_path else None,
        ffmpeg_path=Path(args.ffmpeg_path) if args.ffmpeg_path else None,
    )


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_stop_handlers(orchestrator) -> None:
    """First signal stops gracefully; the default handlers come back for a second one."""
    loop = asyncio.get_running_loop()

    def stop() -> None:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)
        logger.info("Signal again to abort immediately")
        orchestrator.stop()

    for sig in STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop)
        except NotImplementedError:  # pragma: no cover - windows event loops
            logger.debug("Signal handlers unavailable; %s will abort immediately", sig.name)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    try:
        config = build_config(args)
    except ValidationError as exc:
        logger.error("Invalid options: %s", exc)
        return EXIT_USAGE

    try:
        result = asyncio.run(render_capture(config, on_orchestrator=_install_stop_handlers))
    except BrowserNotFoundError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    except ProtocolError as exc:
        logger.error("Capture aborted: %s", exc)
        return EXIT_FAILURE
    except FramecastError as exc:
        logger.error("Capture failed: %s", exc)
        return EXIT_FAILURE

    if not result.ok:
        logger.error("Frames kept in %s; re-encode them manually", result.session.frames_dir)
        return EXIT_ENCODER
    if result.video is not None:
        logger.info("Wrote %s", result.video)
    logger.info("Finished")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
