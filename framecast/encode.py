# framecast/encode.py
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import imageio_ffmpeg

from .capture import CaptureSession
from .errors import EncoderError
from .frames import FrameSequencer
from .models import CaptureConfig

logger = logging.getLogger("framecast.encode")


@dataclass
class CaptureResult:
    session: CaptureSession
    video: Optional[Path] = None
    frames_kept: bool = False
    encode_error: Optional[EncoderError] = None

    @property
    def ok(self) -> bool:
        return self.encode_error is None


class VideoAssembler:
    """H.264/yuv420p encoder for numbered frame files, driven through ffmpeg."""

    def __init__(self, ffmpeg_path: Optional[Path] = None) -> None:
        self.ffmpeg_path = ffmpeg_path

    def executable(self) -> str:
        if self.ffmpeg_path is not None:
            if not Path(self.ffmpeg_path).exists():
                raise EncoderError(f"ffmpeg not found at {self.ffmpeg_path}")
            return str(self.ffmpeg_path)
        try:
            return imageio_ffmpeg.get_ffmpeg_exe()
        except RuntimeError as exc:
            raise EncoderError(f"no ffmpeg executable available: {exc}") from exc

    def build_command(self, input_pattern: str, fps: float, output: Path) -> List[str]:
        rate = f"{fps:g}"
        return [
            self.executable(),
            "-y",
            "-framerate", rate,
            "-i", input_pattern,
            "-an",
            "-c:v", "libx264",
            "-profile:v", "high",
            "-level", "4.2",
            # chroma subsampling for playback on most devices
            "-pix_fmt", "yuv420p",
            "-r", rate,
            str(output),
        ]

    async def encode(self, input_pattern: str, fps: float, output: Path) -> Path:
        cmd = self.build_command(input_pattern, fps, output)
        logger.info("Encoding %s at %s fps", output, f"{fps:g}")
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EncoderError(f"could not start ffmpeg: {exc}") from exc
        _stdout, stderr = await process.communicate()
        if process.returncode != 0:
            tail = stderr.decode(errors="replace").strip().splitlines()[-5:]
            raise EncoderError(f"ffmpeg exited with code {process.returncode}: {' | '.join(tail)}")
        logger.info("Encoding time: %.3fs", time.monotonic() - started)
        return output


async def finalize(session: CaptureSession, config: CaptureConfig,
                   assembler: Optional[VideoAssembler] = None) -> CaptureResult:
    """Encode the captured frames (unless disabled) and clean them up as configured."""
    sequencer = FrameSequencer.adopt(session.frames_dir, session.extension, session.artifacts)
    result = CaptureResult(session=session)

    if not config.no_video and session.artifacts:
        assembler = assembler or VideoAssembler(config.ffmpeg_path)
        output = Path(config.output_filename)
        output.parent.mkdir(parents=True, exist_ok=True)
        try:
            result.video = await assembler.encode(sequencer.input_pattern, config.fps, output)
        except EncoderError as exc:
            logger.error("An error occurred while encoding: %s", exc)
            logger.error("Keeping %d frames in %s for manual recovery", len(session.artifacts), session.frames_dir)
            result.encode_error = exc
            result.frames_kept = True
            return result

    if config.keep_frames:
        result.frames_kept = True
    else:
        sequencer.delete()
    return result
