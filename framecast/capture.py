# framecast/capture.py
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .clock import VirtualTimeController
from .frames import FrameSequencer
from .models import CaptureConfig
from .protocol import describe_exception
from .screenshot import ScreenshotCapture

logger = logging.getLogger("framecast.capture")


@dataclass
class CaptureSession:
    target_url: str
    frame_interval: int
    total_frames: int
    frames_dir: Path
    extension: str
    artifacts: List[Path] = field(default_factory=list)
    timestamps: List[float] = field(default_factory=list)
    elapsed_virtual_time: float = 0.0
    wall_clock_seconds: float = 0.0
    stopped_early: bool = False


class FrameCaptureOrchestrator:
    """Navigates under a paused clock, then alternates capture and time grants."""

    def __init__(self, session, config: CaptureConfig) -> None:
        self.session = session
        self.config = config
        self.controller = VirtualTimeController(
            session,
            animation_frame_interval=config.animation_frame_interval,
            max_task_starvation_count=config.max_task_starvation_count,
            timestamp_epsilon=config.timestamp_epsilon,
        )
        self.sequencer = FrameSequencer(config.frames_dir, config.frame_extension)
        self.screenshots = ScreenshotCapture(self.controller, config.screenshot_options())
        self.result = CaptureSession(
            target_url=config.url,
            frame_interval=config.frame_interval,
            total_frames=config.frame_count,
            frames_dir=Path(config.frames_dir),
            extension=config.frame_extension,
        )
        self._frame_counter = 1

    def stop(self) -> None:
        """Finish after the frame currently in flight."""
        logger.info("Stop requested, finishing after frame %d", self._frame_counter)
        self.controller.stop_gracefully()

    def _on_exception(self, details: Dict[str, Any]) -> None:
        logger.warning("Remote exception: %s", describe_exception(details))

    async def _on_installed(self, time_base: float) -> None:
        logger.info("Virtual time installed at %s, loading %s", time_base, self.config.url)
        await self.session.navigate(self.config.url)
        logger.info("Page loaded")

    async def _on_initial_expired(self, elapsed: float) -> None:
        if self.controller.stopped:
            return
        await self.controller.grant_time(self.config.frame_interval, self._on_frame_due)

    async def _on_frame_due(self, elapsed: float) -> None:
        frame = await self.screenshots.capture()
        path = self.sequencer.write(frame)
        self.result.artifacts.append(path)
        self.result.timestamps.append(frame.simulated_timestamp)
        logger.debug("Wrote %s (virtual elapsed %sms)", path.name, elapsed)
        if frame.sequence_number % 50 == 0:
            logger.info("Captured %d/%d frames", frame.sequence_number, self.config.frame_count)
        self._frame_counter += 1

        if self._frame_counter > self.config.frame_count:
            return
        if self.controller.stopped:
            self.result.stopped_early = True
            return
        await self.controller.grant_time(self.config.frame_interval, self._on_frame_due)

    async def run(self) -> CaptureSession:
        started = time.monotonic()
        self.session.on_exception_thrown(self._on_exception)
        await self.controller.install_initial_budget(
            self.config.initial_budget,
            self.config.initial_virtual_time,
            self._on_installed,
            self._on_initial_expired,
        )
        await self.controller.run()
        await self.session.close()
        if self.controller.stopped and len(self.result.artifacts) < self.config.frame_count:
            self.result.stopped_early = True

        self.result.elapsed_virtual_time = self.controller.elapsed_time()
        self.result.wall_clock_seconds = time.monotonic() - started
        logger.info(
            "Finished capturing %d frames. Real clock time %.3fs, virtual time %sms",
            len(self.result.artifacts),
            self.result.wall_clock_seconds,
            self.result.elapsed_virtual_time,
        )
        return self.result
