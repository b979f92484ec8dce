# framecast/render.py
from __future__ import annotations
import logging
from typing import Callable, Optional

from .browser import BrowserLauncher
from .capture import FrameCaptureOrchestrator
from .encode import CaptureResult, VideoAssembler, finalize
from .models import CaptureConfig

logger = logging.getLogger("framecast.render")


async def render_capture(
    config: CaptureConfig,
    assembler: Optional[VideoAssembler] = None,
    on_orchestrator: Optional[Callable[[FrameCaptureOrchestrator], None]] = None,
) -> CaptureResult:
    """Capture ``config.frame_count`` frames of ``config.url`` and assemble them.

    ``on_orchestrator`` receives the orchestrator once the browser is up, so the
    caller can wire a graceful stop (e.g. to SIGINT).
    """
    logger.info(
        "Capturing %d frames of %s every %sms (%dx%d, %s)",
        config.frame_count, config.url, config.frame_interval,
        config.width, config.height, config.screenshot_format,
    )
    async with BrowserLauncher(config.width, config.height, config.executable_path) as session:
        orchestrator = FrameCaptureOrchestrator(session, config)
        if on_orchestrator is not None:
            on_orchestrator(orchestrator)
        capture_session = await orchestrator.run()

    return await finalize(capture_session, config, assembler)
