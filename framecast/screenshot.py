# framecast/screenshot.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import ProtocolError
from .models import EXTENSION_BY_FORMAT, ScreenshotOptions

logger = logging.getLogger("framecast.screenshot")

FRAME_NAME_TEMPLATE = "frame-{:07d}.{}"


def frame_filename(sequence_number: int, extension: str) -> str:
    return FRAME_NAME_TEMPLATE.format(sequence_number, extension)


@dataclass(frozen=True)
class CapturedFrame:
    sequence_number: int
    simulated_timestamp: float
    data: bytes = field(repr=False)
    format: str = "jpeg"

    @property
    def filename(self) -> str:
        return frame_filename(self.sequence_number, EXTENSION_BY_FORMAT[self.format])


class ScreenshotCapture:
    """Numbers captures and checks that their virtual timestamps keep increasing."""

    def __init__(self, controller, options: ScreenshotOptions) -> None:
        self._controller = controller
        self._options = options
        self._next_sequence = 1
        self._last_timestamp: Optional[float] = None

    @property
    def captured(self) -> int:
        return self._next_sequence - 1

    async def capture(self) -> CapturedFrame:
        timestamp = self._controller.current_frame_time()
        if self._last_timestamp is not None and timestamp <= self._last_timestamp:
            raise ProtocolError(
                f"frame timestamp {timestamp} does not advance past {self._last_timestamp}"
            )
        data = await self._controller.capture_frame(self._options)
        if not data:
            raise ProtocolError(f"empty screenshot at virtual time {timestamp}")
        frame = CapturedFrame(
            sequence_number=self._next_sequence,
            simulated_timestamp=timestamp,
            data=data,
            format=self._options.format,
        )
        self._next_sequence += 1
        self._last_timestamp = timestamp
        logger.debug("Captured frame %d at %.3f (%d bytes)", frame.sequence_number, timestamp, len(data))
        return frame
