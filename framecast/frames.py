# framecast/frames.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import List

from .screenshot import CapturedFrame, frame_filename

logger = logging.getLogger("framecast.frames")


class FrameSequencer:
    """Writes captured frames as ``frame-0000001.<ext>`` files, without gaps."""

    def __init__(self, directory: Path, extension: str) -> None:
        self.directory = Path(directory)
        self.extension = extension
        self._paths: List[Path] = []

    @classmethod
    def adopt(cls, directory: Path, extension: str, paths: List[Path]) -> "FrameSequencer":
        """Sequencer over frames that were already written by a capture session."""
        sequencer = cls(directory, extension)
        sequencer._paths = list(paths)
        return sequencer

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    @property
    def input_pattern(self) -> str:
        """printf-style pattern matching every frame, as ffmpeg's image2 demuxer wants it."""
        return str(self.directory / f"frame-%07d.{self.extension}")

    def write(self, frame: CapturedFrame) -> Path:
        expected = len(self._paths) + 1
        if frame.sequence_number != expected:
            raise ValueError(f"frame {frame.sequence_number} out of sequence, expected {expected}")
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / frame_filename(frame.sequence_number, self.extension)
        path.write_bytes(frame.data)
        self._paths.append(path)
        return path

    def delete(self) -> None:
        for path in self._paths:
            path.unlink(missing_ok=True)
        logger.info("Removed %d frames from %s", len(self._paths), self.directory)
        self._paths.clear()
