# framecast/models.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

EXTENSION_BY_FORMAT: Dict[str, str] = {
    "jpeg": "jpg",
    "png":  "png",
}


class BaseCfg(BaseModel):
    # unknown keys are typos in a capture config, reject them
    model_config = ConfigDict(extra="forbid")


class ScreenshotOptions(BaseCfg):
    format: Literal["jpeg", "png"] = "jpeg"
    quality: Optional[int] = Field(default=None, ge=0, le=100)

    @property
    def extension(self) -> str:
        return EXTENSION_BY_FORMAT[self.format]

    def to_protocol(self) -> Dict[str, Any]:
        """Payload for the ``screenshot`` field of ``HeadlessExperimental.beginFrame``."""
        return self.model_dump(exclude_none=True)


class CaptureConfig(BaseCfg):
    url: str
    width: int = Field(default=300, gt=0)
    height: int = Field(default=300, gt=0)
    # virtual milliseconds between two captured frames
    frame_interval: int = Field(default=1000, gt=0)
    frame_count: int = Field(default=300, ge=1)
    output_filename: Path = Path("output.mp4")
    screenshot_format: Literal["jpeg", "png"] = "jpeg"
    screenshot_jpeg_quality: int = Field(default=85, ge=0, le=100)
    no_video: bool = False
    keep_frames: bool = False
    frames_dir: Path = Path(".")

    # virtual clock tuning
    animation_frame_interval: int = Field(default=16, gt=0)
    max_task_starvation_count: int = Field(default=100_000, gt=0)
    initial_budget: int = Field(default=1, gt=0)
    initial_virtual_time: float = Field(default=10_000, gt=0)
    timestamp_epsilon: float = Field(default=0.01, gt=0)

    # launch / encode collaborators
    executable_path: Optional[Path] = None
    ffmpeg_path: Optional[Path] = None

    @model_validator(mode="after")
    def _epsilon_below_interval(self) -> "CaptureConfig":
        if self.timestamp_epsilon >= self.frame_interval:
            raise ValueError(
                f"timestamp_epsilon ({self.timestamp_epsilon}) must be smaller "
                f"than frame_interval ({self.frame_interval})"
            )
        return self

    def screenshot_options(self) -> ScreenshotOptions:
        if self.screenshot_format == "jpeg":
            return ScreenshotOptions(format="jpeg", quality=self.screenshot_jpeg_quality)
        return ScreenshotOptions(format="png")

    @property
    def frame_extension(self) -> str:
        return EXTENSION_BY_FORMAT[self.screenshot_format]

    @property
    def fps(self) -> float:
        return 1000 / self.frame_interval
