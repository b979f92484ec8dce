from __future__ import annotations


class FramecastError(RuntimeError):
    """Base class for every failure raised by framecast."""


class ProtocolError(FramecastError):
    """The remote rendering engine could not be reached or rejected a call."""


class BrowserNotFoundError(FramecastError):
    """The Chromium executable is missing."""


class EncoderError(FramecastError):
    """ffmpeg failed to assemble the captured frames."""


class ClockError(FramecastError):
    pass


class ClockNotInstalledError(ClockError):
    pass


class GrantOutstandingError(ClockError):
    """A budget was granted while the previous one had not expired yet."""


class ClockStoppedError(ClockError):
    pass


class UnexpectedExpiryError(ClockError):
    """The engine reported an expired budget that was never granted."""
