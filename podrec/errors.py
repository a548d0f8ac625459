"""Error taxonomy for the recording pipeline."""

from typing import Optional


class RecorderError(Exception):
    """Base class for all recorder errors."""


class DeviceError(RecorderError):
    """Microphone unavailable, denied or invalid device id."""


class NoDestination(RecorderError):
    """Recording cannot start because no save destination is resolved."""


class NotReady(RecorderError):
    """Invalid state transition attempt."""


class DecodeError(RecorderError):
    """Compressed container could not be decoded into PCM."""


class EncodeError(RecorderError):
    """PCM could not be encoded into the target format."""


class WriteError(RecorderError):
    """Host write failed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path
