"""Data models for the podrec recorder."""

from .audio import (
    RecordingState,
    CaptureConstraints,
    InputDevice,
    EncodedChunk,
    MeterSample,
    PcmAudio,
    RecorderStats,
)
from .storage import (
    SaveTarget,
    SaveDialogResult,
    WriteResult,
    ConvertedAudio,
    SaveOutcome,
)
from .events import WaveformFrame, RecorderEvent

__all__ = [
    "RecordingState",
    "CaptureConstraints",
    "InputDevice",
    "EncodedChunk",
    "MeterSample",
    "PcmAudio",
    "RecorderStats",
    "SaveTarget",
    "SaveDialogResult",
    "WriteResult",
    "ConvertedAudio",
    "SaveOutcome",
    "WaveformFrame",
    "RecorderEvent",
]
