"""Audio-related data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class RecordingState(Enum):
    """Lifecycle states of a recorder."""
    IDLE = "idle"
    ARMED = "armed"
    RECORDING = "recording"
    STOPPING = "stopping"


@dataclass(frozen=True)
class CaptureConstraints:
    """Constraints used to open a microphone stream."""
    sample_rate: int = 44100
    channels: int = 1
    echo_cancellation: bool = False
    noise_suppression: bool = False
    auto_gain_control: bool = False
    device_id: Optional[int] = None
    frames_per_buffer: int = 1024


@dataclass(frozen=True)
class InputDevice:
    """An audio input device reported by the host audio system."""
    device_id: int
    label: str
    max_input_channels: int
    default_sample_rate: float
    is_default: bool = False


@dataclass(frozen=True)
class EncodedChunk:
    """A fixed-interval slice of the compressed capture stream."""
    data: bytes
    media_type: str
    sequence_number: int
    timestamp: float  # Unix timestamp when the chunk was emitted

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class MeterSample:
    """Loudness estimate for one analysis window."""
    level_db: float
    peak_db: float
    clipping: bool


@dataclass
class PcmAudio:
    """Linear PCM audio.

    ``samples`` is a float32 array shaped ``(channels, frames)`` with values
    nominally in [-1.0, 1.0].
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(1, -1)
        self.samples = samples

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.sample_count / self.sample_rate


@dataclass
class RecorderStats:
    """Point-in-time recorder status for the UI layer."""
    state: RecordingState
    is_initialized: bool
    duration_seconds: float
    chunk_count: int
    buffered_bytes: int
    current_file_path: Optional[str]
    last_error: Optional[str] = None
    warnings: list = field(default_factory=list)
