"""Event models published to rendering collaborators."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class WaveformFrame:
    """Raw time-domain bytes (128 = silence) for waveform drawing."""
    data: bytes
    timestamp: float


@dataclass
class RecorderEvent:
    """Recorder lifecycle event."""
    event_type: str  # "state" or "saved"
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
