"""Services layer for podrec recording logic."""

from .recording_service import Recorder, EVENT_TOPIC
from .timers import RepeatingTimer

__all__ = [
    "Recorder",
    "EVENT_TOPIC",
    "RepeatingTimer",
]
