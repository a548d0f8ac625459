"""Audio capture, metering and chunk buffering."""

from .capture import CaptureDevice, CaptureSession, list_input_devices
from .buffer import ChunkBuffer
from .encoder import ContainerEncoder
from .analyser import FrequencyAnalyser
from .meter import MeteringEngine, MeterLoop
from .meter_pub import MeterPublisher

__all__ = [
    'CaptureDevice',
    'CaptureSession',
    'list_input_devices',
    'ChunkBuffer',
    'ContainerEncoder',
    'FrequencyAnalyser',
    'MeteringEngine',
    'MeterLoop',
    'MeterPublisher',
]
