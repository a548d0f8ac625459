"""Pytest configuration and fixtures for podrec tests."""

import pytest
import asyncio
import tempfile
import time
import logging
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np

from podrec.audio.analyser import FrequencyAnalyser
from podrec.errors import DeviceError
from podrec.models.audio import CaptureConstraints, EncodedChunk, PcmAudio
from podrec.models.storage import ConvertedAudio, SaveDialogResult, WriteResult
from podrec.services.recording_service import Recorder
from podrec.storage.host import DownloadSink, HostBridge
from podrec.storage.persistence import PersistencePolicy


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

WEBM = "audio/webm;codecs=opus"


class FakeCaptureSession:
    """Stands in for a PortAudio-backed capture session."""

    def __init__(self, constraints: CaptureConstraints, label: str = "Test Mic"):
        self.constraints = constraints
        self.label = label
        self.analyser = FrequencyAnalyser()
        self.media_type = WEBM
        self.gain = 1.0
        self.is_open = True
        self.closed = False
        self.finalized = False
        self.timeslice_seconds = None
        self.final_chunks: List[bytes] = []
        self._on_chunk = None
        self._sequence = 0

    def set_gain(self, gain: float) -> None:
        self.gain = gain

    def start_encoding(self, on_chunk, timeslice_seconds: float = 1.0) -> None:
        self._on_chunk = on_chunk
        self.timeslice_seconds = timeslice_seconds
        self.finalized = False

    def emit(self, data: bytes) -> None:
        """Simulate the encoder producing one chunk."""
        chunk = EncodedChunk(data=data, media_type=self.media_type,
                             sequence_number=self._sequence, timestamp=time.time())
        self._sequence += 1
        if self._on_chunk is not None:
            self._on_chunk(chunk)

    async def finalize(self) -> None:
        for data in self.final_chunks:
            self.emit(data)
        self.finalized = True

    def clear_chunk_handler(self) -> None:
        self._on_chunk = None

    def close(self) -> None:
        self.is_open = False
        self.closed = True


class FakeCaptureDevice:
    """Capture device that opens fake sessions, or fails on demand."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sessions: List[FakeCaptureSession] = []
        self.opened_with: List[CaptureConstraints] = []

    async def open_stream(self, constraints: CaptureConstraints) -> FakeCaptureSession:
        self.opened_with.append(constraints)
        if self.fail:
            raise DeviceError("Permission denied")
        session = FakeCaptureSession(constraints)
        self.sessions.append(session)
        return session

    @property
    def session(self) -> Optional[FakeCaptureSession]:
        return self.sessions[-1] if self.sessions else None


class FakeHost(HostBridge):
    """Privileged host that records writes instead of touching the disk."""

    def __init__(self, default_path: str = "/tmp/default.wav", write_ok: bool = True,
                 dialog_path: Optional[str] = None):
        self.default_path = default_path
        self.write_ok = write_ok
        self.dialog_path = dialog_path
        self.writes = []
        self.dialog_calls = []

    async def choose_save_destination(self, title, input_source_label):
        self.dialog_calls.append((title, input_source_label))
        if self.dialog_path is None:
            return SaveDialogResult(canceled=True)
        return SaveDialogResult(canceled=False, path=self.dialog_path)

    async def default_save_destination(self, title, input_source_label):
        return self.default_path

    async def write_file(self, path, data):
        self.writes.append((path, data))
        if self.write_ok:
            return WriteResult(success=True)
        return WriteResult(success=False, error="Disk full")


class RecordingConverter:
    """Converter that records what it was asked to convert."""

    def __init__(self, output: bytes = b"RIFF-converted", extension: str = "wav"):
        self.output = output
        self.extension = extension
        self.calls = []

    async def convert(self, data, media_type, target="wav"):
        self.calls.append((data, media_type, target))
        return ConvertedAudio(data=self.output, extension=self.extension, media_type="audio/wav")


class SlowConverter:
    """Converter that takes a while and logs when each conversion starts and ends."""

    def __init__(self, delay: float = 0.1):
        self.delay = delay
        self.events: List[str] = []

    async def convert(self, data, media_type, target="wav"):
        self.events.append(f"start:{target}")
        await asyncio.sleep(self.delay)
        self.events.append(f"end:{target}")
        return ConvertedAudio(data=data, extension=target, media_type=f"audio/{target}")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.is_active.return_value = True
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {'name': 'Mock Mic'}
        mock_pyaudio_instance.get_device_info_by_index.return_value = {'name': 'Mock Mic 2'}

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def fake_device():
    return FakeCaptureDevice()


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def failing_host():
    """Privileged host whose writes fail."""
    return FakeHost(write_ok=False)


@pytest.fixture
def dialog_host():
    """Privileged host whose save dialog picks an MP3 path."""
    return FakeHost(dialog_path="/tmp/picked.mp3")


@pytest.fixture
def recording_converter():
    return RecordingConverter()


@pytest.fixture
def slow_converter():
    return SlowConverter()


@pytest.fixture
def downloads(temp_data_dir):
    return DownloadSink(str(Path(temp_data_dir) / "downloads"))


@pytest.fixture
def make_recorder(fake_device, downloads, recording_converter):
    """Build a recorder wired to fakes; keyword arguments override the defaults."""
    def factory(host=None, converter=None, **kwargs):
        persistence = PersistencePolicy(host, downloads)
        return Recorder(
            device=fake_device,
            persistence=persistence,
            converter=converter or recording_converter,
            host=host,
            **kwargs,
        )
    return factory


@pytest.fixture
def sine_pcm():
    """One second of a 440 Hz mono sine at 44.1 kHz, half scale."""
    sample_rate = 44100
    t = np.arange(sample_rate) / sample_rate
    samples = 0.5 * np.sin(2 * np.pi * 440 * t)
    return PcmAudio(samples=samples.astype(np.float32), sample_rate=sample_rate)


@pytest.fixture
def audio_test_data():
    """Generate float sample patterns for testing."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=44100):
        """Generate float32 samples.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence', 'full_scale')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            np.ndarray of float32 samples
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.arange(samples) / sample_rate
            data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            data = np.random.default_rng(1234).uniform(-1, 1, samples)
        elif pattern == "silence":
            data = np.zeros(samples)
        elif pattern == "full_scale":
            data = np.where(np.arange(samples) % 2 == 0, 1.0, -1.0)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return data.astype(np.float32)

    return generate_audio
