"""Microphone capture: device access and the live capture session."""

import asyncio
import logging
from typing import Callable, List, Optional

import numpy as np
import pyaudio

from ..errors import DeviceError, EncodeError
from ..models.audio import CaptureConstraints, EncodedChunk, InputDevice
from .analyser import FrequencyAnalyser
from .encoder import ContainerEncoder

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[CaptureConstraints], ContainerEncoder]


def list_input_devices() -> List[InputDevice]:
    """Enumerate input-capable audio devices.

    Raises:
        DeviceError: If the audio system cannot be queried
    """
    try:
        pa = pyaudio.PyAudio()
    except Exception as e:
        raise DeviceError(f"Audio system unavailable: {e}") from e

    devices = []
    try:
        try:
            default_index = pa.get_default_input_device_info()["index"]
        except IOError:
            default_index = None
        for index in range(pa.get_device_count()):
            info = pa.get_device_info_by_index(index)
            if info.get("maxInputChannels", 0) <= 0:
                continue
            devices.append(InputDevice(
                device_id=index,
                label=info.get("name") or f"Microphone {index}",
                max_input_channels=int(info["maxInputChannels"]),
                default_sample_rate=float(info.get("defaultSampleRate", 0.0)),
                is_default=index == default_index,
            ))
    finally:
        pa.terminate()
    return devices


class CaptureSession:
    """One open microphone connection.

    Owns the PyAudio instance, the input stream, the analyser tap and, while
    recording, the container encoder. PortAudio delivers blocks on its own
    thread; every block is handed to the event loop before anything else
    touches it.
    """

    def __init__(self,
                 constraints: CaptureConstraints,
                 loop: asyncio.AbstractEventLoop,
                 analyser: Optional[FrequencyAnalyser] = None,
                 encoder_factory: Optional[EncoderFactory] = None,
                 label: str = "Microphone"):
        self.constraints = constraints
        self.sample_rate = constraints.sample_rate
        self.channels = constraints.channels
        self.label = label
        self.analyser = analyser or FrequencyAnalyser()
        self.gain = 1.0

        self._loop = loop
        self._encoder_factory = encoder_factory or _default_encoder
        self._encoder: Optional[ContainerEncoder] = None
        self._on_chunk: Optional[Callable[[EncodedChunk], None]] = None
        self.media_type: Optional[str] = None
        self.encoder_error: Optional[Exception] = None

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self.total_blocks = 0

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    @property
    def is_encoding(self) -> bool:
        return self._encoder is not None

    def open(self) -> None:
        """Open the PortAudio input stream.

        Raises:
            DeviceError: If the device cannot be opened
        """
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.constraints.device_id,
                frames_per_buffer=self.constraints.frames_per_buffer,
                stream_callback=self._on_audio,
            )
        except Exception as e:
            self.close()
            raise DeviceError(f"Could not open input device {self.constraints.device_id}: {e}") from e
        logger.info(f"Capture session opened on '{self.label}': {self.sample_rate}Hz, "
                    f"{self.channels} channel(s), {self.constraints.frames_per_buffer} frames/buffer")

    def _on_audio(self, in_data, frame_count, time_info, status):
        """PortAudio callback (audio thread)."""
        if status:
            logger.debug(f"Capture status flags: {status}")
        samples = np.frombuffer(in_data, dtype=np.float32).copy()
        try:
            self._loop.call_soon_threadsafe(self.ingest, samples)
        except RuntimeError:
            # Event loop already closed
            return (None, pyaudio.paComplete)
        return (None, pyaudio.paContinue)

    def ingest(self, samples: np.ndarray) -> None:
        """Process one captured block on the event loop thread."""
        if not self.is_open:
            return
        self.total_blocks += 1
        if self.gain != 1.0:
            samples = np.clip(samples * self.gain, -1.0, 1.0).astype(np.float32)

        if self.channels > 1:
            frames = samples.reshape(-1, self.channels)
            self.analyser.push(frames.mean(axis=1))
            planar = frames.T
        else:
            self.analyser.push(samples)
            planar = samples

        if self._encoder is not None:
            try:
                self._encoder.write(planar)
            except EncodeError as e:
                logger.error(f"Capture encoder failed, no further chunks will be produced: {e}")
                self.encoder_error = e
                self._encoder = None

    def set_gain(self, gain: float) -> None:
        self.gain = max(0.0, float(gain))
        logger.debug(f"Input gain set to {self.gain:.2f}")

    def start_encoding(self, on_chunk: Callable[[EncodedChunk], None],
                       timeslice_seconds: float = 1.0) -> None:
        """Start the compressed stream, delivering a chunk every ``timeslice_seconds``."""
        if not self.is_open:
            raise DeviceError("Capture session is closed")
        encoder = self._encoder_factory(self.constraints)
        encoder.timeslice_seconds = timeslice_seconds
        self._on_chunk = on_chunk
        encoder.open(self._deliver_chunk)
        self._encoder = encoder
        self.media_type = encoder.media_type
        self.encoder_error = None

    def _deliver_chunk(self, chunk: EncodedChunk) -> None:
        handler = self._on_chunk
        if handler is None:
            logger.debug(f"Dropping chunk #{chunk.sequence_number}: no handler registered")
            return
        handler(chunk)

    def clear_chunk_handler(self) -> None:
        self._on_chunk = None

    async def finalize(self) -> None:
        """Stop the compressed stream, flushing its last partial chunk."""
        encoder, self._encoder = self._encoder, None
        if encoder is None:
            return
        # Let blocks already queued by the audio thread reach the encoder first
        await asyncio.sleep(0)
        encoder.finish()

    def close(self) -> None:
        """Release the stream and the PyAudio instance. Safe to call repeatedly."""
        self._encoder = None
        self._on_chunk = None
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                if stream.is_active():
                    stream.stop_stream()
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing capture stream: {e}")
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
            logger.info(f"Capture session on '{self.label}' closed")


def _default_encoder(constraints: CaptureConstraints) -> ContainerEncoder:
    return ContainerEncoder(sample_rate=constraints.sample_rate, channels=constraints.channels)


class CaptureDevice:
    """Opens capture sessions on the host's microphones."""

    def __init__(self,
                 analyser_factory: Optional[Callable[[], FrequencyAnalyser]] = None,
                 encoder_factory: Optional[EncoderFactory] = None):
        self.analyser_factory = analyser_factory or FrequencyAnalyser
        self.encoder_factory = encoder_factory

    def list_input_devices(self) -> List[InputDevice]:
        return list_input_devices()

    async def open_stream(self, constraints: CaptureConstraints) -> CaptureSession:
        """Open a capture session honouring ``constraints``.

        Echo cancellation, noise suppression and automatic gain control are
        never applied; PortAudio delivers the raw device signal.

        Raises:
            DeviceError: Microphone unavailable, denied or unknown
        """
        loop = asyncio.get_running_loop()
        label = await loop.run_in_executor(None, self._describe, constraints.device_id)
        session = CaptureSession(
            constraints,
            loop,
            analyser=self.analyser_factory(),
            encoder_factory=self.encoder_factory,
            label=label,
        )
        await loop.run_in_executor(None, session.open)
        return session

    def _describe(self, device_id: Optional[int]) -> str:
        pa = pyaudio.PyAudio()
        try:
            if device_id is None:
                info = pa.get_default_input_device_info()
            else:
                info = pa.get_device_info_by_index(device_id)
            return info.get("name") or "Microphone"
        except (IOError, ValueError) as e:
            raise DeviceError(f"Input device {device_id} not available: {e}") from e
        finally:
            pa.terminate()
