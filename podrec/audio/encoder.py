"""Streaming compressed-container encoder for the capture stream."""

import logging
import time
from fractions import Fraction
from typing import Callable, Optional

import av
import numpy as np

from ..errors import EncodeError
from ..models.audio import EncodedChunk

logger = logging.getLogger(__name__)

# Sample rates libopus accepts; anything else is resampled by the codec context
OPUS_SAMPLE_RATES = (48000, 24000, 16000, 12000, 8000)

ChunkCallback = Callable[[EncodedChunk], None]


class _ChunkSink:
    """Write-only file object collecting muxer output between chunk emissions.

    It has no seek/tell, so the muxer treats it as a forward-only stream and
    never rewrites bytes that were already handed out as chunks.
    """

    def __init__(self):
        self._pending = bytearray()

    def write(self, data) -> int:
        self._pending.extend(data)
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = bytes(self._pending)
        self._pending.clear()
        return data


class ContainerEncoder:
    """Encodes captured float samples into a compressed container, emitting
    a chunk every ``timeslice_seconds`` of captured audio.

    Concatenating every emitted chunk, in order, yields one complete
    container file.
    """

    def __init__(self,
                 sample_rate: int = 44100,
                 channels: int = 1,
                 container_format: str = "webm",
                 codec: str = "libopus",
                 bit_rate: int = 128000,
                 timeslice_seconds: float = 1.0):
        """Initialize container encoder.

        Args:
            sample_rate: Rate of the samples passed to ``write``
            channels: Number of captured channels
            container_format: FFmpeg muxer name ("webm", "ogg", ...)
            codec: FFmpeg encoder name
            bit_rate: Target bit rate in bits per second
            timeslice_seconds: Captured audio per emitted chunk
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self.container_format = container_format
        self.codec = codec
        self.bit_rate = bit_rate
        self.timeslice_seconds = timeslice_seconds
        self.media_type = f"audio/{container_format};codecs={codec.replace('lib', '', 1)}"

        self._container = None
        self._stream = None
        self._sink: Optional[_ChunkSink] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self._samples_written = 0
        self._samples_since_emit = 0
        self._sequence = 0

    @property
    def is_open(self) -> bool:
        return self._container is not None

    @property
    def layout(self) -> str:
        return "mono" if self.channels == 1 else "stereo"

    def open(self, on_chunk: ChunkCallback) -> None:
        """Create the container and stream; chunks are delivered to ``on_chunk``."""
        if self.is_open:
            raise EncodeError("Encoder is already open")

        codec_rate = self.sample_rate
        if self.codec == "libopus" and codec_rate not in OPUS_SAMPLE_RATES:
            codec_rate = 48000

        container_options = {"flush_packets": "1"}
        if self.container_format in ("webm", "matroska"):
            container_options.update({"live": "1", "cluster_time_limit": "1000"})

        self._sink = _ChunkSink()
        try:
            self._container = av.open(self._sink, mode="w", format=self.container_format,
                                      container_options=container_options)
            self._stream = self._container.add_stream(self.codec, rate=codec_rate)
            self._stream.layout = self.layout
            self._stream.bit_rate = self.bit_rate
        except av.FFmpegError as e:
            self._container = None
            self._stream = None
            raise EncodeError(f"Could not open {self.container_format}/{self.codec} encoder: {e}") from e

        self._on_chunk = on_chunk
        self._samples_written = 0
        self._samples_since_emit = 0
        self._sequence = 0
        logger.info(f"Container encoder opened: {self.media_type}, {self.bit_rate} bps, "
                    f"{self.timeslice_seconds}s timeslice")

    def write(self, samples: np.ndarray) -> None:
        """Encode a block of captured samples shaped ``(frames,)`` or ``(channels, frames)``."""
        if not self.is_open:
            return
        planar = np.ascontiguousarray(np.asarray(samples, dtype=np.float32).reshape(self.channels, -1))
        frame_count = planar.shape[1]
        if frame_count == 0:
            return

        frame = av.AudioFrame.from_ndarray(planar, format="fltp", layout=self.layout)
        frame.sample_rate = self.sample_rate
        frame.pts = self._samples_written
        frame.time_base = Fraction(1, self.sample_rate)
        try:
            for packet in self._stream.encode(frame):
                self._container.mux(packet)
        except av.FFmpegError as e:
            raise EncodeError(f"Container encode failed: {e}") from e

        self._samples_written += frame_count
        self._samples_since_emit += frame_count
        if self._samples_since_emit >= self.timeslice_seconds * self.sample_rate:
            self._samples_since_emit = 0
            self._emit()

    def finish(self) -> None:
        """Flush the codec, close the container and emit the last partial chunk."""
        if not self.is_open:
            return
        try:
            for packet in self._stream.encode(None):
                self._container.mux(packet)
            self._container.close()
        except av.FFmpegError as e:
            raise EncodeError(f"Container finalize failed: {e}") from e
        finally:
            self._container = None
            self._stream = None
            self._emit()
            self._on_chunk = None
        logger.info(f"Container encoder finished: {self._sequence} chunks, "
                    f"{self._samples_written / self.sample_rate:.1f}s encoded")

    def _emit(self) -> None:
        data = self._sink.drain() if self._sink else b""
        # Empty slices are not reported, matching zero-size data events
        if not data or self._on_chunk is None:
            return
        chunk = EncodedChunk(
            data=data,
            media_type=self.media_type,
            sequence_number=self._sequence,
            timestamp=time.time(),
        )
        self._sequence += 1
        self._on_chunk(chunk)
