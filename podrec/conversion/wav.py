"""Uncompressed 16-bit PCM WAV encoding."""

import io
import struct
import wave
from dataclasses import dataclass

import numpy as np

from ..errors import EncodeError
from ..models.audio import PcmAudio

WAV_HEADER_SIZE = 44


@dataclass(frozen=True)
class WavHeader:
    """Fields of a canonical 44-byte WAV header."""
    riff_size: int
    fmt_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


def pcm_to_int16(samples: np.ndarray) -> np.ndarray:
    """Clamp float samples to [-1, 1] and scale by 32767, truncating toward zero."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767).astype(np.int16)


def encode_wav(pcm: PcmAudio) -> bytes:
    """Encode PCM as a 16-bit little-endian WAV file.

    Args:
        pcm: Planar float PCM

    Returns:
        Complete WAV file bytes (44-byte header followed by interleaved samples)
    """
    if pcm.channel_count < 1 or pcm.sample_rate <= 0:
        raise EncodeError(f"Invalid PCM: {pcm.channel_count} channels at {pcm.sample_rate}Hz")

    interleaved = pcm_to_int16(pcm.samples).T.reshape(-1)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(pcm.channel_count)
        wf.setsampwidth(2)
        wf.setframerate(pcm.sample_rate)
        wf.setnframes(pcm.sample_count)
        wf.writeframes(interleaved.astype("<i2").tobytes())
    return buffer.getvalue()


def read_wav_header(data: bytes) -> WavHeader:
    """Parse the canonical 44-byte WAV header.

    Raises:
        ValueError: If ``data`` does not start with a canonical PCM WAV header
    """
    if len(data) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")
    (riff, riff_size, wave_id, fmt_id, fmt_size, format_tag, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = struct.unpack("<4sI4s4sIHHIIHH4sI", data[:44])
    if riff != b"RIFF" or wave_id != b"WAVE" or fmt_id != b"fmt " or data_id != b"data":
        raise ValueError("Not a canonical RIFF/WAVE header")
    return WavHeader(
        riff_size=riff_size,
        fmt_size=fmt_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )
