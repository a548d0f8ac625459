"""Streaming MP3 encoding of linear PCM."""

import asyncio
import logging
from fractions import Fraction

import av
import numpy as np

from ..errors import EncodeError
from ..models.audio import PcmAudio

logger = logging.getLogger(__name__)

MP3_FRAME_SIZE = 1152


async def encode_mp3(pcm: PcmAudio, bit_rate: int = 128000) -> bytes:
    """Encode PCM as MP3, frame by frame.

    The PCM is cut into 1152-sample frames (the last one zero-padded), each
    frame is fed to the encoder in order and whatever it emits is appended,
    then the encoder's trailing buffer is flushed.

    Args:
        pcm: Planar float PCM (mono or stereo)
        bit_rate: Constant bit rate in bits per second

    Returns:
        MP3 bytes

    Raises:
        EncodeError: If the encoder cannot be created or rejects a frame
    """
    if pcm.channel_count not in (1, 2):
        raise EncodeError(f"MP3 supports 1 or 2 channels, got {pcm.channel_count}")
    layout = "mono" if pcm.channel_count == 1 else "stereo"

    try:
        codec = av.CodecContext.create("libmp3lame", "w")
        codec.sample_rate = pcm.sample_rate
        codec.layout = layout
        codec.format = "fltp"
        codec.bit_rate = bit_rate
        codec.time_base = Fraction(1, pcm.sample_rate)
        codec.open()
    except (av.FFmpegError, ValueError) as e:
        raise EncodeError(f"Could not create MP3 encoder: {e}") from e

    samples = np.clip(pcm.samples, -1.0, 1.0)
    total = pcm.sample_count
    output = bytearray()
    frame_count = 0

    try:
        for offset in range(0, total, MP3_FRAME_SIZE):
            block = samples[:, offset:offset + MP3_FRAME_SIZE]
            if block.shape[1] < MP3_FRAME_SIZE:
                block = np.pad(block, ((0, 0), (0, MP3_FRAME_SIZE - block.shape[1])))
            frame = av.AudioFrame.from_ndarray(np.ascontiguousarray(block, dtype=np.float32),
                                               format="fltp", layout=layout)
            frame.sample_rate = pcm.sample_rate
            frame.pts = offset
            for packet in codec.encode(frame):
                output.extend(bytes(packet))
            frame_count += 1
            await asyncio.sleep(0)

        for packet in codec.encode(None):
            output.extend(bytes(packet))
    except (av.FFmpegError, ValueError) as e:
        raise EncodeError(f"MP3 encode failed at frame {frame_count}: {e}") from e

    logger.debug(f"Encoded {frame_count} MP3 frames ({len(output)} bytes at {bit_rate} bps)")
    return bytes(output)
