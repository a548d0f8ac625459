"""Decoding of the compressed capture container into linear PCM."""

import io
import logging
from typing import Optional

import av
import numpy as np

from ..errors import DecodeError
from ..models.audio import PcmAudio

logger = logging.getLogger(__name__)


def decode_container(data: bytes, media_type: Optional[str] = None,
                     sample_rate: Optional[int] = None) -> PcmAudio:
    """Decode a compressed audio container into planar float32 PCM.

    Args:
        data: Complete (or truncated) container bytes
        media_type: Container media type, used for logging only; the format is probed
        sample_rate: Output rate; defaults to the stream's native rate

    Returns:
        PcmAudio with one float32 row per channel

    Raises:
        DecodeError: If the container is empty, malformed or has no decodable audio
    """
    if not data:
        raise DecodeError("No data to decode")

    try:
        with av.open(io.BytesIO(data), mode="r") as container:
            stream = next((s for s in container.streams if s.type == "audio"), None)
            if stream is None:
                raise DecodeError(f"No audio stream found in {media_type or 'container'}")

            channels = stream.codec_context.channels or 1
            layout = "mono" if channels == 1 else "stereo"
            rate = sample_rate or stream.codec_context.sample_rate
            resampler = av.AudioResampler(format="fltp", layout=layout, rate=rate)

            planes = []
            for frame in container.decode(stream):
                for resampled in resampler.resample(frame):
                    planes.append(resampled.to_ndarray())
            for resampled in resampler.resample(None):
                planes.append(resampled.to_ndarray())
    except DecodeError:
        raise
    except (av.FFmpegError, ValueError, EOFError) as e:
        raise DecodeError(f"Failed to decode {media_type or 'container'}: {e}") from e

    if not planes:
        raise DecodeError(f"{media_type or 'Container'} contained no audio frames")

    samples = np.concatenate(planes, axis=1).astype(np.float32)
    logger.debug(f"Decoded {len(data)} bytes of {media_type}: {samples.shape[1]} frames, "
                 f"{samples.shape[0]} channel(s) at {rate}Hz")
    return PcmAudio(samples=samples, sample_rate=rate)
