"""Compressed → PCM → target format conversion with format fallback."""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from ..errors import DecodeError, EncodeError, RecorderError
from ..models.audio import PcmAudio
from ..models.storage import ConvertedAudio
from .decoder import decode_container
from .mp3 import encode_mp3
from .wav import encode_wav

logger = logging.getLogger(__name__)

TARGET_MEDIA_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
}

_CONTAINER_EXTENSIONS = {
    "webm": "webm",
    "ogg": "ogg",
    "mp4": "m4a",
    "x-matroska": "mka",
    "mpeg": "mp3",
    "wav": "wav",
}


def container_extension(media_type: str) -> str:
    """Native file extension for a container media type ("audio/webm;codecs=opus" → "webm")."""
    subtype = media_type.split(";", 1)[0].split("/")[-1].strip().lower()
    return _CONTAINER_EXTENSIONS.get(subtype, subtype or "bin")


def target_format_for(path: Optional[str]) -> str:
    """Choose the target format from a destination path's suffix."""
    if path and path.lower().endswith(".mp3"):
        return "mp3"
    return "wav"


class FormatConverter:
    """Converts a captured container to a distributable format.

    ``convert`` walks an ordered list of attempts: encode the target format,
    then pass the original container through unchanged. The first success
    wins; because passthrough cannot fail, codec errors never escape.
    """

    def __init__(self, mp3_bit_rate: int = 128000, sample_rate: Optional[int] = None):
        """Initialize format converter.

        Args:
            mp3_bit_rate: Constant bit rate for MP3 output
            sample_rate: Rate of the decoded PCM (the capture rate); None keeps
                the container stream's native rate
        """
        self.mp3_bit_rate = mp3_bit_rate
        self.sample_rate = sample_rate

    async def decode(self, data: bytes, media_type: str) -> PcmAudio:
        """Decode container bytes to PCM off the event loop thread."""
        return await asyncio.to_thread(decode_container, data, media_type,
                                       sample_rate=self.sample_rate)

    async def encode(self, pcm: PcmAudio, target: str) -> bytes:
        """Encode PCM into ``target`` ("wav" or "mp3")."""
        if target == "wav":
            return encode_wav(pcm)
        if target == "mp3":
            return await encode_mp3(pcm, bit_rate=self.mp3_bit_rate)
        raise EncodeError(f"Unsupported target format: {target}")

    async def convert(self, data: bytes, media_type: str, target: str = "wav") -> ConvertedAudio:
        """Convert container bytes to ``target``, falling back to the raw container.

        Args:
            data: Concatenated container chunks
            media_type: Media type of the container
            target: Desired format ("wav" or "mp3")

        Returns:
            ConvertedAudio describing the bytes actually produced
        """
        attempts: List[Tuple[str, Callable[[], Awaitable[ConvertedAudio]]]] = [
            (target, lambda: self._transcode(data, media_type, target)),
            ("passthrough", lambda: self._passthrough(data, media_type)),
        ]

        last_error: Optional[RecorderError] = None
        for name, attempt in attempts:
            try:
                result = await attempt()
            except (DecodeError, EncodeError) as e:
                logger.warning(f"Conversion attempt '{name}' failed: {e}")
                last_error = e
                continue
            if last_error is not None:
                result = ConvertedAudio(
                    data=result.data,
                    extension=result.extension,
                    media_type=result.media_type,
                    fell_back=True,
                    error=last_error,
                )
            logger.info(f"Converted {len(data)} bytes of {media_type} via '{name}': "
                        f"{len(result.data)} bytes .{result.extension}")
            return result

        raise EncodeError("Every conversion attempt failed")

    async def _transcode(self, data: bytes, media_type: str, target: str) -> ConvertedAudio:
        pcm = await self.decode(data, media_type)
        encoded = await self.encode(pcm, target)
        return ConvertedAudio(data=encoded, extension=target, media_type=TARGET_MEDIA_TYPES[target])

    async def _passthrough(self, data: bytes, media_type: str) -> ConvertedAudio:
        return ConvertedAudio(data=data, extension=container_extension(media_type),
                              media_type=media_type.split(";", 1)[0])
