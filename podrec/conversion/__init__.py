"""Format conversion: container decoding, WAV and MP3 encoding."""

from .converter import FormatConverter, container_extension, target_format_for
from .decoder import decode_container
from .mp3 import encode_mp3, MP3_FRAME_SIZE
from .wav import encode_wav, read_wav_header, WavHeader

__all__ = [
    'FormatConverter',
    'container_extension',
    'target_format_for',
    'decode_container',
    'encode_mp3',
    'MP3_FRAME_SIZE',
    'encode_wav',
    'read_wav_header',
    'WavHeader',
]
