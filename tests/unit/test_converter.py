"""Unit tests for FormatConverter and its fallback chain."""

import asyncio
from unittest.mock import patch

import pytest

from podrec.conversion.converter import FormatConverter, container_extension, target_format_for
from podrec.conversion.decoder import decode_container
from podrec.conversion.wav import read_wav_header
from podrec.errors import DecodeError, EncodeError

WEBM = "audio/webm;codecs=opus"


@pytest.mark.unit
class TestFormatHelpers:
    """Test cases for extension and target helpers."""

    @pytest.mark.parametrize("media_type,expected", [
        ("audio/webm;codecs=opus", "webm"),
        ("audio/webm", "webm"),
        ("audio/ogg;codecs=opus", "ogg"),
        ("audio/mp4", "m4a"),
        ("audio/x-matroska", "mka"),
    ])
    def test_container_extension(self, media_type, expected):
        assert container_extension(media_type) == expected

    @pytest.mark.parametrize("path,expected", [
        ("/tmp/take1.wav", "wav"),
        ("/tmp/take1.MP3", "mp3"),
        ("/tmp/take1", "wav"),
        (None, "wav"),
    ])
    def test_target_format_for(self, path, expected):
        assert target_format_for(path) == expected


@pytest.mark.unit
class TestFormatConverter:
    """Test cases for FormatConverter."""

    def test_converts_to_wav(self, sine_pcm):
        converter = FormatConverter()
        with patch.object(FormatConverter, "decode", _decodes_to(sine_pcm)):
            result = asyncio.run(converter.convert(b"container", WEBM, "wav"))

        assert result.extension == "wav"
        assert result.media_type == "audio/wav"
        assert result.fell_back is False
        assert read_wav_header(result.data).data_size == sine_pcm.sample_count * 2

    def test_decode_failure_falls_back_to_container(self):
        """A DecodeError downgrades to the original bytes with the native extension."""
        converter = FormatConverter()

        async def failing_decode(self, data, media_type):
            raise DecodeError("truncated container")

        with patch.object(FormatConverter, "decode", failing_decode):
            result = asyncio.run(converter.convert(b"original-bytes", WEBM, "wav"))

        assert result.data == b"original-bytes"
        assert result.extension == "webm"
        assert result.media_type == "audio/webm"
        assert result.fell_back is True
        assert isinstance(result.error, DecodeError)

    def test_encode_failure_falls_back_to_container(self, sine_pcm):
        converter = FormatConverter()

        async def failing_encode(self, pcm, target):
            raise EncodeError("lame unavailable")

        with patch.object(FormatConverter, "decode", _decodes_to(sine_pcm)), \
                patch.object(FormatConverter, "encode", failing_encode):
            result = asyncio.run(converter.convert(b"original-bytes", WEBM, "mp3"))

        assert result.data == b"original-bytes"
        assert result.extension == "webm"
        assert isinstance(result.error, EncodeError)

    def test_garbage_input_falls_back(self):
        """Real decoder on bytes that are not a container."""
        converter = FormatConverter()
        junk = b"\x00\x01not a media container\xff" * 4

        result = asyncio.run(converter.convert(junk, WEBM, "wav"))

        assert result.fell_back is True
        assert result.data == junk
        assert result.extension == "webm"

    def test_unsupported_target_falls_back(self, sine_pcm):
        converter = FormatConverter()
        with patch.object(FormatConverter, "decode", _decodes_to(sine_pcm)):
            result = asyncio.run(converter.convert(b"bytes", WEBM, "flac"))

        assert result.fell_back is True
        assert result.extension == "webm"

    def test_decode_uses_configured_rate(self, sine_pcm):
        converter = FormatConverter(sample_rate=44100)
        with patch("podrec.conversion.converter.decode_container", return_value=sine_pcm) as decode:
            asyncio.run(converter.convert(b"container", WEBM, "wav"))

        decode.assert_called_once_with(b"container", WEBM, sample_rate=44100)


@pytest.mark.unit
class TestDecoder:
    """Test cases for decode_container error handling."""

    def test_empty_input(self):
        with pytest.raises(DecodeError):
            decode_container(b"", WEBM)

    def test_garbage_input(self):
        with pytest.raises(DecodeError):
            decode_container(b"\x00\x01not a media container\xff" * 4, WEBM)


def _decodes_to(pcm):
    async def decode(self, data, media_type):
        return pcm
    return decode
