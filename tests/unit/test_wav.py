"""Unit tests for WAV encoding."""

import io
import struct
import wave

import numpy as np
import pytest

from podrec.conversion.wav import encode_wav, pcm_to_int16, read_wav_header
from podrec.errors import EncodeError
from podrec.models.audio import PcmAudio


@pytest.mark.unit
class TestWavEncoding:
    """Test cases for encode_wav and read_wav_header."""

    def test_header_fields(self, sine_pcm):
        data = encode_wav(sine_pcm)
        header = read_wav_header(data)

        assert data[:4] == b"RIFF"
        assert header.riff_size == len(data) - 8
        assert header.fmt_size == 16
        assert header.format_tag == 1
        assert header.channels == 1
        assert header.sample_rate == 44100
        assert header.bits_per_sample == 16
        assert header.block_align == 2
        assert header.byte_rate == 44100 * 2
        assert header.data_size == sine_pcm.sample_count * 1 * 2
        assert len(data) == 44 + header.data_size

    def test_stereo_header_and_interleaving(self):
        left = np.array([0.5, -0.5, 0.25], dtype=np.float32)
        right = np.array([-1.0, 1.0, 0.0], dtype=np.float32)
        pcm = PcmAudio(samples=np.stack([left, right]), sample_rate=22050)

        data = encode_wav(pcm)
        header = read_wav_header(data)
        samples = struct.unpack("<6h", data[44:])

        assert header.channels == 2
        assert header.sample_rate == 22050
        assert header.data_size == 3 * 2 * 2
        assert samples == (16383, -32767, -16383, 32767, 8191, 0)

    def test_scaling_truncates_toward_zero(self):
        values = np.array([0.99999, -0.99999, 0.00002, -0.00002, 0.5], dtype=np.float32)

        result = pcm_to_int16(values).tolist()

        assert result == [32766, -32766, 0, 0, 16383]

    def test_out_of_range_is_clamped(self):
        values = np.array([1.5, -2.0, 1.0, -1.0], dtype=np.float32)

        assert pcm_to_int16(values).tolist() == [32767, -32767, 32767, -32767]

    def test_readable_by_wave_module(self, sine_pcm):
        data = encode_wav(sine_pcm)

        with wave.open(io.BytesIO(data), "rb") as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == 44100
            assert wf.getnframes() == sine_pcm.sample_count

    def test_empty_pcm(self):
        pcm = PcmAudio(samples=np.zeros((1, 0), dtype=np.float32), sample_rate=44100)
        data = encode_wav(pcm)

        assert len(data) == 44
        assert read_wav_header(data).data_size == 0

    def test_invalid_sample_rate(self):
        pcm = PcmAudio(samples=np.zeros(10, dtype=np.float32), sample_rate=0)

        with pytest.raises(EncodeError):
            encode_wav(pcm)

    def test_read_header_rejects_garbage(self):
        with pytest.raises(ValueError):
            read_wav_header(b"\x00" * 44)
        with pytest.raises(ValueError):
            read_wav_header(b"RIFF")
