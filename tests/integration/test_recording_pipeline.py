"""Integration tests for the capture → chunk → convert → save pipeline.

These run the real PyAV encoders and decoders; PortAudio is mocked.
"""

import asyncio
from pathlib import Path

import av
import numpy as np
import pytest

from podrec.audio.capture import CaptureDevice
from podrec.audio.encoder import ContainerEncoder
from podrec.conversion.converter import FormatConverter
from podrec.conversion.decoder import decode_container
from podrec.conversion.mp3 import encode_mp3
from podrec.conversion.wav import WAV_HEADER_SIZE, read_wav_header
from podrec.models.audio import CaptureConstraints, PcmAudio, RecordingState
from podrec.services.recording_service import Recorder
from podrec.storage.host import DesktopHost, DownloadSink
from podrec.storage.persistence import PersistencePolicy

requires_opus = pytest.mark.skipif("libopus" not in av.codecs_available,
                                   reason="libopus encoder not available")
requires_lame = pytest.mark.skipif("libmp3lame" not in av.codecs_available,
                                   reason="libmp3lame encoder not available")

BLOCK = 1024


def sine(seconds, sample_rate=44100, amplitude=0.5):
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


def encode_blocks(samples, sample_rate=44100):
    chunks = []
    encoder = ContainerEncoder(sample_rate=sample_rate, channels=1)
    encoder.open(chunks.append)
    for offset in range(0, len(samples), BLOCK):
        encoder.write(samples[offset:offset + BLOCK])
    encoder.finish()
    return chunks


@pytest.mark.integration
@requires_opus
class TestContainerRoundTrip:
    """Encoded chunks concatenate into one decodable container."""

    def test_chunks_form_one_file(self):
        chunks = encode_blocks(sine(3.0))

        assert len(chunks) >= 3
        assert [c.sequence_number for c in chunks] == list(range(len(chunks)))
        assert all(len(c) > 0 for c in chunks)
        assert chunks[0].media_type == "audio/webm;codecs=opus"
        # EBML magic only at the start of the first chunk
        assert chunks[0].data[:4] == b"\x1a\x45\xdf\xa3"

        pcm = decode_container(b"".join(c.data for c in chunks), chunks[0].media_type)

        assert pcm.channel_count == 1
        assert pcm.duration_seconds == pytest.approx(3.0, abs=0.1)

    def test_convert_to_wav(self):
        chunks = encode_blocks(sine(2.0))
        converter = FormatConverter()

        result = asyncio.run(converter.convert(b"".join(c.data for c in chunks),
                                               chunks[0].media_type, "wav"))

        assert result.fell_back is False
        assert result.extension == "wav"
        header = read_wav_header(result.data)
        assert header.channels == 1
        assert header.bits_per_sample == 16
        assert header.data_size == len(result.data) - WAV_HEADER_SIZE
        assert header.data_size / header.block_align / header.sample_rate == pytest.approx(2.0, abs=0.1)

    def test_wav_keeps_capture_rate(self):
        """Opus runs at 48 kHz internally; the WAV comes back at the 44.1 kHz capture rate."""
        chunks = encode_blocks(sine(2.0))
        converter = FormatConverter(sample_rate=44100)

        result = asyncio.run(converter.convert(b"".join(c.data for c in chunks),
                                               chunks[0].media_type, "wav"))

        header = read_wav_header(result.data)
        assert result.fell_back is False
        assert header.sample_rate == 44100
        assert header.data_size / header.block_align / 44100 == pytest.approx(2.0, abs=0.1)

    def test_partial_container_never_raises(self):
        """A mid-recording snapshot converts or falls back, it never errors."""
        chunks = []
        encoder = ContainerEncoder(sample_rate=44100, channels=1)
        encoder.open(chunks.append)
        samples = sine(2.5)
        for offset in range(0, len(samples), BLOCK):
            encoder.write(samples[offset:offset + BLOCK])
        partial = b"".join(c.data for c in chunks)
        encoder.finish()

        result = asyncio.run(FormatConverter().convert(partial, encoder.media_type, "wav"))

        assert result.extension in ("wav", "webm")
        assert len(result.data) > 0


@pytest.mark.integration
@requires_lame
class TestMp3Encoding:
    """Test cases for the MP3 encoder."""

    def test_mp3_decodes_back(self, sine_pcm):
        data = asyncio.run(encode_mp3(sine_pcm, bit_rate=128000))

        assert len(data) > 0
        pcm = decode_container(data, "audio/mpeg")
        # Encoder delay and frame padding only ever add audio
        assert pcm.duration_seconds >= 0.99
        assert pcm.duration_seconds < 1.2

    def test_stereo_mp3(self):
        left = sine(0.5)
        pcm = PcmAudio(samples=np.stack([left, -left]), sample_rate=44100)

        data = asyncio.run(encode_mp3(pcm))

        assert decode_container(data, "audio/mpeg").channel_count == 2


@pytest.mark.integration
@requires_opus
class TestRecorderPipeline:
    """Full recorder run with mocked PortAudio and real codecs."""

    def test_record_to_wav(self, mock_pyaudio, temp_data_dir):
        destination = Path(temp_data_dir) / "take1.wav"
        host = DesktopHost(temp_data_dir)
        recorder = Recorder(
            device=CaptureDevice(),
            persistence=PersistencePolicy(host, DownloadSink(str(Path(temp_data_dir) / "dl"))),
            host=host,
            autosave_enabled=False,
        )

        async def run():
            assert await recorder.initialize()
            recorder.set_destination(str(destination))
            recorder.start()
            samples = sine(2.5)
            for offset in range(0, len(samples), BLOCK):
                recorder.session.ingest(samples[offset:offset + BLOCK])
                await asyncio.sleep(0)
            live_chunks = len(recorder.chunk_buffer)
            outcome = await recorder.stop()
            await recorder.close()
            return live_chunks, outcome

        live_chunks, outcome = asyncio.run(run())

        assert live_chunks >= 2
        assert outcome.success is True
        assert outcome.path == str(destination)
        assert recorder.state is RecordingState.IDLE
        header = read_wav_header(destination.read_bytes())
        assert header.channels == 1
        assert header.sample_rate == 44100
        assert header.data_size / header.block_align / header.sample_rate == pytest.approx(2.5, abs=0.1)
        mock_pyaudio['stream'].close.assert_called()
        mock_pyaudio['instance'].terminate.assert_called()

    def test_record_without_host_downloads(self, mock_pyaudio, temp_data_dir):
        downloads = DownloadSink(str(Path(temp_data_dir) / "dl"))
        recorder = Recorder(
            device=CaptureDevice(),
            persistence=PersistencePolicy(None, downloads),
            constraints=CaptureConstraints(sample_rate=48000),
            autosave_enabled=False,
        )

        async def run():
            assert await recorder.initialize()
            await recorder.resolve_default_destination()
            recorder.start()
            samples = sine(1.5, sample_rate=48000)
            for offset in range(0, len(samples), BLOCK):
                recorder.session.ingest(samples[offset:offset + BLOCK])
            outcome = await recorder.stop()
            await recorder.close()
            return outcome

        outcome = asyncio.run(run())

        assert outcome.method == "download"
        saved = Path(outcome.path)
        assert saved.parent == downloads.directory
        assert saved.name.startswith("recording-")
        assert saved.suffix == ".wav"
        assert read_wav_header(saved.read_bytes()).sample_rate == 48000
