"""Recording state machine that owns the capture session and the save pipeline."""

import logging
import time
from dataclasses import replace
from typing import Optional, Sequence, Tuple

from pubsub import pub

from ..audio.analyser import FrequencyAnalyser
from ..audio.buffer import ChunkBuffer
from ..audio.capture import CaptureDevice, CaptureSession
from ..audio.encoder import ContainerEncoder
from ..audio.meter import MeteringEngine, MeterLoop
from ..audio.meter_pub import MeterPublisher
from ..config import RecorderConfig
from ..conversion.converter import FormatConverter, target_format_for
from ..errors import DeviceError, EncodeError, NoDestination, NotReady
from ..models.audio import CaptureConstraints, EncodedChunk, RecorderStats, RecordingState
from ..models.events import RecorderEvent
from ..models.storage import SaveOutcome, SaveTarget
from ..storage.host import DesktopHost, DownloadSink, HostBridge
from ..storage.persistence import PersistencePolicy
from .timers import RepeatingTimer

logger = logging.getLogger(__name__)

EVENT_TOPIC = "recorder.event"


class Recorder:
    """Core service that manages capture, chunk collection, autosave and saving.

    All methods run on one asyncio event loop. The recorder holds a single
    authoritative ``state``; the stop path reads it rather than any copy.
    """

    def __init__(self,
                 device: CaptureDevice,
                 persistence: PersistencePolicy,
                 converter: Optional[FormatConverter] = None,
                 host: Optional[HostBridge] = None,
                 constraints: Optional[CaptureConstraints] = None,
                 meter: Optional[MeteringEngine] = None,
                 meter_publisher: Optional[MeterPublisher] = None,
                 title: str = "",
                 timeslice_seconds: float = 1.0,
                 autosave_interval: float = 300.0,
                 autosave_enabled: bool = True,
                 meter_refresh_hz: float = 60.0):
        """Initialize recorder.

        Args:
            device: Capture device collaborator used to open sessions
            persistence: Save policy (privileged write / download)
            converter: Format converter (default: WAV/MP3 with container fallback)
            host: Privileged host bridge, or None when running without one
            constraints: Microphone constraints (44.1 kHz mono by default)
            meter: Metering engine fed from the session's analyser
            meter_publisher: Pub/sub publisher for meter samples and waveform frames
            title: Recording title used in default file names
            timeslice_seconds: Interval between encoded chunks
            autosave_interval: Seconds between emergency saves while recording
            autosave_enabled: Whether the autosave timer runs at all
            meter_refresh_hz: Metering cadence
        """
        self.device = device
        self.persistence = persistence
        self.constraints = constraints or CaptureConstraints()
        self.converter = converter or FormatConverter(sample_rate=self.constraints.sample_rate)
        self.host = host
        self.meter = meter or MeteringEngine()
        self.title = title
        self.timeslice_seconds = timeslice_seconds
        self.autosave_enabled = autosave_enabled

        self.state = RecordingState.IDLE
        self.session: Optional[CaptureSession] = None
        self.chunk_buffer = ChunkBuffer()
        self.destination: Optional[SaveTarget] = None
        self.is_initialized = False
        self.input_gain = 1.0
        self.last_error: Optional[Exception] = None
        self.last_outcome: Optional[SaveOutcome] = None

        self._recording_started_at: Optional[float] = None
        self._last_duration = 0.0
        self._autosave = RepeatingTimer(autosave_interval, self._autosave_tick, name="autosave")

        waveform_callback = None
        if meter_publisher is not None:
            self.meter.add_observer(meter_publisher.publish_sample)
            waveform_callback = meter_publisher.publish_waveform
        self._meter_loop = MeterLoop(self.meter, meter_refresh_hz, waveform_callback)

        logger.info("Recorder initialized "
                    f"({'privileged host' if host else 'download-only'}, "
                    f"autosave {'every ' + str(autosave_interval) + 's' if autosave_enabled else 'off'})")

    @classmethod
    def from_config(cls, config: RecorderConfig,
                    host: Optional[HostBridge] = None) -> "Recorder":
        """Build a recorder and its collaborators from configuration."""
        constraints = CaptureConstraints(
            sample_rate=config.get('audio.sample_rate', 44100),
            channels=config.get('audio.channels', 1),
            device_id=config.get('audio.device_id'),
            frames_per_buffer=config.get('audio.frames_per_buffer', 1024),
        )
        fft_size = config.get('meter.fft_size', 256)
        smoothing = config.get('meter.smoothing', 0.3)

        def make_encoder(c: CaptureConstraints) -> ContainerEncoder:
            return ContainerEncoder(
                sample_rate=c.sample_rate,
                channels=c.channels,
                container_format=config.get('encoder.container', 'webm'),
                codec=config.get('encoder.codec', 'libopus'),
                bit_rate=config.get('encoder.bit_rate', 128000),
            )

        device = CaptureDevice(
            analyser_factory=lambda: FrequencyAnalyser(fft_size=fft_size, smoothing=smoothing),
            encoder_factory=make_encoder,
        )
        if host is None and config.get('storage.privileged', True):
            host = DesktopHost(config.get('storage.desktop_directory'))
        persistence = PersistencePolicy(host, DownloadSink(config.get('storage.downloads_directory')))
        meter = MeteringEngine(
            floor_db=config.get('meter.floor_db', -60.0),
            clip_threshold_db=config.get('meter.clip_threshold_db', -3.0),
            peak_decay=config.get('meter.peak_decay', 0.95),
            peak_decay_interval=config.get('meter.peak_decay_interval_seconds', 0.1),
        )
        recorder = cls(
            device=device,
            persistence=persistence,
            converter=FormatConverter(mp3_bit_rate=config.get('conversion.mp3_bit_rate', 128000),
                                      sample_rate=constraints.sample_rate),
            host=host,
            constraints=constraints,
            meter=meter,
            meter_publisher=MeterPublisher(),
            title=config.get('recording.title', ''),
            timeslice_seconds=config.get('encoder.timeslice_seconds', 1.0),
            autosave_interval=config.get('autosave.interval_seconds', 300),
            autosave_enabled=config.get('autosave.enabled', True),
            meter_refresh_hz=config.get('meter.refresh_hz', 60),
        )
        recorder.input_gain = float(config.get('audio.input_gain', 1.0))
        return recorder

    # ------------------------------------------------------------------
    # Session lifecycle

    @property
    def current_file_path(self) -> Optional[str]:
        return self.destination.path if self.destination else None

    @property
    def input_source_label(self) -> str:
        return self.session.label if self.session else ""

    @property
    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    async def initialize(self, device_id: Optional[int] = None) -> bool:
        """Open the microphone and start metering.

        Args:
            device_id: Input device to use; None keeps the configured device

        Returns:
            True if the capture session is open, False on DeviceError
        """
        self._ensure_not_busy("initialize")
        if device_id is not None:
            self.constraints = replace(self.constraints, device_id=device_id)

        self._teardown_session()
        self.last_error = None
        try:
            session = await self.device.open_stream(self.constraints)
        except DeviceError as e:
            logger.error(f"Audio initialization failed: {e}")
            self.last_error = e
            self.is_initialized = False
            await self._meter_loop.stop()
            self._meter_loop.analyser = None
            self._set_state(RecordingState.IDLE)
            return False

        self.session = session
        session.set_gain(self.input_gain)
        self.is_initialized = True
        self.meter.reset()
        self._meter_loop.start(session.analyser)
        self._refresh_idle_state()
        logger.info(f"Recorder ready on '{session.label}'")
        return True

    async def switch_device(self, device_id: int) -> bool:
        """Tear down the current session and open ``device_id``.

        Raises:
            NotReady: While recording or stopping
        """
        self._ensure_not_busy("switch device")
        logger.info(f"Switching input device to {device_id}")
        return await self.initialize(device_id)

    def set_input_gain(self, gain: float) -> None:
        self.input_gain = max(0.0, float(gain))
        if self.session is not None:
            self.session.set_gain(self.input_gain)

    # ------------------------------------------------------------------
    # Destination

    async def resolve_default_destination(self) -> SaveTarget:
        """Resolve the default destination (host default path, else download)."""
        if self.host is None:
            self.destination = SaveTarget(path=None, is_privileged=False)
        else:
            path = await self.host.default_save_destination(self.title, self.input_source_label)
            self.destination = SaveTarget(path=path, is_privileged=True)
        logger.info(f"Default save destination: {self.destination.path or 'download'}")
        self._refresh_idle_state()
        return self.destination

    async def select_save_location(self) -> bool:
        """Ask the host for a destination.

        Returns:
            True if a destination was chosen, False if canceled or no host
        """
        if self.host is None:
            return False
        result = await self.host.choose_save_destination(self.title, self.input_source_label)
        if result.canceled or not result.path:
            return False
        self.destination = SaveTarget(path=result.path, is_privileged=True)
        logger.info(f"Save destination selected: {result.path}")
        self._refresh_idle_state()
        return True

    def set_destination(self, path: Optional[str]) -> SaveTarget:
        """Use ``path`` as destination; privileged only when a host is present."""
        self.destination = SaveTarget(path=path, is_privileged=self.host is not None and bool(path))
        self._refresh_idle_state()
        return self.destination

    # ------------------------------------------------------------------
    # Recording

    def start(self) -> None:
        """Start recording.

        Raises:
            NotReady: Capture not open, or already recording/stopping
            NoDestination: No save destination resolved
        """
        if self.session is None or not self.session.is_open:
            raise NotReady("Capture device is not open")
        if self.state in (RecordingState.RECORDING, RecordingState.STOPPING):
            raise NotReady(f"Cannot start while {self.state.value}")
        if self.destination is None:
            raise NoDestination("No save destination set; choose a save location first")

        self.chunk_buffer.reset()
        self.last_error = None
        self.last_outcome = None
        try:
            self.session.start_encoding(self._on_chunk, self.timeslice_seconds)
        except (DeviceError, EncodeError) as e:
            logger.error(f"Could not start the capture stream: {e}")
            self.last_error = e
            raise

        self._recording_started_at = time.monotonic()
        self._set_state(RecordingState.RECORDING)
        if self.autosave_enabled:
            self._autosave.start()
        logger.info(f"Recording started -> {self.current_file_path or 'download'}")

    def _on_chunk(self, chunk: EncodedChunk) -> None:
        if self.state not in (RecordingState.RECORDING, RecordingState.STOPPING):
            logger.debug(f"Ignoring chunk #{chunk.sequence_number} in state {self.state.value}")
            return
        self.chunk_buffer.append(chunk)

    async def stop(self) -> Optional[SaveOutcome]:
        """Stop recording and run the save pipeline.

        No-op unless recording. Always ends in IDLE; failures are recorded in
        ``last_error`` rather than raised.

        Returns:
            Outcome of the final save, or None if nothing was saved
        """
        if self.state is not RecordingState.RECORDING:
            logger.debug(f"stop() ignored in state {self.state.value}")
            return None

        # Invalidate the timer before the final flush begins
        self._autosave.cancel()
        self._set_state(RecordingState.STOPPING)
        logger.info("Stopping recording")

        outcome = None
        try:
            try:
                await self.session.finalize()
            finally:
                self.session.clear_chunk_handler()
            await self._autosave.wait_in_flight()

            chunks = self.chunk_buffer.snapshot()
            if not chunks:
                logger.warning("No audio chunks recorded; nothing to save")
            else:
                outcome = await self._save(chunks, emergency=False)
        except Exception as e:
            logger.error(f"Error finishing recording: {e}", exc_info=True)
            self.last_error = e
        finally:
            if self._recording_started_at is not None:
                self._last_duration = time.monotonic() - self._recording_started_at
            self._recording_started_at = None
            self._set_state(RecordingState.IDLE)

        logger.info(f"Recording stopped after {self._last_duration:.1f}s, "
                    f"{len(self.chunk_buffer)} chunks")
        return outcome

    async def emergency_save(self) -> Optional[SaveOutcome]:
        """Persist whatever is buffered without interrupting the recording.

        Never clears the buffer and never changes ``current_file_path``.

        Returns:
            Outcome of the save, or None when not recording, the buffer is
            empty or saving failed
        """
        if self.state is not RecordingState.RECORDING:
            logger.debug(f"Emergency save skipped in state {self.state.value}")
            return None
        chunks = self.chunk_buffer.snapshot()
        if not chunks:
            logger.debug("Emergency save skipped: buffer is empty")
            return None
        logger.info(f"Emergency save of {len(chunks)} buffered chunks")
        try:
            return await self._save(chunks, emergency=True)
        except Exception as e:
            logger.error(f"Emergency save failed: {e}", exc_info=True)
            self.last_error = e
            return None

    async def emergency_stop(self) -> Tuple[Optional[SaveOutcome], Optional[SaveOutcome]]:
        """Save the buffer immediately, then stop normally.

        Returns:
            (emergency save outcome, final save outcome)
        """
        emergency = None
        final = None
        try:
            emergency = await self.emergency_save()
        finally:
            final = await self.stop()
        return emergency, final

    async def _autosave_tick(self) -> None:
        await self.emergency_save()

    async def _save(self, chunks: Sequence[EncodedChunk], emergency: bool) -> SaveOutcome:
        data = b"".join(chunk.data for chunk in chunks)
        media_type = chunks[0].media_type
        destination = self.destination or SaveTarget(path=None, is_privileged=False)
        target = "wav" if emergency else target_format_for(destination.path)

        converted = await self.converter.convert(data, media_type, target)
        if converted.fell_back:
            logger.warning(f"Saving original .{converted.extension} container instead of "
                           f".{target}: {converted.error}")

        outcome = await self.persistence.resolve_and_write(
            converted.data, converted.extension, destination, emergency=emergency)
        self.last_outcome = outcome
        if not outcome.success:
            self.last_error = outcome.error
        self._publish("saved", success=outcome.success, path=outcome.path,
                      method=outcome.method, emergency=emergency)
        return outcome

    # ------------------------------------------------------------------
    # Status and teardown

    def get_stats(self) -> RecorderStats:
        """Get current recorder status."""
        duration = self._last_duration
        if self._recording_started_at is not None:
            duration = time.monotonic() - self._recording_started_at

        warnings = []
        if self.meter.last_sample is not None and self.meter.last_sample.clipping:
            warnings.append("clipping")
        if self.destination is None:
            warnings.append("no_destination")

        return RecorderStats(
            state=self.state,
            is_initialized=self.is_initialized,
            duration_seconds=duration,
            chunk_count=len(self.chunk_buffer),
            buffered_bytes=self.chunk_buffer.total_bytes,
            current_file_path=self.current_file_path,
            last_error=str(self.last_error) if self.last_error else None,
            warnings=warnings,
        )

    async def close(self) -> None:
        """Finish any recording and release every resource."""
        if self.state is RecordingState.RECORDING:
            await self.stop()
        self._autosave.cancel()
        await self._meter_loop.stop()
        self._teardown_session()
        self.is_initialized = False
        self._set_state(RecordingState.IDLE)

    async def __aenter__(self) -> "Recorder":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _teardown_session(self) -> None:
        session, self.session = self.session, None
        if session is not None:
            session.close()

    def _ensure_not_busy(self, action: str) -> None:
        if self.state in (RecordingState.RECORDING, RecordingState.STOPPING):
            logger.warning(f"Refusing to {action} while {self.state.value}")
            raise NotReady(f"Cannot {action} while {self.state.value}")

    def _refresh_idle_state(self) -> None:
        if self.state not in (RecordingState.IDLE, RecordingState.ARMED):
            return
        armed = self.session is not None and self.session.is_open and self.destination is not None
        self._set_state(RecordingState.ARMED if armed else RecordingState.IDLE)

    def _set_state(self, state: RecordingState) -> None:
        if state is self.state:
            return
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self._publish("state", state=state.value)

    def _publish(self, event_type: str, **metadata) -> None:
        pub.sendMessage(EVENT_TOPIC, event=RecorderEvent(event_type=event_type, metadata=metadata))
