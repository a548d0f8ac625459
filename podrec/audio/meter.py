"""Level metering: loudness estimate, decaying peak marker and clipping flag."""

import asyncio
import logging
import math
import time
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..models.audio import MeterSample
from ..models.events import WaveformFrame

logger = logging.getLogger(__name__)

MeterObserver = Callable[[MeterSample], None]


class MeteringEngine:
    """Turns analyser byte magnitudes into ``MeterSample`` values.

    ``analyze`` is the pure part of the meter. The peak marker is the only
    state: it jumps up immediately when a louder level arrives and then decays
    on its own timer, independent of how often ``analyze`` is called.
    """

    def __init__(self,
                 floor_db: float = -60.0,
                 clip_threshold_db: float = -3.0,
                 peak_decay: float = 0.95,
                 peak_decay_interval: float = 0.1):
        """Initialize metering engine.

        Args:
            floor_db: Lowest reported level (silence)
            clip_threshold_db: Levels strictly above this are flagged as clipping
            peak_decay: Multiplicative factor applied to the peak amplitude per decay step
            peak_decay_interval: Seconds between peak decay steps
        """
        self.floor_db = floor_db
        self.clip_threshold_db = clip_threshold_db
        self.peak_decay = peak_decay
        self.peak_decay_interval = peak_decay_interval

        self.peak_db = floor_db
        self.last_sample: Optional[MeterSample] = None
        self._observers: List[MeterObserver] = []
        self._decay_handle: Optional[asyncio.TimerHandle] = None

    def add_observer(self, observer: MeterObserver) -> None:
        """Register a callback invoked with every new sample."""
        self._observers.append(observer)

    def remove_observer(self, observer: MeterObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def analyze(self, magnitudes: Sequence[int]) -> MeterSample:
        """Compute a meter sample from unsigned 8-bit frequency magnitudes.

        Args:
            magnitudes: Analyser magnitudes (0..255), typically 128 bins

        Returns:
            MeterSample with level, held peak and clipping flag
        """
        values = np.asarray(magnitudes, dtype=np.float64)
        normalized = float(values.mean()) / 255.0 if values.size else 0.0
        level_db = self._to_db(normalized)

        if level_db > self.peak_db:
            self.peak_db = level_db
            self._schedule_decay()

        sample = MeterSample(
            level_db=level_db,
            peak_db=self.peak_db,
            clipping=level_db > self.clip_threshold_db,
        )
        self.last_sample = sample
        self._notify(sample)
        return sample

    def decay(self) -> float:
        """Apply one decay step to the held peak and return the new peak."""
        if self.peak_db <= self.floor_db:
            self.peak_db = self.floor_db
            return self.peak_db
        decayed = self.peak_db + 20 * math.log10(self.peak_decay)
        self.peak_db = max(self.floor_db, decayed)
        return self.peak_db

    def reset(self) -> None:
        self.cancel_decay()
        self.peak_db = self.floor_db
        self.last_sample = None

    def cancel_decay(self) -> None:
        if self._decay_handle is not None:
            self._decay_handle.cancel()
            self._decay_handle = None

    def _to_db(self, normalized: float) -> float:
        if normalized <= 0:
            return self.floor_db
        return max(self.floor_db, min(0.0, 20 * math.log10(normalized)))

    def _schedule_decay(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without a loop the caller drives decay() explicitly
            return
        self.cancel_decay()
        self._decay_handle = loop.call_later(self.peak_decay_interval, self._on_decay_timer)

    def _on_decay_timer(self) -> None:
        self._decay_handle = None
        if self.decay() > self.floor_db:
            self._schedule_decay()

    def _notify(self, sample: MeterSample) -> None:
        for observer in list(self._observers):
            try:
                observer(sample)
            except Exception as e:
                logger.error(f"Meter observer {observer!r} failed: {e}", exc_info=True)


class MeterLoop:
    """Drives the metering engine from an analyser at a fixed refresh rate."""

    def __init__(self, engine: MeteringEngine, refresh_hz: float = 60.0,
                 waveform_callback: Optional[Callable[[WaveformFrame], None]] = None):
        self.engine = engine
        self.interval = 1.0 / refresh_hz
        self.waveform_callback = waveform_callback
        self.analyser = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, analyser) -> None:
        """Start (or retarget) the loop on the given analyser."""
        self.analyser = analyser
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="meter-loop")
        logger.debug(f"Meter loop started at {1.0 / self.interval:.0f} Hz")

    async def stop(self) -> None:
        task, self._task = self._task, None
        self.engine.cancel_decay()
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Meter loop stopped")

    def tick(self) -> Optional[MeterSample]:
        """Run one analysis pass against the current analyser."""
        if self.analyser is None:
            return None
        sample = self.engine.analyze(self.analyser.byte_frequency_data())
        if self.waveform_callback is not None:
            frame = WaveformFrame(data=self.analyser.byte_time_domain_data().tobytes(),
                                  timestamp=time.time())
            self.waveform_callback(frame)
        return sample

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval)
