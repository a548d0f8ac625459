"""Frequency/time-domain analyser tapping the raw capture samples."""

import logging

import numpy as np
from scipy import fft as sp_fft
from scipy.signal import windows

logger = logging.getLogger(__name__)


class FrequencyAnalyser:
    """Keeps the most recent ``fft_size`` samples and derives byte spectra from them.

    The byte mapping follows the usual analyser-node convention: magnitudes are
    smoothed over time, converted to dB and mapped from
    ``[min_decibels, max_decibels]`` onto 0..255.
    """

    def __init__(self, fft_size: int = 256, smoothing: float = 0.3,
                 min_decibels: float = -100.0, max_decibels: float = -30.0):
        """Initialize analyser.

        Args:
            fft_size: Analysis window length (power of two)
            smoothing: Time constant in [0, 1) blending with the previous spectrum
            min_decibels: dB value mapped to byte 0
            max_decibels: dB value mapped to byte 255
        """
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = windows.blackman(fft_size, sym=False).astype(np.float32)
        self._samples = np.zeros(fft_size, dtype=np.float32)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Feed newly captured mono samples into the analysis ring."""
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if samples.size >= self.fft_size:
            self._samples = samples[-self.fft_size:].copy()
        elif samples.size:
            self._samples = np.concatenate((self._samples[samples.size:], samples))

    def byte_frequency_data(self) -> np.ndarray:
        """Current smoothed spectrum as ``frequency_bin_count`` unsigned bytes."""
        spectrum = sp_fft.rfft(self._samples * self._window)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude

        with np.errstate(divide="ignore"):
            decibels = 20 * np.log10(self._smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor(scale * (decibels - self.min_decibels))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def byte_time_domain_data(self) -> np.ndarray:
        """Most recent waveform window as unsigned bytes centred on 128."""
        scaled = np.floor(128.0 * (1.0 + self._samples[-self.frequency_bin_count:]))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def reset(self) -> None:
        self._samples[:] = 0
        self._smoothed[:] = 0
