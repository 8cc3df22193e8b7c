"""Digital Signal Processing (DSP) layer for band energy measurement."""

import logging

import numpy as np

from ..config import DetectorConfig
from ..errors import ConfigurationError, FrameSizeError
from ..models import AudioFrame

logger = logging.getLogger(__name__)


class SpectralFrameAnalyzer:
    """Reduces one audio frame to the energy of the carrier band.

    Performs an unwindowed real FFT over the whole frame, keeps the bins whose
    centre frequency falls inside ``target +/- tolerance`` and returns the
    largest magnitude among them. The kept bin range is computed once, so the
    per-frame path only touches the few bins in the band.
    """

    def __init__(self, config: DetectorConfig):
        """Initialize the analyzer.

        Args:
            config: Detector configuration (validated here)

        Raises:
            ConfigurationError: If the band holds no FFT bin
        """
        config.validate()
        self.config = config
        self.sample_rate = config.sample_rate
        self.frame_size = config.frame_size
        self.method = config.method

        # Only the first half of the spectrum is considered (no Nyquist bin)
        resolution = config.bin_width
        low, high = config.band
        bins = np.arange(self.frame_size // 2)
        freqs = bins * resolution
        in_band = np.nonzero((freqs >= low) & (freqs <= high))[0]
        if len(in_band) == 0:
            raise ConfigurationError(
                f"No FFT bin between {low:.0f}Hz and {high:.0f}Hz "
                f"(bin width {resolution:.2f}Hz)"
            )

        self._first_bin = int(in_band[0])
        self._last_bin = int(in_band[-1]) + 1

        logger.debug(
            f"Analyzer band {low:.0f}-{high:.0f}Hz -> bins {self._first_bin}..{self._last_bin - 1} "
            f"({self.method})"
        )

    def band_frequencies(self) -> np.ndarray:
        """Centre frequencies (Hz) of the bins that make up the band."""
        return np.arange(self._first_bin, self._last_bin) * self.config.bin_width

    def analyze(self, frame: AudioFrame) -> float:
        """Compute the band energy of a frame.

        Args:
            frame: Captured audio frame (PCM16 mono)

        Returns:
            Non-negative band energy

        Raises:
            FrameSizeError: If the frame length differs from the configured size
        """
        if len(frame) != self.frame_size or len(frame.pcm_bytes) % 2:
            raise FrameSizeError(self.frame_size, len(frame.pcm_bytes) // 2)

        samples = frame.samples().astype(np.float64)
        spectrum = np.fft.rfft(samples)

        if self.method == "envelope":
            return self._envelope_energy(spectrum)

        band = spectrum[self._first_bin : self._last_bin]
        return float(np.max(np.hypot(band.real, band.imag)))

    def _envelope_energy(self, spectrum: np.ndarray) -> float:
        """Band-pass the spectrum, transform back and take the pairwise envelope.

        The filtered time signal is read as consecutive (re, im) pairs and the
        largest pair magnitude is returned.
        """
        filtered = np.zeros_like(spectrum)
        filtered[self._first_bin : self._last_bin] = spectrum[self._first_bin : self._last_bin]
        signal = np.fft.irfft(filtered, n=self.frame_size)

        pairs = signal.reshape(-1, 2)
        return float(np.max(np.hypot(pairs[:, 0], pairs[:, 1])))
