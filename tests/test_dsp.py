# tests/test_dsp.py

import numpy as np
import pytest

from ultrasonic_proximity.config import DetectorConfig
from ultrasonic_proximity.errors import ConfigurationError, FrameSizeError
from ultrasonic_proximity.generator import generate_noise, generate_tone
from ultrasonic_proximity.models import AudioFrame
from ultrasonic_proximity.processing import SpectralFrameAnalyzer


def tone_frame(config: DetectorConfig, frequency: float, amplitude: float = 8000.0) -> AudioFrame:
    return AudioFrame.from_samples(
        generate_tone(frequency, config.frame_size, config.sample_rate, amplitude)
    )


# ---------------------------------------------------------------------------
# Frame decoding
# ---------------------------------------------------------------------------


def test_frame_decodes_signed_little_endian():
    frame = AudioFrame(b"\x01\x00\xff\xff\x00\x80")

    assert len(frame) == 3
    assert frame.samples().tolist() == [1, -1, -32768]


def test_from_samples_clips_to_int16():
    frame = AudioFrame.from_samples(np.array([40000.0, -40000.0, 12.0]))

    assert frame.samples().tolist() == [32767, -32768, 12]


# ---------------------------------------------------------------------------
# Band energy
# ---------------------------------------------------------------------------


def test_carrier_energy_dominates_off_band_tone():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    carrier = analyzer.analyze(tone_frame(config, 20000.0))
    audible = analyzer.analyze(tone_frame(config, 1000.0))

    assert carrier > 10 * audible
    assert carrier > config.peak_floor


def test_silence_has_zero_energy():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    silence = AudioFrame.from_samples(np.zeros(config.frame_size))

    assert analyzer.analyze(silence) == 0.0


def test_background_noise_stays_below_floor():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)
    rng = np.random.default_rng(1)

    for _ in range(20):
        frame = AudioFrame.from_samples(generate_noise(config.frame_size, 10.0, rng))
        assert analyzer.analyze(frame) < config.peak_floor


def test_band_covers_target_bins_only():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    freqs = analyzer.band_frequencies()

    assert len(freqs) > 0
    assert freqs.min() >= 20000.0 - 50.0
    assert freqs.max() <= 20000.0 + 50.0


def test_envelope_method_separates_tone_from_noise():
    config = DetectorConfig.envelope()
    analyzer = SpectralFrameAnalyzer(config)
    rng = np.random.default_rng(2)

    carrier = analyzer.analyze(tone_frame(config, 20000.0))
    noise = analyzer.analyze(
        AudioFrame.from_samples(generate_noise(config.frame_size, 10.0, rng))
    )

    assert carrier > config.peak_floor
    assert noise < config.peak_floor


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


def test_wrong_frame_size_raises():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    with pytest.raises(FrameSizeError) as exc:
        analyzer.analyze(AudioFrame.from_samples(np.zeros(1024)))

    assert exc.value.expected == config.frame_size
    assert exc.value.actual == 1024


def test_odd_byte_count_raises():
    config = DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    with pytest.raises(FrameSizeError) as exc:
        analyzer.analyze(AudioFrame(b"\x00" * (config.frame_size * 2 + 1)))

    assert exc.value.actual == config.frame_size
    assert isinstance(exc.value.actual, int)


def test_tolerance_narrower_than_a_bin_is_rejected():
    with pytest.raises(ConfigurationError):
        SpectralFrameAnalyzer(DetectorConfig(tolerance=10.0))


def test_band_above_nyquist_is_rejected():
    with pytest.raises(ConfigurationError):
        DetectorConfig(target_frequency=22040.0).validate()


def test_odd_frame_size_is_rejected():
    with pytest.raises(ConfigurationError):
        DetectorConfig(frame_size=2047).validate()
