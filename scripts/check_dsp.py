import logging
import sys

import numpy as np

from ultrasonic_proximity.config import DetectorConfig
from ultrasonic_proximity.generator import generate_tone
from ultrasonic_proximity.models import AudioFrame
from ultrasonic_proximity.processing.dsp import SpectralFrameAnalyzer

logging.basicConfig(level=logging.DEBUG)


def check_dsp(method: str = "direct"):
    config = DetectorConfig.envelope() if method == "envelope" else DetectorConfig()
    analyzer = SpectralFrameAnalyzer(config)

    print(f"Checking DSP with N={config.frame_size}, method={method}")
    print(f"Band bins: {', '.join(f'{f:.1f}' for f in analyzer.band_frequencies())} Hz")

    energies = {}
    for freq in (1000.0, 15000.0, 19500.0, config.target_frequency):
        tone = generate_tone(freq, config.frame_size, config.sample_rate)
        energies[freq] = analyzer.analyze(AudioFrame.from_samples(tone))
        print(f"  {freq:8.0f} Hz -> energy {energies[freq]:14.1f}")

    silence = analyzer.analyze(AudioFrame.from_samples(np.zeros(config.frame_size)))
    print(f"  silence     -> energy {silence:14.1f}")

    carrier = energies[config.target_frequency]
    worst = max(e for f, e in energies.items() if f != config.target_frequency)
    if carrier > config.peak_floor and carrier > 10 * worst:
        print("✅ DSP Success")
    else:
        print("❌ DSP Failed")


if __name__ == "__main__":
    check_dsp(sys.argv[1] if len(sys.argv) > 1 else "direct")
