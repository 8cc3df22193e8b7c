#!/usr/bin/env python3
"""Example: Run the detector without a microphone.

This example feeds a synthetic transmitter into the engine through a
scripted capture source, useful for:
- Trying the pattern matcher on a laptop without an ultrasonic speaker
- Custom audio sources
- Testing and simulation
"""

from dataclasses import replace

from ultrasonic_proximity import DetectorConfig, GlobalConfig, ProximityEngine
from ultrasonic_proximity.generator import ScriptedCapture, transmitter_frames, transmitter_states


def main():
    # No pacing: frames are already recorded
    detector = replace(DetectorConfig(), interval=0.0)
    config = GlobalConfig(detector=detector)

    print("Generating synthetic transmitter pattern...")
    states = transmitter_states(detector.pattern, cycles=3, gap=4)
    frames = transmitter_frames(states, detector, noise_level=200.0)
    print(f"Rendered {len(frames)} frames of {detector.frame_size} samples")

    engine = ProximityEngine(config, capture=ScriptedCapture(frames))

    print("Processing...")
    result = engine.detect()
    engine.stop()

    print(f"\n{result}")
    if result.matched:
        print("✅ Transmitter pattern detected!")
    else:
        print("⚠️  No detection")
    print("Band energies:", " ".join(f"{e:.0f}" for e in result.energies))


if __name__ == "__main__":
    main()
