#!/usr/bin/env python3
"""Test detection of the ultrasonic pattern with synthetic audio and noise mixing.

This test:
1. Generates the {3,1,3} transmitter pattern at 20 kHz
2. Mixes it with various background noise levels
3. Verifies detection still works, and that noise or audible tones alone do not trigger it
"""

from dataclasses import replace

import pytest

from ultrasonic_proximity.config import DetectorConfig
from ultrasonic_proximity.generator import ScriptedCapture, transmitter_frames, transmitter_states
from ultrasonic_proximity.models import SessionState
from ultrasonic_proximity.session import DetectionSession


def run_detection_pipeline(config: DetectorConfig, states, **frame_kwargs):
    """Run a full session over rendered frames and return its result."""
    capture = ScriptedCapture(transmitter_frames(states, config, **frame_kwargs))
    return DetectionSession("test", config, capture).run()


@pytest.mark.parametrize("noise_level", [10.0, 100.0, 500.0, 1000.0])
def test_pattern_detected_through_noise(noise_level):
    config = DetectorConfig(interval=0.0)
    states = transmitter_states(config.pattern, cycles=3, gap=4)

    result = run_detection_pipeline(config, states, noise_level=noise_level, seed=7)

    assert result.state == SessionState.SUCCEEDED, f"missed pattern at noise {noise_level}"


@pytest.mark.parametrize("lead", [1, 5, 9])
def test_pattern_detected_with_any_start_offset(lead):
    # Third aligned window completes at iteration 29 + lead
    config = DetectorConfig(interval=0.0, countdown=29 + lead)
    states = transmitter_states(config.pattern, cycles=3, gap=4, lead=lead)

    result = run_detection_pipeline(config, states)

    assert result.matched
    assert result.iterations == 29 + lead


def test_quiet_transmitter_needs_lower_floor():
    config = DetectorConfig(interval=0.0)
    states = transmitter_states(config.pattern, cycles=3, gap=4)
    quiet = {"amplitude": 4.0, "noise_level": 1.0}

    # Band energy ~3800: below the default floor, above a lowered one
    assert run_detection_pipeline(config, states, **quiet).matched is False
    lowered = replace(config, peak_floor=500.0)
    assert run_detection_pipeline(lowered, states, **quiet).matched is True


def test_background_noise_alone_is_not_detected():
    config = DetectorConfig(interval=0.0)

    result = run_detection_pipeline(config, [False] * 40, noise_level=10.0)

    assert result.state == SessionState.EXHAUSTED
    assert result.matches == 0


def test_audible_tone_pattern_is_not_detected():
    config = DetectorConfig(interval=0.0)
    states = transmitter_states(config.pattern, cycles=3, gap=4)
    # Exactly on an FFT bin so no energy leaks into the carrier band
    audible = 47 * config.bin_width

    result = run_detection_pipeline(config, states, frequency=audible)

    assert result.matches == 0


def test_strict_matching_still_detects_clean_signal():
    config = replace(DetectorConfig.strict(), interval=0.0)
    states = transmitter_states(config.pattern, cycles=3, gap=4)

    assert run_detection_pipeline(config, states).matched
