"""Shared fixtures: fast detector settings and synthetic transmitter scripts."""

import time
from typing import Callable

import pytest

from ultrasonic_proximity.config import DetectorConfig
from ultrasonic_proximity.generator import ScriptedCapture, transmitter_frames, transmitter_states


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, poll: float = 0.005) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(poll)
    return predicate()


@pytest.fixture
def fast_config() -> DetectorConfig:
    """Default detector without pacing."""
    return DetectorConfig(interval=0.0)


@pytest.fixture
def present_capture(fast_config) -> ScriptedCapture:
    """Transmitter playing {3,1,3} three times with a 4-frame gap."""
    states = transmitter_states(fast_config.pattern, cycles=3, gap=4)
    return ScriptedCapture(transmitter_frames(states, fast_config))


@pytest.fixture
def silent_capture(fast_config) -> ScriptedCapture:
    """Background noise only."""
    return ScriptedCapture(transmitter_frames([False], fast_config))
