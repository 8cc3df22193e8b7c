# tests/test_registry.py

import time

import numpy as np
import pytest

from conftest import wait_for
from ultrasonic_proximity.config import DetectorConfig
from ultrasonic_proximity.generator import ScriptedCapture, transmitter_frames
from ultrasonic_proximity.models import AudioFrame, SessionState
from ultrasonic_proximity.registry import SessionRegistry
from ultrasonic_proximity.session import DetectionSession


def make_registry(config, capture, sink=None):
    return SessionRegistry(lambda peer: DetectionSession(peer, config, capture), sink)


@pytest.fixture
def slow_config() -> DetectorConfig:
    """Paced sessions that run long enough to be observed and cancelled."""
    return DetectorConfig(interval=0.1)


@pytest.fixture
def slow_capture(slow_config) -> ScriptedCapture:
    return ScriptedCapture(transmitter_frames([False], slow_config))


# ---------------------------------------------------------------------------
# Start / cancel
# ---------------------------------------------------------------------------


def test_start_is_idempotent_per_peer(slow_config, slow_capture):
    registry = make_registry(slow_config, slow_capture)

    assert registry.start("peer") is True
    assert registry.start("peer") is False
    assert registry.active_peers() == ["peer"]

    assert wait_for(lambda: len(slow_capture.handles) == 1)
    time.sleep(0.05)
    assert len(slow_capture.handles) == 1

    registry.shutdown()


def test_each_peer_gets_its_own_session(slow_config, slow_capture):
    registry = make_registry(slow_config, slow_capture)

    registry.start("a")
    registry.start("b")

    assert sorted(registry.active_peers()) == ["a", "b"]
    assert wait_for(lambda: slow_capture.open_handles == 2)

    registry.shutdown()
    assert slow_capture.open_handles == 0


def test_cancel_closes_capture_within_one_interval(slow_config, slow_capture):
    registry = make_registry(slow_config, slow_capture)
    registry.start("peer")
    assert wait_for(lambda: len(slow_capture.handles) == 1)
    time.sleep(0.05)

    cancelled_at = time.monotonic()
    assert registry.cancel("peer") is True
    assert registry.is_active("peer") is False

    handle = slow_capture.handles[0]
    assert wait_for(lambda: handle.closed, timeout=1.0)
    assert handle.closed_at - cancelled_at <= slow_config.interval + 0.05


def test_cancel_unknown_peer_is_a_no_op(slow_config, slow_capture):
    registry = make_registry(slow_config, slow_capture)

    assert registry.cancel("nobody") is False


def test_cancelled_session_delivers_no_verdict(slow_config, slow_capture):
    verdicts = []
    registry = make_registry(slow_config, slow_capture, lambda p, m: verdicts.append((p, m)))

    registry.start("peer")
    time.sleep(0.05)
    registry.cancel("peer")
    registry.shutdown()

    assert verdicts == []
    assert registry.last_result("peer").state == SessionState.CANCELLED


# ---------------------------------------------------------------------------
# Verdict delivery
# ---------------------------------------------------------------------------


def test_verdict_reaches_sink_and_entry_is_retired(fast_config, present_capture):
    verdicts = []
    registry = make_registry(fast_config, present_capture, lambda p, m: verdicts.append((p, m)))

    registry.start("peer")
    assert registry.wait("peer", timeout=5.0)

    assert verdicts == [("peer", True)]
    assert registry.is_active("peer") is False
    assert registry.last_result("peer").state == SessionState.SUCCEEDED


def test_peer_can_start_again_after_finishing(fast_config, present_capture):
    registry = make_registry(fast_config, present_capture)

    registry.start("peer")
    assert registry.wait("peer", timeout=5.0)

    assert registry.start("peer") is True
    assert registry.wait("peer", timeout=5.0)
    assert len(present_capture.handles) == 2


def test_unavailable_device_reports_negative_verdict(fast_config):
    verdicts = []
    capture = ScriptedCapture([], fail_open=True)
    registry = make_registry(fast_config, capture, lambda p, m: verdicts.append((p, m)))

    registry.start("peer")
    assert registry.wait("peer", timeout=5.0)

    assert verdicts == [("peer", False)]
    assert registry.last_result("peer").state == SessionState.DEVICE_UNAVAILABLE


def test_crashed_session_reports_negative_verdict(fast_config):
    verdicts = []
    capture = ScriptedCapture([AudioFrame.from_samples(np.zeros(16))])
    registry = make_registry(fast_config, capture, lambda p, m: verdicts.append((p, m)))

    registry.start("peer")
    assert registry.wait("peer", timeout=5.0)

    assert verdicts == [("peer", False)]
    assert registry.last_result("peer").state == SessionState.FAILED
    assert capture.open_handles == 0


def test_failing_sink_does_not_leak_the_entry(fast_config, present_capture):
    def broken_sink(peer_id, matched):
        raise RuntimeError("radio gone")

    registry = make_registry(fast_config, present_capture, broken_sink)

    registry.start("peer")
    assert registry.wait("peer", timeout=5.0)

    assert registry.active_peers() == []
    assert registry.last_result("peer").matched is True


# ---------------------------------------------------------------------------
# Bookkeeping limits
# ---------------------------------------------------------------------------


def test_only_recent_results_are_kept(fast_config):
    capture = ScriptedCapture([], fail_open=True)
    registry = SessionRegistry(
        lambda peer: DetectionSession(peer, fast_config, capture), max_results=2
    )

    for peer in ("a", "b", "c"):
        registry.start(peer)
        assert registry.wait(peer, timeout=5.0)

    assert registry.last_result("a") is None
    assert registry.last_result("b").state == SessionState.DEVICE_UNAVAILABLE
    assert registry.last_result("c").state == SessionState.DEVICE_UNAVAILABLE


def test_start_after_shutdown_is_refused(slow_config, slow_capture):
    registry = make_registry(slow_config, slow_capture)
    registry.shutdown()

    assert registry.start("late") is False
    assert registry.active_peers() == []
    assert slow_capture.handles == []
