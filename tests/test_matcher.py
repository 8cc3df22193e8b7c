# tests/test_matcher.py

from ultrasonic_proximity.matcher import PatternHistory
from ultrasonic_proximity.models import PatternShape

ON = 9000.0
OFF = 0.0

ALTERNATING = [ON, ON, ON, OFF, ON, ON, ON]


def test_capacity_is_sum_of_run_lengths():
    assert PatternHistory().capacity == 7
    assert PatternHistory(PatternShape.from_run_lengths([2, 2])).capacity == 4


def test_alternating_shape_matches():
    assert PatternHistory().evaluate(ALTERNATING) is True


def test_constant_loud_history_does_not_match():
    assert PatternHistory().evaluate([ON] * 7) is False


def test_constant_silent_history_does_not_match():
    assert PatternHistory().evaluate([OFF] * 7) is False


def test_single_mismatch_is_forgiven_by_default():
    window = [ON, OFF, ON, OFF, ON, ON, ON]

    assert PatternHistory().evaluate(window) is True
    assert PatternHistory(max_mismatches=0).evaluate(window) is False


def test_consecutive_mismatches_reject():
    window = [ON, OFF, OFF, OFF, ON, ON, ON]

    assert PatternHistory().evaluate(window) is False


def test_values_below_floor_are_never_peaks():
    quiet = [100.0, 100.0, 100.0, 0.0, 100.0, 100.0, 100.0]

    assert PatternHistory().evaluate(quiet) is False
    assert PatternHistory(peak_floor=50.0).evaluate(quiet) is True


def test_threshold_follows_window_mean():
    # 6000 clears the floor but not half the mean
    loud = [40000.0, 40000.0, 40000.0, 6000.0, 40000.0, 40000.0, 40000.0]

    assert PatternHistory().evaluate(loud) is True


def test_two_segment_pattern():
    history = PatternHistory(PatternShape.from_run_lengths([2, 2]))

    assert history.evaluate([ON, ON, OFF, OFF]) is True
    assert history.evaluate([ON, OFF, ON, OFF]) is False


def test_push_returns_none_until_full_then_one_verdict_per_push():
    history = PatternHistory()

    verdicts = [history.push(v) for v in ALTERNATING]

    assert verdicts[:6] == [None] * 6
    assert verdicts[6] is True
    assert len(history) == 6

    # Window is now ON ON OFF ON ON ON OFF
    assert history.push(OFF) is False
    assert len(history) == 6


def test_values_are_oldest_first_after_wraparound():
    history = PatternHistory()

    for v in range(1, 10):
        history.push(float(v))

    assert history.values().tolist() == [4.0, 5.0, 6.0, 7.0, 8.0, 9.0]


def test_clear_empties_history():
    history = PatternHistory()
    for v in ALTERNATING[:4]:
        history.push(v)

    history.clear()

    assert len(history) == 0
    assert [history.push(v) for v in ALTERNATING][-1] is True


def test_single_slot_off_segment_is_never_forgiven():
    # The lone "off" slot has no other position that could match
    window = [ON, ON, ON, 6000.0, ON, ON, ON]

    assert PatternHistory().evaluate(window) is False
    assert PatternHistory(max_mismatches=3).evaluate(window) is False
