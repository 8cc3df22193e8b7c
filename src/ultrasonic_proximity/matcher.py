"""Rolling band-energy history and on/off pattern matching."""

import logging
from typing import Optional, Sequence

import numpy as np

from .models import DEFAULT_PATTERN, PatternShape

logger = logging.getLogger(__name__)


class PatternHistory:
    """Fixed-capacity ring buffer of band energies that owns the match decision.

    Every push that fills the window evaluates it against the pattern and then
    evicts the oldest value, so once warmed up each new value yields exactly
    one verdict. Storage is a preallocated array indexed arithmetically; the
    per-frame path does not grow or shrink any container.
    """

    def __init__(
        self,
        pattern: PatternShape = DEFAULT_PATTERN,
        peak_floor: float = 5000.0,
        max_mismatches: int = 1,
    ):
        """Initialize with the pattern to look for.

        Args:
            pattern: On/off run-length template; its total length is the capacity
            peak_floor: Minimum threshold a value must reach to count as a peak
            max_mismatches: Consecutive mismatches forgiven per window (0 = strict)
        """
        self.pattern = pattern
        self.peak_floor = peak_floor
        self.max_mismatches = max_mismatches

        cap = pattern.capacity
        self._buffer = np.zeros(cap, dtype=np.float64)
        self._window = np.zeros(cap, dtype=np.float64)
        # Read order of the ring for every possible head position
        self._orders = [(head + np.arange(cap)) % cap for head in range(cap)]
        self._head = 0
        self._count = 0

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return self._count

    def values(self) -> np.ndarray:
        """Copy of the held values, oldest first."""
        return self._buffer[self._orders[self._head][: self._count]]

    def clear(self) -> None:
        """Drop all held values."""
        self._head = 0
        self._count = 0

    def push(self, value: float) -> Optional[bool]:
        """Insert a band energy and evaluate the window once it is full.

        Args:
            value: Band energy for the newest frame

        Returns:
            None while the window is still filling, otherwise whether the
            window matched the pattern
        """
        cap = self.capacity
        self._buffer[(self._head + self._count) % cap] = value
        self._count += 1

        if self._count < cap:
            return None

        np.take(self._buffer, self._orders[self._head], out=self._window)
        verdict = self.evaluate(self._window)

        # Evict oldest
        self._head = (self._head + 1) % cap
        self._count -= 1
        return verdict

    def is_peak(self, mean: float, value: float) -> bool:
        """A value is a peak when it reaches half the window mean, or the floor."""
        threshold = max(mean / 2.0, self.peak_floor)
        return value >= threshold

    def evaluate(self, window: Sequence[float]) -> bool:
        """Check a full window against the pattern.

        Walks the window left to right, comparing each value's peak state with
        the state the current segment expects. Up to ``max_mismatches``
        consecutive mismatches are forgiven (a match resets the budget), but
        every segment needs at least one matching position.

        Args:
            window: Exactly ``capacity`` values, oldest first

        Returns:
            True if the window follows the pattern
        """
        mean = float(np.mean(window))
        segments = self.pattern.segments

        seg_idx = 0
        remaining = segments[0].length
        expected = segments[0].expect_on
        segment_hits = 0
        errors = 0

        for position, value in enumerate(window):
            if remaining <= 0:
                if segment_hits == 0:
                    logger.debug(f"Window rejected: segment {seg_idx} never matched")
                    return False
                seg_idx += 1
                if seg_idx >= len(segments):
                    break
                remaining = segments[seg_idx].length
                expected = segments[seg_idx].expect_on
                segment_hits = 0

            remaining -= 1

            if self.is_peak(mean, value) != expected:
                errors += 1
                if errors > self.max_mismatches:
                    logger.debug(f"Window rejected at position {position} (mean={mean:.1f})")
                    return False
            else:
                errors = 0
                segment_hits += 1

        return segment_hits > 0
