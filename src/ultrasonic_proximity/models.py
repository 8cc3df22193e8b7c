"""Data models shared by the detection pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

BYTES_PER_SAMPLE = 2


@dataclass(frozen=True)
class AudioFrame:
    """One fixed-size block of captured audio.

    Attributes:
        pcm_bytes: Raw little-endian 16-bit PCM, mono.
    """

    pcm_bytes: bytes

    @classmethod
    def from_samples(cls, samples: np.ndarray) -> "AudioFrame":
        """Build a frame from an array of samples (clipped to int16)."""
        clipped = np.clip(np.asarray(samples), -32768, 32767).astype("<i2")
        return cls(pcm_bytes=clipped.tobytes())

    def samples(self) -> np.ndarray:
        """Decode the frame into int16 samples (low byte first)."""
        return np.frombuffer(self.pcm_bytes, dtype="<i2")

    def __len__(self) -> int:
        return len(self.pcm_bytes) // BYTES_PER_SAMPLE


@dataclass(frozen=True)
class PatternSegment:
    """A run of consecutive history slots that should all be on or all off."""

    expect_on: bool
    length: int

    def __str__(self) -> str:
        return f"{'On' if self.expect_on else 'Off'}({self.length})"


@dataclass(frozen=True)
class PatternShape:
    """The on/off run-length template emitted by the transmitter.

    The rolling history holds exactly ``capacity`` values, which is the sum of
    all run lengths.
    """

    segments: Tuple[PatternSegment, ...]

    @classmethod
    def from_run_lengths(cls, run_lengths: List[int]) -> "PatternShape":
        """Build an alternating on/off/on... shape from run lengths."""
        return cls(
            segments=tuple(
                PatternSegment(expect_on=(i % 2 == 0), length=int(n))
                for i, n in enumerate(run_lengths)
            )
        )

    @property
    def capacity(self) -> int:
        return sum(seg.length for seg in self.segments)

    @property
    def run_lengths(self) -> List[int]:
        return [seg.length for seg in self.segments]

    def __str__(self) -> str:
        return "-".join(str(seg) for seg in self.segments)


DEFAULT_PATTERN = PatternShape.from_run_lengths([3, 1, 3])


class SessionState(str, Enum):
    """Lifecycle of one detection session."""

    IDLE = "idle"
    CAPTURING = "capturing"
    EVALUATING = "evaluating"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    DEVICE_UNAVAILABLE = "device_unavailable"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionState.IDLE, SessionState.CAPTURING, SessionState.EVALUATING)


@dataclass
class SessionResult:
    """Outcome of a detection session.

    Attributes:
        peer_id: Peer the session ran for
        state: Terminal state reached
        iterations: Number of frames captured and analyzed
        matches: Number of windows that matched the pattern
        energies: Band energy per iteration, in capture order
        error: Message describing why the session failed, if it did
    """

    peer_id: str
    state: SessionState
    iterations: int = 0
    matches: int = 0
    energies: List[float] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        """True only when the pattern was confirmed often enough."""
        return self.state == SessionState.SUCCEEDED

    @property
    def delivers_verdict(self) -> bool:
        """Cancelled sessions report nothing; every other outcome is a verdict."""
        return self.state != SessionState.CANCELLED

    def __repr__(self) -> str:
        return (
            f"SessionResult('{self.peer_id}', {self.state.value}, "
            f"{self.matches} matches in {self.iterations} iterations)"
        )
