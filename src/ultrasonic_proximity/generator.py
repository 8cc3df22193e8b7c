"""Synthetic transmitter signals and scripted capture sources.

Used by the ``simulate`` command and by the test-suite to drive complete
sessions without a microphone.
"""

import logging
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy.io import wavfile

from .config import DetectorConfig
from .errors import CaptureUnavailableError
from .listener import _check_format
from .models import DEFAULT_PATTERN, AudioFrame, PatternShape

logger = logging.getLogger(__name__)


def generate_tone(
    frequency: float,
    num_samples: int,
    sample_rate: int = 44100,
    amplitude: float = 8000.0,
) -> np.ndarray:
    """Generate a pure sine wave (float64, PCM16 scale)."""
    t = np.arange(num_samples) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t)


def generate_noise(
    num_samples: int,
    level: float,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Generate white noise with standard deviation ``level``."""
    rng = rng or np.random.default_rng()
    return rng.normal(0.0, level, num_samples)


def transmitter_states(
    pattern: PatternShape = DEFAULT_PATTERN,
    cycles: int = 3,
    gap: int = 4,
    lead: int = 0,
) -> List[bool]:
    """On/off state of the transmitter for each capture iteration.

    Each cycle plays the pattern once and then stays silent for ``gap``
    iterations. With the default {3,1,3} shape and a gap of 4, only the window
    aligned on a cycle matches.

    Args:
        pattern: Pattern shape played by the transmitter
        cycles: Number of pattern repetitions
        gap: Silent iterations after each repetition
        lead: Silent iterations before the first repetition
    """
    states: List[bool] = [False] * lead
    for _ in range(cycles):
        for seg in pattern.segments:
            states.extend([seg.expect_on] * seg.length)
        states.extend([False] * gap)
    return states


def transmitter_frames(
    states: Sequence[bool],
    config: DetectorConfig,
    amplitude: float = 8000.0,
    noise_level: float = 10.0,
    frequency: Optional[float] = None,
    seed: int = 0,
) -> List[AudioFrame]:
    """Render one frame per state: carrier tone when on, background noise when off."""
    rng = np.random.default_rng(seed)
    frequency = config.target_frequency if frequency is None else frequency
    tone = generate_tone(frequency, config.frame_size, config.sample_rate, amplitude)

    frames: List[AudioFrame] = []
    for on in states:
        samples = generate_noise(config.frame_size, noise_level, rng)
        if on:
            samples = samples + tone
        frames.append(AudioFrame.from_samples(samples))
    return frames


def write_wav(path: Union[str, Path], frames: Sequence[AudioFrame], sample_rate: int) -> Path:
    """Concatenate frames into a mono 16-bit WAV file."""
    path = Path(path)
    data = np.concatenate([frame.samples() for frame in frames]) if frames else np.zeros(0)
    wavfile.write(path, sample_rate, data.astype(np.int16))
    return path


class ScriptedCapture:
    """Capture source that serves a fixed list of frames.

    Every opened handle replays the script from the start; once it runs out
    the last frame is repeated (or silence, for an empty script). Handles are
    recorded so callers can check that each one was closed.

    Attributes:
        handles: Every handle opened so far
        fail_open: If set, ``open`` raises CaptureUnavailableError
        read_delay: Seconds each read blocks, emulating device I/O
    """

    def __init__(
        self,
        frames: Sequence[AudioFrame],
        read_delay: float = 0.0,
        fail_open: bool = False,
    ):
        self.frames = list(frames)
        self.read_delay = read_delay
        self.fail_open = fail_open
        self.handles: List["ScriptedHandle"] = []
        self._lock = threading.Lock()

    def open(self, sample_rate: int, channels: int, sample_format: str) -> "ScriptedHandle":
        _check_format(channels, sample_format)
        if self.fail_open:
            raise CaptureUnavailableError("Scripted capture refused to open")

        handle = ScriptedHandle(self.frames, self.read_delay)
        with self._lock:
            self.handles.append(handle)
        return handle

    @property
    def open_handles(self) -> int:
        """Number of handles that are still open."""
        with self._lock:
            return sum(1 for h in self.handles if not h.closed)


class ScriptedHandle:
    """One replay of a ScriptedCapture script."""

    def __init__(self, frames: Sequence[AudioFrame], read_delay: float = 0.0):
        self._frames = frames
        self._read_delay = read_delay
        self.reads = 0
        self.closed = False
        self.closed_at: Optional[float] = None

    def read(self, frame_size: int) -> AudioFrame:
        if self.closed:
            raise CaptureUnavailableError("Capture handle is closed")
        if self._read_delay:
            time.sleep(self._read_delay)

        if self.reads < len(self._frames):
            frame = self._frames[self.reads]
        elif self._frames:
            frame = self._frames[-1]
        else:
            frame = AudioFrame.from_samples(np.zeros(frame_size))
        self.reads += 1
        return frame

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.closed_at = time.monotonic()
