"""Capture boundary: opening audio inputs and reading fixed-size frames."""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol, Union

import numpy as np
from scipy.io import wavfile

from .errors import CaptureUnavailableError
from .models import AudioFrame

try:
    import pyaudio

    HAS_PYAUDIO = True
except ImportError:
    HAS_PYAUDIO = False

logger = logging.getLogger(__name__)

SAMPLE_FORMAT_PCM16 = "pcm16"
CHANNELS_MONO = 1


class CaptureHandle(Protocol):
    """An open capture stream owned by exactly one session."""

    def read(self, frame_size: int) -> AudioFrame:
        """Block until ``frame_size`` samples are available and return them."""
        ...

    def close(self) -> None:
        """Release the stream. Must be safe to call more than once."""
        ...


class CaptureSource(Protocol):
    """Factory for capture handles; every session opens its own."""

    def open(self, sample_rate: int, channels: int, sample_format: str) -> CaptureHandle:
        ...


def _check_format(channels: int, sample_format: str) -> None:
    if channels != CHANNELS_MONO or sample_format != SAMPLE_FORMAT_PCM16:
        raise CaptureUnavailableError(
            f"Unsupported capture format: {channels} channel(s), {sample_format}"
        )


class PyAudioCapture:
    """Opens microphone streams through PyAudio."""

    def __init__(self, device_index: Optional[int] = None):
        """Initialize the capture source.

        Args:
            device_index: Specific input device, or None for the default device
        """
        if not HAS_PYAUDIO:
            raise ImportError(
                "PyAudio is required for audio capture. Install it with: pip install pyaudio"
            )
        self.device_index = device_index

    def open(self, sample_rate: int, channels: int, sample_format: str) -> "PyAudioHandle":
        """Open a new input stream.

        Raises:
            CaptureUnavailableError: If the device is missing, busy or not permitted
        """
        _check_format(channels, sample_format)
        pa = pyaudio.PyAudio()
        try:
            if self.device_index is not None:
                _validate_device(pa, self.device_index)
                logger.info(f"Using audio device index: {self.device_index}")
            stream = pa.open(
                format=pyaudio.paInt16,
                channels=channels,
                rate=sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=1024,
            )
        except (OSError, ValueError, CaptureUnavailableError) as e:
            pa.terminate()
            raise CaptureUnavailableError(f"Failed to open audio input: {e}") from e

        logger.debug("Audio stream opened")
        return PyAudioHandle(pa, stream)


class PyAudioHandle:
    """One PyAudio input stream."""

    def __init__(self, pa, stream):
        self._pyaudio = pa
        self._stream = stream
        self._lock = threading.Lock()

    def read(self, frame_size: int) -> AudioFrame:
        data = self._stream.read(frame_size, exception_on_overflow=False)
        return AudioFrame(pcm_bytes=data)

    def close(self) -> None:
        with self._lock:
            if self._stream is None:
                return
            stream, self._stream = self._stream, None
            pa, self._pyaudio = self._pyaudio, None

        try:
            stream.stop_stream()
            stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        finally:
            pa.terminate()
        logger.debug("Audio stream closed")


def _validate_device(pa, device_index: int) -> None:
    """Validate that a device index is usable for input."""
    try:
        dev_info = pa.get_device_info_by_host_api_device_index(0, device_index)
    except (OSError, ValueError) as e:
        raise CaptureUnavailableError(f"Invalid device index {device_index}: {e}") from e
    if dev_info.get("maxInputChannels", 0) == 0:
        raise CaptureUnavailableError(f"Device index {device_index} has no input channels")


def list_input_devices() -> List[str]:
    """Describe all available audio input devices, one line each."""
    if not HAS_PYAUDIO:
        raise ImportError(
            "PyAudio is required for audio capture. Install it with: pip install pyaudio"
        )

    pa = pyaudio.PyAudio()
    lines: List[str] = []
    try:
        info = pa.get_host_api_info_by_index(0)
        for i in range(info.get("deviceCount", 0)):
            device_info = pa.get_device_info_by_host_api_device_index(0, i)
            if device_info.get("maxInputChannels", 0) > 0:
                lines.append(
                    f"Index {i}: {device_info.get('name')} "
                    f"(Inputs: {device_info.get('maxInputChannels')}, "
                    f"default rate {device_info.get('defaultSampleRate'):.0f}Hz)"
                )
    finally:
        pa.terminate()
    return lines


class WavFileCapture:
    """Replays a mono 16-bit WAV file as if it were a microphone.

    Each opened handle starts from the beginning of the file. Past the end the
    handle either wraps around (``loop=True``) or keeps returning silence.
    """

    def __init__(self, path: Union[str, Path], loop: bool = False):
        self.path = Path(path)
        self.loop = loop

    def open(self, sample_rate: int, channels: int, sample_format: str) -> "ArrayCaptureHandle":
        _check_format(channels, sample_format)
        try:
            file_rate, data = wavfile.read(self.path)
        except (OSError, ValueError) as e:
            raise CaptureUnavailableError(f"Cannot read {self.path}: {e}") from e

        if file_rate != sample_rate:
            raise CaptureUnavailableError(
                f"{self.path} is sampled at {file_rate}Hz, expected {sample_rate}Hz"
            )
        if data.ndim > 1:
            data = data[:, 0]
        if np.issubdtype(data.dtype, np.floating):
            data = data * 32767.0

        logger.info(f"Replaying {self.path} ({len(data) / file_rate:.1f}s)")
        return ArrayCaptureHandle(np.asarray(data), loop=self.loop)


class ArrayCaptureHandle:
    """Serves consecutive frames out of an in-memory sample array."""

    def __init__(self, samples: np.ndarray, loop: bool = False):
        self._samples = np.clip(samples, -32768, 32767).astype(np.int16)
        self._pos = 0
        self.loop = loop
        self.closed = False

    def read(self, frame_size: int) -> AudioFrame:
        if self.closed:
            raise CaptureUnavailableError("Capture handle is closed")

        chunk = self._samples[self._pos : self._pos + frame_size]
        self._pos += len(chunk)

        if len(chunk) < frame_size:
            missing = frame_size - len(chunk)
            if self.loop and len(self._samples):
                reps = int(np.ceil(missing / len(self._samples)))
                tail = np.tile(self._samples, reps)[:missing]
                self._pos = missing % len(self._samples)
            else:
                tail = np.zeros(missing, dtype=np.int16)
            chunk = np.concatenate([chunk, tail])

        return AudioFrame.from_samples(chunk)

    def close(self) -> None:
        self.closed = True
