"""Configuration for the ultrasonic proximity engine.

All settings are static: they are loaded once at startup (from defaults or
a YAML file), validated, and then handed down to the analyzer, the sessions
and the services. Nothing here is mutated at runtime.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError
from .models import PatternShape

logger = logging.getLogger(__name__)

# Transmitter carrier
DEFAULT_TARGET_FREQUENCY = 20000.0  # Hz
DEFAULT_TOLERANCE = 50.0  # Hz either side of the carrier

# Capture format (PCM16 mono)
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_FRAME_SIZE = 2048  # samples, ~46ms; bin width ~21.5Hz

# Session pacing and bounds
DEFAULT_INTERVAL = 0.45  # seconds per iteration
DEFAULT_COUNTDOWN = 30
DEFAULT_SUCCESS_THRESHOLD = 3

# Matcher tuning
DEFAULT_RUN_LENGTHS = (3, 1, 3)
DEFAULT_PEAK_FLOOR = 5000.0
DEFAULT_MAX_MISMATCHES = 1

BAND_METHODS = ("direct", "envelope")


@dataclass
class SystemConfig:
    """System-level configuration settings.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
    """

    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class AudioSettings:
    """Audio capture configuration settings.

    Attributes:
        sample_rate: Audio sampling rate in Hz.
        frame_size: Number of samples per captured frame.
        device_index: Specific audio device index (None for default).
        channels: Number of audio channels (always 1, mono).
    """

    sample_rate: int = DEFAULT_SAMPLE_RATE
    frame_size: int = DEFAULT_FRAME_SIZE
    device_index: Optional[int] = None
    channels: int = 1


@dataclass
class DetectorConfig:
    """Everything a detection session needs to turn frames into a verdict.

    Attributes:
        sample_rate: Audio sample rate in Hz.
        frame_size: Samples per frame; also the FFT length.
        target_frequency: Carrier frequency of the transmitter in Hz.
        tolerance: Half-width of the isolated band in Hz.
        method: "direct" (bin magnitudes) or "envelope" (band-pass + inverse FFT).
        run_lengths: Alternating on/off run lengths, starting with "on".
        peak_floor: Lowest threshold a value must clear to count as a peak.
        max_mismatches: Consecutive mismatches tolerated per window (0 = strict).
        interval: Minimum duration of one capture iteration in seconds.
        countdown: Iteration budget; the session ends once it drops below zero.
        success_threshold: Matching windows needed for a positive verdict.
    """

    sample_rate: int = DEFAULT_SAMPLE_RATE
    frame_size: int = DEFAULT_FRAME_SIZE
    target_frequency: float = DEFAULT_TARGET_FREQUENCY
    tolerance: float = DEFAULT_TOLERANCE
    method: str = "direct"
    run_lengths: List[int] = field(default_factory=lambda: list(DEFAULT_RUN_LENGTHS))
    peak_floor: float = DEFAULT_PEAK_FLOOR
    max_mismatches: int = DEFAULT_MAX_MISMATCHES
    interval: float = DEFAULT_INTERVAL
    countdown: int = DEFAULT_COUNTDOWN
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD

    @property
    def bin_width(self) -> float:
        """Frequency resolution of one FFT bin in Hz."""
        return self.sample_rate / self.frame_size

    @property
    def band(self) -> tuple:
        """(low, high) edges of the isolated band in Hz."""
        return (self.target_frequency - self.tolerance, self.target_frequency + self.tolerance)

    @property
    def pattern(self) -> PatternShape:
        return PatternShape.from_run_lengths(self.run_lengths)

    def validate(self) -> "DetectorConfig":
        """Reject configurations that cannot work.

        Returns:
            self, so calls can be chained.

        Raises:
            ConfigurationError: If any setting is out of range.
        """
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.frame_size <= 0 or self.frame_size % 2:
            raise ConfigurationError(
                f"frame_size must be a positive even number of samples, got {self.frame_size}"
            )
        if self.tolerance < self.bin_width:
            raise ConfigurationError(
                f"tolerance {self.tolerance}Hz is narrower than one frequency bin "
                f"({self.bin_width:.2f}Hz at {self.sample_rate}Hz/{self.frame_size})"
            )
        low, high = self.band
        if low <= 0 or high >= self.sample_rate / 2:
            raise ConfigurationError(
                f"band {low:.0f}-{high:.0f}Hz must lie between 0 and Nyquist "
                f"({self.sample_rate / 2:.0f}Hz)"
            )
        if self.method not in BAND_METHODS:
            raise ConfigurationError(f"method must be one of {BAND_METHODS}, got {self.method!r}")
        if not self.run_lengths or any(int(n) <= 0 for n in self.run_lengths):
            raise ConfigurationError(f"run_lengths must be positive, got {self.run_lengths}")
        if self.peak_floor < 0:
            raise ConfigurationError(f"peak_floor must be >= 0, got {self.peak_floor}")
        if self.max_mismatches < 0:
            raise ConfigurationError(f"max_mismatches must be >= 0, got {self.max_mismatches}")
        if self.interval < 0:
            raise ConfigurationError(f"interval must be >= 0, got {self.interval}")
        if self.countdown < 0:
            raise ConfigurationError(f"countdown must be >= 0, got {self.countdown}")
        if self.success_threshold <= 0:
            raise ConfigurationError(
                f"success_threshold must be positive, got {self.success_threshold}"
            )
        return self

    @classmethod
    def from_audio(cls, audio: AudioSettings, **overrides: Any) -> "DetectorConfig":
        """Create a DetectorConfig matching the capture settings."""
        return cls(sample_rate=audio.sample_rate, frame_size=audio.frame_size, **overrides)

    @classmethod
    def strict(cls, sample_rate: int = DEFAULT_SAMPLE_RATE) -> "DetectorConfig":
        """Strict preset: any mismatch rejects a window.

        Use this in quiet rooms where a false positive is worse than a
        slower confirmation.
        """
        return cls(sample_rate=sample_rate, max_mismatches=0)

    @classmethod
    def envelope(cls, sample_rate: int = DEFAULT_SAMPLE_RATE) -> "DetectorConfig":
        """Preset for the band-pass + inverse transform energy measure.

        The inverse transform is normalised, so energies are orders of
        magnitude smaller than direct bin magnitudes and need a lower floor.

        Args:
            sample_rate: Audio sample rate (default 44100).

        Returns:
            DetectorConfig with envelope settings.
        """
        return cls(
            sample_rate=sample_rate,
            method="envelope",
            tolerance=100.0,
            peak_floor=100.0,
            success_threshold=5,
        )


@dataclass
class ServiceConfig:
    """Settings exposed through the identification service.

    Attributes:
        device_id: Identifier peers read from the device id characteristic.
    """

    device_id: int = -1


@dataclass
class GlobalConfig:
    """Unified configuration for the entire application.

    Loads system settings, audio parameters, detector tuning and service
    settings from a single YAML file or structure.
    """

    system: SystemConfig = field(default_factory=SystemConfig)
    audio: AudioSettings = field(default_factory=AudioSettings)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GlobalConfig":
        """Load the global configuration from a YAML file.

        The YAML file should have the following structure:
        ```yaml
        system:
          log_level: INFO
        audio:
          sample_rate: 44100
          frame_size: 2048
        detector:
          target_frequency: 20000
          tolerance: 50
        service:
          device_id: 7
        ```

        Args:
            path: Path to the configuration YAML file.

        Returns:
            A validated GlobalConfig.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalConfig":
        """Build a GlobalConfig from an already parsed mapping."""
        sys_data = data.get("system") or {}
        system_config = SystemConfig(
            log_level=str(sys_data.get("log_level", "INFO")).upper(),
            log_file=sys_data.get("log_file"),
        )

        audio_data = data.get("audio") or {}
        audio_config = AudioSettings(
            sample_rate=int(audio_data.get("sample_rate", DEFAULT_SAMPLE_RATE)),
            frame_size=int(audio_data.get("frame_size", DEFAULT_FRAME_SIZE)),
            device_index=audio_data.get("device_index"),
            channels=int(audio_data.get("channels", 1)),
        )
        if audio_config.channels != 1:
            raise ConfigurationError(f"Only mono capture is supported, got {audio_config.channels}")

        # Detector inherits the capture format; explicit keys override defaults
        detector_data = data.get("detector") or {}
        detector_config = DetectorConfig.from_audio(audio_config)
        for key, cast in _DETECTOR_KEYS.items():
            if key in detector_data:
                detector_config = replace(detector_config, **{key: cast(detector_data[key])})
        unknown = set(detector_data) - set(_DETECTOR_KEYS)
        if unknown:
            logger.warning(f"Ignoring unknown detector settings: {sorted(unknown)}")

        service_data = data.get("service") or {}
        service_config = ServiceConfig(device_id=int(service_data.get("device_id", -1)))

        return cls(
            system=system_config,
            audio=audio_config,
            detector=detector_config.validate(),
            service=service_config,
        )


_DETECTOR_KEYS = {
    "target_frequency": float,
    "tolerance": float,
    "method": str,
    "run_lengths": lambda v: [int(n) for n in v],
    "peak_floor": float,
    "max_mismatches": int,
    "interval": float,
    "countdown": int,
    "success_threshold": int,
}
