"""Ultrasonic Proximity - confirm a peer is in the same room by sound.

A connected peer triggers a detection session that listens for a known
ultrasonic on/off pattern near 20 kHz. The verdict (pattern heard or not)
is sent back to the peer through the identification service.

Usage:
    from ultrasonic_proximity import ProximityEngine, GlobalConfig

    engine = ProximityEngine(GlobalConfig.load("proximity.yaml"), notifier=send)
    engine.dispatcher.on_connected(peer_id)
    ...
    engine.stop()
"""

__version__ = "0.1.0"

# Core exports
from ultrasonic_proximity.config import (
    AudioSettings,
    DetectorConfig,
    GlobalConfig,
    ServiceConfig,
    SystemConfig,
)
from ultrasonic_proximity.dispatcher import (
    Characteristic,
    Descriptor,
    EventDispatcher,
    GattStatus,
    ReadResponse,
)
from ultrasonic_proximity.engine import ProximityEngine
from ultrasonic_proximity.errors import (
    CaptureUnavailableError,
    ConfigurationError,
    FrameSizeError,
    MalformedTopologyError,
    ProximityError,
)
from ultrasonic_proximity.listener import PyAudioCapture, WavFileCapture
from ultrasonic_proximity.matcher import PatternHistory
from ultrasonic_proximity.models import (
    DEFAULT_PATTERN,
    AudioFrame,
    PatternSegment,
    PatternShape,
    SessionResult,
    SessionState,
)
from ultrasonic_proximity.processing import SpectralFrameAnalyzer
from ultrasonic_proximity.registry import SessionRegistry
from ultrasonic_proximity.services import IdentificationService
from ultrasonic_proximity.session import DetectionSession

__all__ = [
    # Version
    "__version__",
    # Core classes
    "ProximityEngine",
    "DetectionSession",
    "SessionRegistry",
    "SpectralFrameAnalyzer",
    "PatternHistory",
    # Capture
    "PyAudioCapture",
    "WavFileCapture",
    # Services and dispatch
    "EventDispatcher",
    "IdentificationService",
    "Characteristic",
    "Descriptor",
    "GattStatus",
    "ReadResponse",
    # Configuration
    "GlobalConfig",
    "SystemConfig",
    "AudioSettings",
    "DetectorConfig",
    "ServiceConfig",
    # Models
    "AudioFrame",
    "PatternSegment",
    "PatternShape",
    "DEFAULT_PATTERN",
    "SessionResult",
    "SessionState",
    # Errors
    "ProximityError",
    "ConfigurationError",
    "FrameSizeError",
    "CaptureUnavailableError",
    "MalformedTopologyError",
]
