"""Main Engine class - wires capture, sessions, services and dispatch."""

import logging
import threading
from typing import Optional
from uuid import UUID

from .config import GlobalConfig
from .dispatcher import EventDispatcher
from .listener import CaptureSource, PyAudioCapture
from .models import SessionResult
from .processing.dsp import SpectralFrameAnalyzer
from .registry import SessionRegistry
from .services import IdentificationService, Notifier
from .session import DetectionSession

logger = logging.getLogger(__name__)


def log_notifier(peer_id: str, characteristic_uuid: UUID, payload: bytes) -> None:
    """Notifier used when no peripheral stack is attached: just log."""
    logger.info(f"NOTIFY {peer_id} {characteristic_uuid}: {payload.hex()}")


class ProximityEngine:
    """Ultrasonic proximity detection engine.

    Orchestrates the full pipeline:
    Connection event -> EventDispatcher -> SessionRegistry -> DetectionSession
    (capture -> FFT band energy -> pattern history) -> verdict -> notification

    The peripheral stack feeds its events into ``engine.dispatcher`` and
    receives outbound notifications through ``notifier``.

    Example:
        >>> from ultrasonic_proximity import ProximityEngine, GlobalConfig
        >>>
        >>> engine = ProximityEngine(GlobalConfig.load("proximity.yaml"), notifier=send)
        >>> engine.dispatcher.on_connected("AA:BB:CC:DD:EE:FF")
        >>> ...
        >>> engine.stop()
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        capture: Optional[CaptureSource] = None,
        notifier: Optional[Notifier] = None,
    ):
        """Initialize the engine.

        Args:
            config: Complete configuration (defaults if None); validated here
            capture: Capture source for sessions (microphone if None)
            notifier: Outbound notification boundary (logs if None)
        """
        self.config = config or GlobalConfig()
        detector = self.config.detector.validate()

        self.capture = capture or PyAudioCapture(self.config.audio.device_index)
        self.analyzer = SpectralFrameAnalyzer(detector)

        self.registry = SessionRegistry(self._new_session)
        self.identification = IdentificationService(
            self.registry,
            notifier or log_notifier,
            device_id=self.config.service.device_id,
        )
        self.registry.verdict_sink = self.identification.deliver_verdict
        self.dispatcher = EventDispatcher([self.identification])

        self._stopped = threading.Event()

        logger.info(
            f"Engine initialized: {detector.target_frequency:.0f}Hz +/- {detector.tolerance:.0f}Hz, "
            f"pattern {detector.pattern}, frame {detector.frame_size} samples"
        )

    def _new_session(self, peer_id: str) -> DetectionSession:
        return DetectionSession(peer_id, self.config.detector, self.capture, self.analyzer)

    def detect(self, peer_id: str = "local") -> SessionResult:
        """Run one detection session on the calling thread (blocking).

        Useful without a peripheral stack, e.g. from the command line.
        Interrupted by ``stop()``.
        """
        session = self._new_session(peer_id)
        return session.run(self._stopped)

    def stop(self, timeout: float = 2.0) -> None:
        """Cancel all sessions and release capture resources."""
        self._stopped.set()
        self.registry.shutdown(timeout)
        logger.info("Engine stopped")

    @property
    def is_running(self) -> bool:
        return not self._stopped.is_set()
