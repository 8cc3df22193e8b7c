"""One detection run for one peer: capture, analyze, match, decide."""

import logging
import threading
import time
from typing import Optional

from .config import DetectorConfig
from .errors import CaptureUnavailableError
from .listener import CHANNELS_MONO, SAMPLE_FORMAT_PCM16, CaptureSource
from .matcher import PatternHistory
from .models import SessionResult, SessionState
from .processing.dsp import SpectralFrameAnalyzer

logger = logging.getLogger(__name__)


class DetectionSession:
    """Listens for the transmitter pattern on behalf of a single peer.

    Lifecycle:
    IDLE -> CAPTURING -> (EVALUATING -> CAPTURING)* -> SUCCEEDED | EXHAUSTED | CANCELLED

    Each iteration reads one frame, reduces it to a band energy and pushes it
    into the session's own PatternHistory. Iterations are padded to last at
    least ``config.interval`` seconds. The countdown bounds the number of
    iterations; reaching ``config.success_threshold`` matching windows ends
    the session early. Cancellation is checked between iterations and also
    interrupts the pacing sleep.
    """

    def __init__(
        self,
        peer_id: str,
        config: DetectorConfig,
        capture: CaptureSource,
        analyzer: Optional[SpectralFrameAnalyzer] = None,
    ):
        """Initialize the session.

        Args:
            peer_id: Peer the verdict is for
            config: Detector configuration
            capture: Source used to open this session's own capture handle
            analyzer: Shared analyzer (stateless); built from config if None
        """
        self.peer_id = peer_id
        self.config = config
        self.capture = capture
        self.analyzer = analyzer or SpectralFrameAnalyzer(config)
        self.history = PatternHistory(
            config.pattern,
            peak_floor=config.peak_floor,
            max_mismatches=config.max_mismatches,
        )
        self.state = SessionState.IDLE

    def run(self, cancel_event: Optional[threading.Event] = None) -> SessionResult:
        """Run the session to completion (blocking).

        Args:
            cancel_event: Set by another thread to stop the session early

        Returns:
            SessionResult describing the terminal state

        Raises:
            Exception: Anything raised while processing frames (e.g.
                FrameSizeError) propagates after the capture is released.
            RuntimeError: If the session has already finished; sessions
                are single-use.
        """
        if self.state.is_terminal:
            raise RuntimeError(f"[{self.peer_id}] Session already finished ({self.state.value})")

        cancel_event = cancel_event or threading.Event()
        result = SessionResult(peer_id=self.peer_id, state=SessionState.IDLE)

        try:
            handle = self.capture.open(
                self.config.sample_rate, CHANNELS_MONO, SAMPLE_FORMAT_PCM16
            )
        except CaptureUnavailableError as e:
            logger.error(f"[{self.peer_id}] Capture device unavailable: {e}")
            self.state = result.state = SessionState.DEVICE_UNAVAILABLE
            result.error = str(e)
            return result

        countdown = self.config.countdown
        matches = 0
        self.state = SessionState.CAPTURING
        logger.info(
            f"[{self.peer_id}] Listening for {self.config.pattern} at "
            f"{self.config.target_frequency:.0f}Hz (budget {countdown + 1} iterations)"
        )

        try:
            while countdown >= 0 and matches < self.config.success_threshold:
                if cancel_event.is_set():
                    break

                started = time.monotonic()
                self.state = SessionState.CAPTURING
                frame = handle.read(self.config.frame_size)

                self.state = SessionState.EVALUATING
                energy = self.analyzer.analyze(frame)
                verdict = self.history.push(energy)
                result.energies.append(energy)
                result.iterations += 1

                if verdict:
                    matches += 1
                    logger.info(
                        f"[{self.peer_id}] Pattern match {matches}/{self.config.success_threshold}"
                    )
                logger.debug(f"[{self.peer_id}] energy={energy:.1f} verdict={verdict}")

                countdown -= 1

                # Pad the iteration to the configured interval
                remaining = self.config.interval - (time.monotonic() - started)
                if remaining > 0:
                    cancel_event.wait(remaining)
        except Exception:
            self.state = SessionState.FAILED
            raise
        finally:
            handle.close()

        result.matches = matches
        if matches >= self.config.success_threshold:
            result.state = SessionState.SUCCEEDED
        elif cancel_event.is_set():
            result.state = SessionState.CANCELLED
        else:
            result.state = SessionState.EXHAUSTED
        self.state = result.state

        logger.info(
            f"[{self.peer_id}] Session {result.state.value}: "
            f"{matches} match(es) in {result.iterations} iteration(s)"
        )
        return result
