"""Per-peer session bookkeeping: start, cancel and verdict delivery."""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .models import SessionResult, SessionState
from .session import DetectionSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], DetectionSession]
VerdictSink = Callable[[str, bool], None]


@dataclass
class SessionHandle:
    """Lifecycle handle for one running session."""

    session: DetectionSession
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    result: Optional[SessionResult] = None

    @property
    def is_active(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


class SessionRegistry:
    """Maps peer identity to its in-flight detection session.

    Every session runs on its own daemon thread so a slow capture never holds
    up event dispatch or another peer's session. The peer -> handle mapping is
    the only shared state and is guarded by a lock.

    Removal on cancel is immediate; the session thread notices the cancel
    event at its next iteration boundary and releases its capture on its own.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        verdict_sink: Optional[VerdictSink] = None,
        max_results: int = 64,
    ):
        """Initialize the registry.

        Args:
            session_factory: Builds a fresh DetectionSession for a peer
            verdict_sink: Receives (peer_id, matched) for every finished session
            max_results: Number of peers whose last result is kept
        """
        self.session_factory = session_factory
        self.verdict_sink = verdict_sink

        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionHandle] = {}
        # Every thread ever started and not yet joined, for shutdown()
        self._threads: List[threading.Thread] = []
        # Peer addresses rotate, so only the most recent results are kept
        self._last_results: "OrderedDict[str, SessionResult]" = OrderedDict()
        self.max_results = max_results
        self._closed = False

    def start(self, peer_id: str) -> bool:
        """Start a detection session for a peer.

        Idempotent: if the peer already has an active session nothing happens.

        Returns:
            True if a new session was started (False after shutdown)
        """
        with self._lock:
            if self._closed:
                logger.warning(f"[{peer_id}] Registry is shut down, ignoring start")
                return False

            existing = self._sessions.get(peer_id)
            if existing is not None and existing.is_active:
                logger.debug(f"[{peer_id}] Session already running, ignoring start")
                return False

            handle = SessionHandle(session=self.session_factory(peer_id))
            handle.thread = threading.Thread(
                target=self._run,
                args=(peer_id, handle),
                name=f"detection-{peer_id}",
                daemon=True,
            )
            self._sessions[peer_id] = handle
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(handle.thread)
            handle.thread.start()

        logger.info(f"[{peer_id}] Detection session started")
        return True

    def cancel(self, peer_id: str) -> bool:
        """Signal a peer's session to stop and forget it immediately.

        Returns:
            True if there was a session to cancel
        """
        with self._lock:
            handle = self._sessions.pop(peer_id, None)

        if handle is None:
            return False

        handle.cancel_event.set()
        logger.info(f"[{peer_id}] Detection session cancelled")
        return True

    def on_verdict(self, peer_id: str, matched: bool, handle: Optional[SessionHandle] = None) -> None:
        """Forward a finished session's verdict and retire its entry.

        Args:
            peer_id: Peer the session ran for
            matched: Whether the pattern was detected
            handle: The finished session; only that session's entry is removed
        """
        logger.info(f"[{peer_id}] Verdict: {'detected' if matched else 'not detected'}")

        if self.verdict_sink:
            try:
                self.verdict_sink(peer_id, matched)
            except Exception as e:
                logger.error(f"[{peer_id}] Error in verdict sink: {e}", exc_info=True)

        self._retire(peer_id, handle)

    def is_active(self, peer_id: str) -> bool:
        with self._lock:
            handle = self._sessions.get(peer_id)
            return handle is not None and handle.is_active

    def active_peers(self) -> List[str]:
        with self._lock:
            return [peer for peer, handle in self._sessions.items() if handle.is_active]

    def last_result(self, peer_id: str) -> Optional[SessionResult]:
        """Result of the most recently finished session for a peer."""
        with self._lock:
            return self._last_results.get(peer_id)

    def wait(self, peer_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the peer's current session thread has exited.

        Returns:
            True if no session is running for the peer anymore
        """
        with self._lock:
            handle = self._sessions.get(peer_id)
        if handle is None or handle.thread is None:
            return True
        handle.thread.join(timeout)
        return not handle.thread.is_alive()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Cancel every session and wait for their threads to release capture."""
        with self._lock:
            self._closed = True
            handles = list(self._sessions.values())
            self._sessions.clear()
            threads = list(self._threads)
            self._threads.clear()

        for handle in handles:
            handle.cancel_event.set()
        for thread in threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Session thread {thread.name} did not stop within {timeout}s")

        logger.info("Session registry shut down")

    def _run(self, peer_id: str, handle: SessionHandle) -> None:
        """Thread body: run the session and report its outcome."""
        try:
            result = handle.session.run(handle.cancel_event)
        except Exception as e:
            logger.error(f"[{peer_id}] Detection session failed: {e}", exc_info=True)
            result = SessionResult(peer_id=peer_id, state=SessionState.FAILED, error=str(e))

        handle.result = result
        with self._lock:
            self._last_results.pop(peer_id, None)
            self._last_results[peer_id] = result
            while len(self._last_results) > self.max_results:
                self._last_results.popitem(last=False)

        if result.delivers_verdict and not handle.cancel_event.is_set():
            self.on_verdict(peer_id, result.matched, handle)
        else:
            self._retire(peer_id, handle)

    def _retire(self, peer_id: str, handle: Optional[SessionHandle]) -> None:
        with self._lock:
            current = self._sessions.get(peer_id)
            if current is not None and (handle is None or current is handle):
                del self._sessions[peer_id]
