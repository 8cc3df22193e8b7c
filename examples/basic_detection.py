#!/usr/bin/env python3
"""Example: Serve proximity verdicts to connected peers.

This example shows how a peripheral stack plugs into the engine: it
forwards connection and subscription events to ``engine.dispatcher`` and
sends whatever the engine hands to the notifier. Here the radio side is
faked so the flow can be followed in the log.
"""

import logging
import time
from uuid import UUID

from ultrasonic_proximity import GlobalConfig, ProximityEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(message)s", datefmt="%H:%M:%S"
)

PEER = "AA:BB:CC:DD:EE:FF"


def send_indication(peer_id: str, characteristic_uuid: UUID, payload: bytes):
    """Would hand the payload to the radio; here we just print it."""
    verdict = "in the room" if payload == b"\x01" else "not heard"
    print(f"\n📡 {peer_id}: {verdict}\n")


def main():
    # Microphone capture (requires: pip install pyaudio)
    engine = ProximityEngine(GlobalConfig(), notifier=send_indication)
    detected = engine.identification.detected_characteristic

    print("🎤 Peer connected, listening for the transmitter...")
    print("   Press Ctrl+C to stop\n")

    try:
        engine.dispatcher.on_notifying_enabled(PEER, detected)
        engine.dispatcher.on_connected(PEER)
        while engine.registry.is_active(PEER):
            time.sleep(0.2)
    except KeyboardInterrupt:
        print("\n👋 Stopping...")
        engine.dispatcher.on_disconnected(PEER)
    finally:
        engine.stop()


if __name__ == "__main__":
    main()
