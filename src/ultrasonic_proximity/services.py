"""Logical GATT services exposed to connected peers."""

import logging
import threading
from enum import Enum
from typing import Callable, Set
from uuid import UUID

from .dispatcher import (
    NOT_SUPPORTED,
    Characteristic,
    Descriptor,
    GattStatus,
    ReadResponse,
)
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

# Standard descriptors
CCC_DESCRIPTOR_UUID = UUID("00002902-0000-1000-8000-00805f9b34fb")
CUD_DESCRIPTOR_UUID = UUID("00002901-0000-1000-8000-00805f9b34fb")

IDENTIFICATION_SERVICE_UUID = UUID("6e9a0001-3c1f-4b8e-9d5a-7f2b1c4d8e01")
DEVICE_ID_CHARACTERISTIC_UUID = UUID("6e9a0002-3c1f-4b8e-9d5a-7f2b1c4d8e01")
ULTRASONIC_DETECTED_CHARACTERISTIC_UUID = UUID("6e9a0003-3c1f-4b8e-9d5a-7f2b1c4d8e01")

DETECTED = b"\x01"
NOT_DETECTED = b"\x00"

# (peer_id, characteristic_uuid, payload)
Notifier = Callable[[str, UUID, bytes], None]


class ServiceKind(str, Enum):
    """The closed set of logical services this device can host."""

    IDENTIFICATION = "identification"


def encode_verdict(matched: bool) -> bytes:
    """One byte: 1 = pattern detected, 0 = not detected."""
    return DETECTED if matched else NOT_DETECTED


class IdentificationService:
    """Lets a peer read this device's id and learn whether it is in range.

    Characteristics:
    - device id (read): the configured id as a 4-byte big-endian signed int
    - ultrasonic detected (indicate): one byte per finished detection session

    A detection session is started for every peer that connects and
    cancelled when it disconnects. Verdicts go to every peer subscribed to
    the ultrasonic detected characteristic at the time the session finishes.
    """

    kind = ServiceKind.IDENTIFICATION
    name = "Identification Service"
    uuid = IDENTIFICATION_SERVICE_UUID

    detected_description = "Ultrasonic pattern detected (1) or not (0)"

    def __init__(self, registry: SessionRegistry, notifier: Notifier, device_id: int = -1):
        """Initialize the service.

        Args:
            registry: Session registry driven by connection events
            notifier: Outbound notification boundary
            device_id: Initial value of the device id characteristic
        """
        self.registry = registry
        self.notifier = notifier

        self.device_id_characteristic = Characteristic(DEVICE_ID_CHARACTERISTIC_UUID, self.uuid)
        self.detected_characteristic = Characteristic(
            ULTRASONIC_DETECTED_CHARACTERISTIC_UUID, self.uuid
        )
        self.ccc_descriptor = Descriptor(CCC_DESCRIPTOR_UUID, self.detected_characteristic)
        self.cud_descriptor = Descriptor(CUD_DESCRIPTOR_UUID, self.detected_characteristic)

        self._lock = threading.Lock()
        self._subscribers: Set[str] = set()
        self._device_id = b""
        self.set_device_id(device_id)

    def set_device_id(self, device_id: int) -> None:
        """Store the id pre-encoded so reads can return it directly."""
        self._device_id = int(device_id).to_bytes(4, "big", signed=True)

    @property
    def subscribers(self) -> Set[str]:
        with self._lock:
            return set(self._subscribers)

    # Handlers called by the EventDispatcher

    def on_characteristic_read(self, peer_id: str, characteristic: Characteristic) -> ReadResponse:
        if characteristic.uuid == DEVICE_ID_CHARACTERISTIC_UUID:
            return ReadResponse(GattStatus.SUCCESS, self._device_id)
        return NOT_SUPPORTED

    def on_descriptor_read(self, peer_id: str, descriptor: Descriptor) -> ReadResponse:
        if (
            descriptor.uuid == CUD_DESCRIPTOR_UUID
            and descriptor.characteristic == self.detected_characteristic
        ):
            return ReadResponse(GattStatus.SUCCESS, self.detected_description.encode("utf-8"))
        return NOT_SUPPORTED

    def on_notifying_enabled(self, peer_id: str, characteristic: Characteristic) -> None:
        if characteristic.uuid == ULTRASONIC_DETECTED_CHARACTERISTIC_UUID:
            with self._lock:
                self._subscribers.add(peer_id)
            logger.debug(f"[{peer_id}] Subscribed to detection results")

    def on_notifying_disabled(self, peer_id: str, characteristic: Characteristic) -> None:
        if characteristic.uuid == ULTRASONIC_DETECTED_CHARACTERISTIC_UUID:
            with self._lock:
                self._subscribers.discard(peer_id)
            logger.debug(f"[{peer_id}] Unsubscribed from detection results")

    def on_connected(self, peer_id: str) -> None:
        self.registry.start(peer_id)

    def on_disconnected(self, peer_id: str) -> None:
        self.registry.cancel(peer_id)
        with self._lock:
            self._subscribers.discard(peer_id)

    # Verdict sink for the SessionRegistry

    def deliver_verdict(self, peer_id: str, matched: bool) -> None:
        """Notify every subscribed peer of a finished session's verdict."""
        payload = encode_verdict(matched)
        recipients = self.subscribers
        if not recipients:
            logger.warning(f"[{peer_id}] No subscribers for verdict, dropping it")
            return

        for recipient in sorted(recipients):
            try:
                self.notifier(recipient, ULTRASONIC_DETECTED_CHARACTERISTIC_UUID, payload)
            except Exception as e:
                logger.error(f"Failed to notify {recipient}: {e}", exc_info=True)
