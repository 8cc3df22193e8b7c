"""Routes peripheral-stack events to the logical service that owns them.

Services implement only the handlers they care about. The dispatcher looks
handlers up by name on the owning service (keyed by service UUID) and falls
back to a "not supported" answer when the service or the handler is absent,
so a request for something nobody implements never raises.

Connect and disconnect are broadcast to every registered service.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Protocol
from uuid import UUID

from .errors import MalformedTopologyError

logger = logging.getLogger(__name__)


class GattStatus(Enum):
    """ATT status codes returned to the peripheral stack."""

    SUCCESS = 0x00
    READ_NOT_PERMITTED = 0x02
    WRITE_NOT_PERMITTED = 0x03
    REQUEST_NOT_SUPPORTED = 0x06
    INVALID_ATTRIBUTE_VALUE_LENGTH = 0x0D
    UNLIKELY_ERROR = 0x0E


@dataclass(frozen=True)
class ReadResponse:
    """Answer to a characteristic or descriptor read."""

    status: GattStatus
    value: Optional[bytes] = None


@dataclass(frozen=True)
class Characteristic:
    """A characteristic as reported by the peripheral stack.

    Attributes:
        uuid: Characteristic UUID
        service_uuid: UUID of the owning service (None if detached)
    """

    uuid: UUID
    service_uuid: Optional[UUID]


@dataclass(frozen=True)
class Descriptor:
    """A descriptor as reported by the peripheral stack.

    Attributes:
        uuid: Descriptor UUID
        characteristic: Owning characteristic (None if detached)
    """

    uuid: UUID
    characteristic: Optional[Characteristic]


class GattService(Protocol):
    """What the dispatcher requires of every logical service.

    Optional handlers (looked up by name, all receive ``peer_id`` first):
    on_characteristic_read, on_characteristic_write,
    on_characteristic_write_completed, on_descriptor_read, on_descriptor_write,
    on_notifying_enabled, on_notifying_disabled, on_notification_sent,
    on_connected, on_disconnected.
    """

    uuid: UUID
    name: str


NOT_SUPPORTED = ReadResponse(GattStatus.REQUEST_NOT_SUPPORTED)
READ_FAILED = ReadResponse(GattStatus.UNLIKELY_ERROR)


class EventDispatcher:
    """Distributes inbound events to services by UUID."""

    def __init__(self, services: Iterable[GattService] = ()):
        self._services: Dict[UUID, GattService] = {}
        self._by_kind: Dict[Any, GattService] = {}
        for service in services:
            self.register(service)

    def register(self, service: GattService) -> None:
        """Add a service; its UUID and its kind (if it has one) must be unique."""
        if service.uuid in self._services:
            raise ValueError(f"Service {service.uuid} is already registered")
        kind = getattr(service, "kind", None)
        if kind is not None and kind in self._by_kind:
            raise ValueError(f"A {kind.value} service is already registered")
        self._services[service.uuid] = service
        if kind is not None:
            self._by_kind[kind] = service
        logger.info(f"Registered service '{service.name}' ({service.uuid})")

    @property
    def services(self) -> Dict[UUID, GattService]:
        return dict(self._services)

    def service_of(self, kind: Any) -> Optional[GattService]:
        """The registered service of the given kind, if any."""
        return self._by_kind.get(kind)

    # ------------------------------------------------------------------
    # Characteristic requests
    # ------------------------------------------------------------------

    def on_characteristic_read(self, peer_id: str, characteristic: Characteristic) -> ReadResponse:
        service = self._owner(characteristic)
        handler = self._handler(service, "on_characteristic_read")
        if handler is None:
            return NOT_SUPPORTED
        return self._call_request(handler, READ_FAILED, peer_id, characteristic)

    def on_characteristic_write(
        self, peer_id: str, characteristic: Characteristic, value: bytes
    ) -> GattStatus:
        service = self._owner(characteristic)
        if service is None:
            return GattStatus.REQUEST_NOT_SUPPORTED
        handler = self._handler(service, "on_characteristic_write")
        if handler is None:
            return GattStatus.WRITE_NOT_PERMITTED
        return self._call_request(
            handler, GattStatus.UNLIKELY_ERROR, peer_id, characteristic, value
        )

    def on_characteristic_write_completed(
        self, peer_id: str, characteristic: Characteristic, value: bytes
    ) -> None:
        service = self._owner(characteristic)
        self._notify(service, "on_characteristic_write_completed", peer_id, characteristic, value)

    # ------------------------------------------------------------------
    # Descriptor requests
    # ------------------------------------------------------------------

    def on_descriptor_read(self, peer_id: str, descriptor: Descriptor) -> ReadResponse:
        service = self._owner(self._parent(descriptor))
        handler = self._handler(service, "on_descriptor_read")
        if handler is None:
            return NOT_SUPPORTED
        return self._call_request(handler, READ_FAILED, peer_id, descriptor)

    def on_descriptor_write(self, peer_id: str, descriptor: Descriptor, value: bytes) -> GattStatus:
        service = self._owner(self._parent(descriptor))
        if service is None:
            return GattStatus.REQUEST_NOT_SUPPORTED
        handler = self._handler(service, "on_descriptor_write")
        if handler is None:
            return GattStatus.WRITE_NOT_PERMITTED
        return self._call_request(handler, GattStatus.UNLIKELY_ERROR, peer_id, descriptor, value)

    # ------------------------------------------------------------------
    # Subscriptions and notifications
    # ------------------------------------------------------------------

    def on_notifying_enabled(self, peer_id: str, characteristic: Characteristic) -> None:
        self._notify(self._owner(characteristic), "on_notifying_enabled", peer_id, characteristic)

    def on_notifying_disabled(self, peer_id: str, characteristic: Characteristic) -> None:
        self._notify(self._owner(characteristic), "on_notifying_disabled", peer_id, characteristic)

    def on_notification_sent(
        self, peer_id: str, value: bytes, characteristic: Characteristic, status: GattStatus
    ) -> None:
        self._notify(
            self._owner(characteristic),
            "on_notification_sent",
            peer_id,
            value,
            characteristic,
            status,
        )

    # ------------------------------------------------------------------
    # Connection events (broadcast)
    # ------------------------------------------------------------------

    def on_connected(self, peer_id: str) -> None:
        logger.info(f"Peer connected: {peer_id}")
        for service in list(self._services.values()):
            self._notify(service, "on_connected", peer_id)

    def on_disconnected(self, peer_id: str) -> None:
        logger.info(f"Peer disconnected: {peer_id}")
        for service in list(self._services.values()):
            self._notify(service, "on_disconnected", peer_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _owner(self, characteristic: Characteristic) -> Optional[GattService]:
        if characteristic.service_uuid is None:
            raise MalformedTopologyError(f"Characteristic {characteristic.uuid} has no service")
        service = self._services.get(characteristic.service_uuid)
        if service is None:
            logger.debug(f"No service registered for {characteristic.service_uuid}")
        return service

    @staticmethod
    def _parent(descriptor: Descriptor) -> Characteristic:
        if descriptor.characteristic is None:
            raise MalformedTopologyError(f"Descriptor {descriptor.uuid} has no characteristic")
        return descriptor.characteristic

    @staticmethod
    def _handler(service: Optional[GattService], name: str) -> Optional[Callable[..., Any]]:
        if service is None:
            return None
        return getattr(service, name, None)

    @staticmethod
    def _call_request(handler: Callable[..., Any], on_error: Any, *args: Any) -> Any:
        try:
            return handler(*args)
        except Exception as e:
            logger.error(f"Error in {handler.__qualname__}: {e}", exc_info=True)
            return on_error

    def _notify(self, service: Optional[GattService], name: str, *args: Any) -> None:
        handler = self._handler(service, name)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Error in {service.name}.{name}: {e}", exc_info=True)
