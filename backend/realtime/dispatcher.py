"""
Geo cell fan-out of notification events.

Instead of broadcasting every report update to every client, events are sent
only to connections whose cell is the event's origin cell or one of its
neighbours.

Flow:
1. Encode the event origin into a cell, add its neighbours -> rooms
2. Snapshot the registry members of every room
3. Send the event to each member concurrently through the transport
4. A failure for one connection is logged and skipped

If the origin is missing or cannot be encoded, the event is broadcast to every
live connection; over-delivery is preferred to dropping it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

from common.exceptions import DeliveryFailure, InvalidCoordinate
from .events import NotificationEvent
from .geo import cells_for_origin
from .registry import Connection, ConnectionRegistry, get_connection_registry

logger = logging.getLogger(__name__)


def _event_message_type() -> str:
    return settings.REALTIME.get("EVENT_MESSAGE_TYPE", "rescue.event")


# ---------------------- Transports ----------------------

class Transport:
    """Delivers one message to one connection. Raise DeliveryFailure on error."""

    async def send(self, connection: Connection, message: Dict[str, Any]) -> None:
        raise NotImplementedError


class ChannelLayerTransport(Transport):
    """Sends to the connection's channel through the Channels layer."""

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    async def send(self, connection: Connection, message: Dict[str, Any]) -> None:
        if not connection.is_open:
            raise DeliveryFailure(connection.channel_name, "connection closed")

        channel_layer = self._channel_layer or get_channel_layer()
        if channel_layer is None:
            raise DeliveryFailure(connection.channel_name, "no channel layer configured")

        try:
            await channel_layer.send(connection.channel_name, message)
        except Exception as e:
            raise DeliveryFailure(connection.channel_name, str(e)) from e


# ---------------------- Dispatcher ----------------------

@dataclass
class DispatchResult:
    """Outcome of one fan-out call (for logging/tests, nothing is acknowledged)."""
    event: str
    cell: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)
    recipients: int = 0
    delivered: int = 0
    failed: int = 0
    broadcast: bool = False


class FanoutDispatcher:
    """Resolves an event's rooms and delivers it to their members."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        transport: Optional[Transport] = None,
    ):
        self._registry = registry or get_connection_registry()
        self._transport = transport or ChannelLayerTransport()

    async def notify_nearby(self, event: NotificationEvent) -> DispatchResult:
        """
        Deliver `event` to every connection in the origin cell and its neighbours.

        Falls back to broadcast() when the origin is missing or invalid.
        """
        try:
            if event.origin is None:
                raise InvalidCoordinate("event has no origin")
            cell, rooms = cells_for_origin(*event.origin)
        except Exception as e:
            logger.warning(
                "Cannot resolve origin %r for %s, broadcasting to all: %s",
                event.origin, event.wire_name, e,
            )
            return await self.broadcast(event)

        recipients: Set[Connection] = set()
        for room in rooms:
            recipients |= self._registry.members_of(room)

        delivered, failed = await self._deliver(event, recipients)

        logger.info(
            "Fan-out %s from cell %s: %d rooms, %d delivered, %d failed",
            event.wire_name, cell, len(rooms), delivered, failed,
        )
        return DispatchResult(
            event=event.wire_name,
            cell=cell,
            rooms=rooms,
            recipients=len(recipients),
            delivered=delivered,
            failed=failed,
        )

    async def broadcast(self, event: NotificationEvent) -> DispatchResult:
        """Deliver `event` to every live connection regardless of cell."""
        recipients = self._registry.all_connections()
        delivered, failed = await self._deliver(event, recipients)

        logger.info(
            "Broadcast %s: %d delivered, %d failed",
            event.wire_name, delivered, failed,
        )
        return DispatchResult(
            event=event.wire_name,
            recipients=len(recipients),
            delivered=delivered,
            failed=failed,
            broadcast=True,
        )

    async def _deliver(self, event: NotificationEvent, recipients: Set[Connection]):
        if not recipients:
            return 0, 0

        message = event.to_message(_event_message_type())
        results = await asyncio.gather(
            *(self._send_one(connection, message) for connection in recipients)
        )
        delivered = sum(1 for ok in results if ok)
        return delivered, len(results) - delivered

    async def _send_one(self, connection: Connection, message: Dict[str, Any]) -> bool:
        try:
            await self._transport.send(connection, message)
            return True
        except DeliveryFailure as e:
            logger.warning("Skipping user %s: %s", connection.user_id, e)
        except Exception:
            logger.exception(
                "Unexpected error delivering to %s (user %s)",
                connection.channel_name, connection.user_id,
            )
        return False


# ---------------------- Singleton / Module API ----------------------

_dispatcher: Optional[FanoutDispatcher] = None


def get_dispatcher() -> FanoutDispatcher:
    """Get singleton FanoutDispatcher bound to the process registry."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = FanoutDispatcher()
    return _dispatcher


async def notify_nearby(event: NotificationEvent) -> DispatchResult:
    return await get_dispatcher().notify_nearby(event)


async def broadcast(event: NotificationEvent) -> DispatchResult:
    return await get_dispatcher().broadcast(event)


def notify_nearby_sync(event: NotificationEvent) -> DispatchResult:
    """Synchronous wrapper for notify_nearby, for views and services."""
    return async_to_sync(notify_nearby)(event)


def broadcast_sync(event: NotificationEvent) -> DispatchResult:
    """Synchronous wrapper for broadcast."""
    return async_to_sync(broadcast)(event)
