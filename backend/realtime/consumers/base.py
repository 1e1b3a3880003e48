"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from common.exceptions import Unauthenticated
from realtime.registry import get_connection_registry

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Anonymous connections are closed before being accepted or admitted into
    the registry. Authenticated ones are admitted with no cell until the
    client reports a location.

    Subclasses should override:
        - on_connect(): custom connect logic
        - handle_message(msg_type, data): handle incoming messages
    """

    connection = None

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            # handler crashes end the consumer without a disconnect event
            self._release_connection()

    async def connect(self):
        self.user = self.scope.get("user")
        self.connection = None

        if self.user is None or self.user.is_anonymous:
            logger.info("Rejected unauthenticated WebSocket connection")
            await self.close()
            return

        self.user_id = getattr(self.user, "id", None)
        self.registry = get_connection_registry()

        try:
            self.connection = self.registry.admit(self.user_id, self.channel_name)
        except Unauthenticated:
            await self.close()
            return

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
        })

    async def disconnect(self, close_code):
        """Release the registry entry on disconnect."""
        if self.connection is None:
            return
        try:
            self._release_connection()
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    def _release_connection(self):
        if self.connection is not None:
            get_connection_registry().release(self.connection)

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        """Decode a JSON text frame, answering malformed frames with an error."""
        if not text_data:
            await self.send_error("Expected a JSON text frame")
            return

        try:
            data = await self.decode_json(text_data)
        except ValueError:
            await self.send_error("Invalid JSON")
            return

        await self.receive_json(data, **kwargs)

    async def receive_json(self, data: Dict[str, Any], **kwargs):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type") if isinstance(data, dict) else None
        if not msg_type:
            await self.send_error("Message type is required")
            return
        
        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error("internal error")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })
