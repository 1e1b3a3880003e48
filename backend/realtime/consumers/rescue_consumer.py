"""Rescue WebSocket consumer: location rooms and report notifications."""

import logging
from typing import Dict, Any

from common.exceptions import InvalidCoordinate, NotFound
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RescueConsumer(BaseConsumer):
    """
    WebSocket consumer for reporters and volunteers.
    
    Handles:
        - set_location {lat, lng}: move this connection into its geo cell
        - ping: keep-alive
    
    Receives (via the fan-out dispatcher):
        - new_report, report_response, report_claimed, report_status, new_blog
    """

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "message": "Send set_location to receive nearby reports",
        })

    async def on_disconnect(self, close_code):
        logger.info("User %s disconnected (%s)", self.user_id, close_code)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "set_location":
            await self._handle_set_location(data)
        elif msg_type == "ping":
            await self.send_success("pong")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_set_location(self, data: Dict[str, Any]):
        """Join the cell for the reported coordinates, leaving the previous one."""
        lat = data.get("lat", data.get("latitude"))
        lng = data.get("lng", data.get("longitude"))

        try:
            cell = self.registry.set_location(self.connection, lat, lng)
        except InvalidCoordinate:
            await self.send_error("Invalid {lat,lng}")
            return
        except NotFound:
            await self.send_error("Connection is no longer registered")
            return

        logger.debug("User %s joined cell %s", self.user_id, cell)
        await self.send_success("location_updated", cell=cell)

    # ---------------------- Event Handlers (from channel_layer.send) ----------------------

    async def rescue_event(self, event):
        """Forward a fanned-out report/blog event to the client."""
        await self.send_json({
            "type": event.get("event"),
            "data": event.get("data", {}),
        })
