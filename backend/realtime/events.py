"""Notification events fanned out to connected clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class EventKind(str, Enum):
    NEW_CASE = "new_case"
    NEW_RESPONSE = "new_response"
    CASE_CLAIMED = "case_claimed"
    CASE_STATUS_CHANGED = "case_status_changed"
    NEW_BLOG = "new_blog"


# Event name as seen by WebSocket clients
WIRE_NAMES = {
    EventKind.NEW_CASE: "new_report",
    EventKind.NEW_RESPONSE: "report_response",
    EventKind.CASE_CLAIMED: "report_claimed",
    EventKind.CASE_STATUS_CHANGED: "report_status",
    EventKind.NEW_BLOG: "new_blog",
}


@dataclass(frozen=True)
class NotificationEvent:
    """
    One event to deliver. Never persisted.

    origin is a (latitude, longitude) pair; None means "no location", which
    makes the dispatcher broadcast to everyone.
    """
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)
    origin: Optional[Tuple[Any, Any]] = None

    @property
    def wire_name(self) -> str:
        return WIRE_NAMES[EventKind(self.kind)]

    def to_message(self, message_type: str) -> Dict[str, Any]:
        """Channel layer message consumed by RescueConsumer."""
        return {
            "type": message_type,
            "event": self.wire_name,
            "data": self.payload,
        }
