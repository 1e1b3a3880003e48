"""
Notification helpers for sending WebSocket events about reports and blogs.

Called by the case lifecycle and the blog views after their database writes
have committed. Failures here are logged and swallowed: a notification
problem never fails the request that triggered it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder

from .dispatcher import DispatchResult, broadcast_sync, notify_nearby_sync
from .events import EventKind, NotificationEvent

logger = logging.getLogger(__name__)


def _json_safe(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Decimals/datetimes -> JSON primitives so any channel layer can carry them."""
    return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))


def notify_report_event(
    kind: EventKind,
    report,
    payload: Dict[str, Any],
) -> Optional[DispatchResult]:
    """
    Fan out a report event to connections near the report's location.

    Args:
        kind: EventKind for the change
        report: Report model instance (only latitude/longitude are read)
        payload: Event body sent to clients
    """
    event = NotificationEvent(
        kind=kind,
        payload=_json_safe(payload),
        origin=(report.latitude, report.longitude),
    )
    try:
        result = notify_nearby_sync(event)
    except Exception:
        logger.exception("Failed to notify %s for report %s", event.wire_name, report.pk)
        return None

    logger.debug("WS -> %s report=%s: %s", event.wire_name, report.pk, result)
    return result


def broadcast_blog(blog_payload: Dict[str, Any]) -> Optional[DispatchResult]:
    """Send a new blog post to every connected client."""
    event = NotificationEvent(kind=EventKind.NEW_BLOG, payload=_json_safe(blog_payload))
    try:
        return broadcast_sync(event)
    except Exception:
        logger.exception("Failed to broadcast new blog %s", blog_payload.get("id"))
        return None
