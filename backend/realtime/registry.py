"""
In-memory registry of live WebSocket connections and their geo cells.

Each admitted connection belongs to at most one cell at a time. Moving a
connection removes it from the old cell and adds it to the new one under the
same lock, so no reader ever sees it in two cells.

State is process-local and rebuilt empty on restart; clients re-admit and
re-send their location after reconnecting.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from django.utils import timezone

from common.exceptions import NotFound, Unauthenticated
from .geo import encode_cell

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One live real-time session."""
    channel_name: str
    user_id: int
    cell: Optional[str] = None
    is_open: bool = True
    connected_at: object = field(default_factory=timezone.now)

    def __hash__(self):
        return hash(self.channel_name)

    def __eq__(self, other):
        return isinstance(other, Connection) and other.channel_name == self.channel_name


class ConnectionRegistry:
    """
    Tracks live connections and the cell -> members map.

    Handles are Connection objects; their channel name is the key.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}
        self._cells: Dict[str, Set[str]] = {}

    # ---------------------- Admission ----------------------

    def admit(self, user_id, channel_name: str) -> Connection:
        """
        Register a new connection for an authenticated user.

        Raises:
            Unauthenticated: user_id missing (identity was not resolved upstream).
        """
        if user_id is None:
            raise Unauthenticated("Connection has no authenticated identity")

        connection = Connection(channel_name=channel_name, user_id=user_id)
        with self._lock:
            previous = self._connections.get(channel_name)
            if previous is not None:
                self._remove_from_cell(previous)
                previous.is_open = False
            self._connections[channel_name] = connection

        logger.debug("Admitted connection %s for user %s", channel_name, user_id)
        return connection

    def release(self, handle) -> None:
        """Remove a connection from its cell and forget it. Safe to call twice."""
        channel_name = self._channel_name(handle)
        with self._lock:
            connection = self._connections.pop(channel_name, None)
            if connection is None:
                return
            self._remove_from_cell(connection)
            connection.is_open = False

        logger.debug("Released connection %s (user %s)", channel_name, connection.user_id)

    # ---------------------- Location ----------------------

    def set_location(self, handle, lat, lon) -> str:
        """
        Move a connection into the cell for (lat, lon).

        Idempotent when the cell does not change.

        Raises:
            InvalidCoordinate: bad lat/lon (from the codec).
            NotFound: the connection was never admitted or has been released.
        """
        new_cell = encode_cell(lat, lon)
        channel_name = self._channel_name(handle)

        with self._lock:
            connection = self._connections.get(channel_name)
            if connection is None:
                raise NotFound(f"Connection {channel_name} is not registered")

            prev_cell = connection.cell
            if prev_cell == new_cell:
                return new_cell

            self._remove_from_cell(connection)
            self._cells.setdefault(new_cell, set()).add(channel_name)
            connection.cell = new_cell

        logger.debug(
            "Connection %s (user %s) moved %s -> %s",
            channel_name, connection.user_id, prev_cell, new_cell,
        )
        return new_cell

    # ---------------------- Reads ----------------------

    def members_of(self, cell: str) -> Set[Connection]:
        """Snapshot of connections currently in `cell`."""
        with self._lock:
            return {self._connections[name] for name in self._cells.get(cell, ())}

    def all_connections(self) -> Set[Connection]:
        with self._lock:
            return set(self._connections.values())

    def get(self, handle) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(self._channel_name(handle))

    def snapshot(self) -> Dict[str, object]:
        """Connection and per-cell counts, for diagnostics."""
        with self._lock:
            return {
                "connections": len(self._connections),
                "located": sum(len(members) for members in self._cells.values()),
                "cells": {cell: len(members) for cell, members in self._cells.items()},
            }

    def clear(self) -> None:
        with self._lock:
            for connection in self._connections.values():
                connection.is_open = False
            self._connections.clear()
            self._cells.clear()

    # ---------------------- Internal ----------------------

    @staticmethod
    def _channel_name(handle) -> str:
        return handle.channel_name if isinstance(handle, Connection) else handle

    def _remove_from_cell(self, connection: Connection) -> None:
        # caller holds the lock
        if connection.cell is None:
            return
        members = self._cells.get(connection.cell)
        if members is not None:
            members.discard(connection.channel_name)
            if not members:
                del self._cells[connection.cell]
        connection.cell = None


# ---------------------- Singleton Instance ----------------------

_connection_registry: Optional[ConnectionRegistry] = None


def get_connection_registry() -> ConnectionRegistry:
    """Get singleton ConnectionRegistry instance."""
    global _connection_registry
    if _connection_registry is None:
        _connection_registry = ConnectionRegistry()
    return _connection_registry
