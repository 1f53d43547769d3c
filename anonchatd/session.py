from __future__ import annotations

import logging
import threading
from typing import Any

from .connection import Connection


class DuplicateConnectionError(ValueError):
    """Raised when a connection id is already registered."""


class ConnectionRegistry:
    """
    Tracks the live client connections of the hub, keyed by connection id.

    This class is responsible for:
    - Registering connections once they have been greeted
    - Idempotent removal on close or error
    - Handing out point-in-time snapshots for fan-out

    All mutations happen under the registry lock. Nothing sends while holding
    it; callers copy the recipient list out with all() and iterate that.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("anonchatd.session")
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}

    def register(self, connection: Connection) -> int:
        """
        Add a connection under its id.

        Returns:
            registry size after the insert
        Raises:
            DuplicateConnectionError if the id is already present
        """
        with self._lock:
            if connection.id in self._connections:
                raise DuplicateConnectionError(
                    f"connection id already registered: {connection.id}"
                )
            self._connections[connection.id] = connection
            size = len(self._connections)

        self.log.debug("Registered conn_id=%s size=%s", connection.id, size)
        return size

    def deregister(self, connection_id: str) -> int | None:
        """
        Remove a connection by id.

        Returns:
            registry size after the removal, or None if the id was absent
        """
        with self._lock:
            removed = self._connections.pop(connection_id, None)
            if removed is None:
                return None
            size = len(self._connections)

        self.log.debug("Deregistered conn_id=%s size=%s", connection_id, size)
        return size

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def all(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def size(self) -> int:
        with self._lock:
            return len(self._connections)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections

    def clear_all(self) -> list[Connection]:
        """Drop every connection and return them for teardown."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        return connections

    def get_stats(self) -> dict[str, Any]:
        connections = self.all()
        return {
            "total": len(connections),
            "active": sum(1 for c in connections if not c.closed),
        }
