"""Message fan-out and single-recipient sends for the chat hub."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .codec import encode
from .connection import Connection, ConnectionSendError
from .util import fmt_conn_id

if TYPE_CHECKING:
    from .service import HubService


class Broadcaster:
    """
    Delivers encoded envelopes to client connections.

    Handles:
    - Encoding a payload once per fan-out
    - Iterating a registry snapshot, optionally skipping one connection
    - Per-recipient failure isolation (log, count, close, continue)
    """

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = logging.getLogger("anonchatd.broadcast")

    def broadcast(self, payload: dict, *, exclude_id: str | None = None) -> int:
        """Send ``payload`` to every registered connection. Returns deliveries."""
        data = encode(payload)
        recipients = self.hub.registry.all()

        delivered = 0
        for connection in recipients:
            if exclude_id is not None and connection.id == exclude_id:
                continue
            if self._deliver(connection, data):
                delivered += 1
            else:
                # The connection's own close path deregisters it.
                self._drop(connection)

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Fan-out type=%s bytes=%s recipients=%s delivered=%s",
                payload.get("type"),
                len(data),
                len(recipients),
                delivered,
            )
        return delivered

    def send_to(self, connection: Connection, payload: dict) -> bool:
        """Send ``payload`` to one connection. Failures are logged, not raised."""
        return self._deliver(connection, encode(payload))

    def _deliver(self, connection: Connection, data: str) -> bool:
        try:
            connection.send(data)
        except (ConnectionSendError, OSError) as e:
            self.hub.stats_manager.inc("send_failures")
            self.log.warning(
                "Send failed conn_id=%s bytes=%s err=%s",
                fmt_conn_id(connection),
                len(data),
                e,
            )
            return False
        except Exception:
            self.hub.stats_manager.inc("send_failures")
            self.log.warning(
                "Send failed conn_id=%s bytes=%s",
                fmt_conn_id(connection),
                len(data),
                exc_info=True,
            )
            return False

        self.hub.stats_manager.inc("bytes_out", len(data))
        return True

    def _drop(self, connection: Connection) -> None:
        try:
            connection.close()
        except Exception:
            self.log.debug(
                "Close after failed send raised conn_id=%s",
                fmt_conn_id(connection),
                exc_info=True,
            )
