"""Client connection handles."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import uuid
from typing import Protocol, runtime_checkable

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import ServerConnection

from .constants import STATE_CONNECTING


class ConnectionSendError(ConnectionError):
    """Raised when a frame cannot be handed to a client connection."""


def new_connection_id() -> str:
    return str(uuid.uuid4())


@runtime_checkable
class Connection(Protocol):
    """
    The capability the hub needs from a client transport.

    ``send`` must not block on the network; a send that cannot be accepted
    raises ConnectionSendError. ``close`` is idempotent.
    """

    id: str
    state: str

    @property
    def closed(self) -> bool: ...

    def send(self, data: str) -> None: ...

    def close(self) -> None: ...


_CLOSE = object()


class WebSocketConnection:
    """
    Connection backed by a ``websockets`` synchronous server connection.

    Outbound frames go through a bounded queue drained by a writer thread,
    which keeps per-client FIFO order and keeps a slow client from stalling
    fan-out to everyone else. A full queue fails the send and closes the
    connection.
    """

    def __init__(
        self,
        ws: ServerConnection,
        *,
        queue_size: int = 256,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or new_connection_id()
        self.state = STATE_CONNECTING
        self.ws = ws
        self.log = logging.getLogger("anonchatd.connection")

        # The socket is gone by the time the close path logs, so read it now.
        try:
            self.remote_address = ws.remote_address
        except (AttributeError, OSError):
            self.remote_address = None

        self._outbox: queue.Queue[object] = queue.Queue(maxsize=max(1, int(queue_size)))
        self._closed = threading.Event()
        self._writer = threading.Thread(
            target=self._write_loop,
            name=f"anonchatd-writer-{self.id[:8]}",
            daemon=True,
        )

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> None:
        self._writer.start()

    def send(self, data: str) -> None:
        if self._closed.is_set():
            raise ConnectionSendError("connection closed")
        try:
            self._outbox.put_nowait(data)
        except queue.Full:
            self.close()
            raise ConnectionSendError(
                f"send queue full ({self._outbox.maxsize} frames)"
            ) from None

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._outbox.put_nowait(_CLOSE)
        except queue.Full:
            # The writer is stuck on a slow or dead peer; cut the transport so
            # both the writer and the receive loop return.
            self._abort()

    def _abort(self) -> None:
        sock = getattr(self.ws, "socket", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            self.log.debug("Transport shutdown failed conn_id=%s err=%s", self.id[:8], e)

    def _write_loop(self) -> None:
        while True:
            item = self._outbox.get()
            if item is _CLOSE or self._closed.is_set():
                break
            try:
                self.ws.send(item)
            except ConnectionClosed:
                break
            except OSError as e:
                self.log.warning("Write failed conn_id=%s err=%s", self.id[:8], e)
                break

        self._closed.set()
        try:
            # Unblocks the receive loop, which then runs the hub close path.
            self.ws.close()
        except Exception:
            self.log.debug("Close failed conn_id=%s", self.id[:8], exc_info=True)
