from __future__ import annotations

import logging
import signal
import threading
import time
from http import HTTPStatus

from websockets.exceptions import ConnectionClosedError
from websockets.http11 import Request, Response
from websockets.sync.server import Server, ServerConnection, serve

from .config import HubRuntimeConfig
from .connection import Connection, WebSocketConnection
from .constants import STATE_ACTIVE, STATE_CLOSED, STATE_CONNECTING
from .envelope import make_history
from .history import MessageStore
from .messages import Broadcaster
from .presence import PresenceTracker
from .router import MessageRouter
from .session import ConnectionRegistry
from .stats import StatsManager
from .util import fmt_conn_id, fmt_peer


class HubService:
    def __init__(
        self,
        config: HubRuntimeConfig,
        *,
        store: MessageStore | None = None,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("anonchatd.hub")

        self._shutdown = threading.Event()

        # The registry and the store are the only shared mutable state. Each
        # carries its own lock; nothing sends while holding either.
        self.store = store if store is not None else MessageStore(config.history_limit)
        self.registry = registry if registry is not None else ConnectionRegistry()

        self.stats_manager = StatsManager(self)

        # Fan-out to registered connections
        self.broadcaster = Broadcaster(self)

        # Connected-count announcements
        self.presence = PresenceTracker(self)

        # Inbound frame handling
        self.router = MessageRouter(self)

        self._server: Server | None = None
        self._server_thread: threading.Thread | None = None

    # Connection lifecycle

    def on_connect(self, connection: Connection) -> None:
        """
        Greet and register a freshly accepted connection.

        History is best-effort: a failed replay is logged and the connection
        still becomes active.
        """
        connection.state = STATE_CONNECTING
        self.stats_manager.inc("connects")

        history = self.store.snapshot()
        if self.broadcaster.send_to(connection, make_history(history)):
            self.stats_manager.inc("history_sent")
        else:
            self.stats_manager.inc("history_failed")
            self.log.warning(
                "Failed to send history conn_id=%s messages=%s",
                fmt_conn_id(connection),
                len(history),
            )

        size = self.registry.register(connection)
        connection.state = STATE_ACTIVE
        self.presence.announce()

        self.log.info(
            "Connection established conn_id=%s peer=%s clients=%s",
            fmt_conn_id(connection),
            fmt_peer(connection),
            size,
        )

    def on_data(self, connection: Connection, data: str | bytes) -> None:
        if connection.state != STATE_ACTIVE:
            return
        self.stats_manager.inc("frames_in")
        self.stats_manager.inc("bytes_in", len(data))
        self.router.route(connection, data)

    def on_close(self, connection: Connection) -> None:
        """Deregister and re-announce presence. Repeated calls are no-ops."""
        previous = connection.state
        if previous == STATE_CLOSED:
            return
        connection.state = STATE_CLOSED

        if previous != STATE_ACTIVE:
            # Never made it into the registry.
            return

        remaining = self.registry.deregister(connection.id)
        if remaining is None:
            # Already dropped, e.g. by stop().
            return

        self.stats_manager.inc("disconnects")
        self.presence.announce()

        self.log.info(
            "Connection closed conn_id=%s peer=%s clients=%s",
            fmt_conn_id(connection),
            fmt_peer(connection),
            remaining,
        )

    # Transport

    def _process_request(
        self, connection: ServerConnection, request: Request
    ) -> Response | None:
        path = request.path.split("?", 1)[0]
        if path != self.config.endpoint_path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        if not request.headers.get("Upgrade"):
            return connection.respond(
                HTTPStatus.UPGRADE_REQUIRED, "Expected Upgrade: websocket\n"
            )
        return None

    def _handle_ws(self, ws: ServerConnection) -> None:
        connection = WebSocketConnection(ws, queue_size=self.config.send_queue_size)
        connection.start()

        try:
            self.on_connect(connection)
            for data in ws:
                self.on_data(connection, data)
        except ConnectionClosedError as e:
            self.log.info(
                "Connection error conn_id=%s peer=%s err=%s",
                fmt_conn_id(connection),
                fmt_peer(connection),
                e,
            )
        except Exception:
            self.log.exception(
                "Connection handler failed conn_id=%s", fmt_conn_id(connection)
            )
        finally:
            try:
                self.on_close(connection)
            finally:
                # Releases the writer thread.
                connection.close()

    @property
    def address(self) -> tuple[str, int] | None:
        """Bound (host, port) of the listening socket, once started."""
        if self._server is None:
            return None
        host, port = self._server.socket.getsockname()[:2]
        return host, port

    def start(self) -> None:
        if self._server is not None:
            return

        self.stats_manager.set_start_time()

        ping_interval = self.config.ping_interval_s or None
        ping_timeout = self.config.ping_timeout_s or None

        self._server = serve(
            self._handle_ws,
            self.config.host,
            self.config.port,
            process_request=self._process_request,
            max_size=self.config.max_frame_bytes,
            ping_interval=ping_interval,
            ping_timeout=ping_timeout,
        )
        self._server_thread = threading.Thread(
            target=self._server.serve_forever,
            name="anonchatd-server",
            daemon=True,
        )
        self._server_thread.start()

        host, port = self.address
        self.log.info(
            "Hub listening on ws://%s:%s%s",
            host,
            port,
            self.config.endpoint_path,
        )
        self.log.info(
            "Policy history_limit=%s text_max_chars=%s alias_max_chars=%s color_max_chars=%s send_queue_size=%s",
            self.config.history_limit,
            self.config.text_max_chars,
            self.config.alias_max_chars,
            self.config.color_max_chars,
            self.config.send_queue_size,
        )

    def run_forever(self) -> None:
        if self._server is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        if self._server is not None:
            self._server.shutdown()

        self.log.info("%s", self.stats_manager.format_stats())

        connections = self.registry.clear_all()
        for connection in connections:
            connection.close()
        self.store.clear()

        self.log.info("Hub stopped, closed %s connection(s)", len(connections))
