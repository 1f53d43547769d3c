from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .codec import decode
from .connection import Connection
from .envelope import (
    ChatMessage,
    build_chat_message,
    make_message,
    validate_client_message,
)
from .util import fmt_conn_id

if TYPE_CHECKING:
    from .service import HubService


class MessageRouter:
    """
    Handles inbound frames for the chat hub.

    This class is responsible for:
    - Decoding and validating inbound frames
    - Normalizing accepted chat messages (trim, clamp, defaults)
    - Appending to the message store
    - Fanning accepted messages out to every connection, sender included

    Malformed frames are dropped without a reply.
    """

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = logging.getLogger("anonchatd.router")
        # Keeps live fan-out order identical to history order.
        self._publish_lock = threading.Lock()

    def route(self, connection: Connection, data: str | bytes) -> ChatMessage | None:
        """
        Main entry point for an inbound frame.

        Returns the accepted ChatMessage, or None if the frame was dropped.
        """
        if not isinstance(data, str):
            self.hub.stats_manager.inc("pkts_bad")
            self.log.debug(
                "Ignoring binary frame conn_id=%s bytes=%s",
                fmt_conn_id(connection),
                len(data),
            )
            return None

        try:
            env = decode(data)
            validate_client_message(env)
        except (TypeError, ValueError, RecursionError) as e:
            self.hub.stats_manager.inc("pkts_bad")
            self.log.debug(
                "Bad frame conn_id=%s chars=%s err=%s",
                fmt_conn_id(connection),
                len(data),
                e,
            )
            return None

        cfg = self.hub.config
        message = build_chat_message(
            env,
            text_max_chars=cfg.text_max_chars,
            alias_max_chars=cfg.alias_max_chars,
            color_max_chars=cfg.color_max_chars,
            default_alias=cfg.default_alias,
            default_color=cfg.default_color,
        )
        self.publish(message)

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX conn_id=%s msg_id=%s alias=%r chars=%s",
                fmt_conn_id(connection),
                message.id,
                message.alias,
                len(message.text),
            )
        return message

    def publish(self, message: ChatMessage) -> int:
        """Append to history, then fan out to all connections."""
        with self._publish_lock:
            self.hub.store.append(message)
            delivered = self.hub.broadcaster.broadcast(make_message(message))

        self.hub.stats_manager.inc("msgs_accepted")
        self.hub.stats_manager.inc("msgs_delivered", delivered)
        return delivered
