from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .envelope import make_presence

if TYPE_CHECKING:
    from .service import HubService


class PresenceTracker:
    """Broadcasts the connected-client count after membership changes."""

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = logging.getLogger("anonchatd.presence")
        # Reading the size and queueing the fan-out happen as one step, so
        # every client sees counts in emission order.
        self._lock = threading.RLock()

    def announce(self) -> int:
        with self._lock:
            count = self.hub.registry.size()
            self.hub.broadcaster.broadcast(make_presence(count))

        self.hub.stats_manager.inc("presence_announced")
        self.log.debug("Presence count=%s", count)
        return count
