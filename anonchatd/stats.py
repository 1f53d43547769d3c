"""Statistics tracking and reporting for the chat hub."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import HubService


class StatsManager:
    """
    Manages hub statistics collection and reporting.

    Tracks counters for:
    - Connects and disconnects
    - Frames and bytes in/out
    - Malformed payloads
    - Accepted and delivered chat messages
    - Send failures
    - History replays and presence announcements
    """

    def __init__(self, hub: HubService) -> None:
        self.hub = hub
        self.log = hub.log

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._lock = threading.Lock()
        self._counters: dict[str, int] = {
            "connects": 0,
            "disconnects": 0,
            "frames_in": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "pkts_bad": 0,
            "msgs_accepted": 0,
            "msgs_delivered": 0,
            "send_failures": 0,
            "history_sent": 0,
            "history_failed": 0,
            "presence_announced": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        now_mono = time.monotonic()
        started_mono = self.started_monotonic
        uptime_s = (now_mono - started_mono) if started_mono is not None else 0.0

        session_stats = self.hub.registry.get_stats()
        history_len = len(self.hub.store)
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"anonchatd {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"clients_total={session_stats['total']} "
            f"clients_active={session_stats['active']}"
        )
        lines.append(f"history={history_len}/{self.hub.store.limit}")
        lines.append(
            f"limits: text_max_chars={self.hub.config.text_max_chars} "
            f"alias_max_chars={self.hub.config.alias_max_chars} "
            f"color_max_chars={self.hub.config.color_max_chars} "
            f"send_queue_size={self.hub.config.send_queue_size}"
        )
        lines.append(
            "io: frames_in={} pkts_bad={} bytes_in={} bytes_out={}".format(
                c.get("frames_in", 0),
                c.get("pkts_bad", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        lines.append(
            "events: connects={} disconnects={} msgs_accepted={} msgs_delivered={} send_failures={}".format(
                c.get("connects", 0),
                c.get("disconnects", 0),
                c.get("msgs_accepted", 0),
                c.get("msgs_delivered", 0),
                c.get("send_failures", 0),
            )
        )
        lines.append(
            "greeting: history_sent={} history_failed={} presence_announced={}".format(
                c.get("history_sent", 0),
                c.get("history_failed", 0),
                c.get("presence_announced", 0),
            )
        )

        return "\n".join(lines)
