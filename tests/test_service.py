import json
import threading
import time
from http import HTTPStatus
from types import SimpleNamespace

import pytest
from websockets.sync.client import connect

from anonchatd.config import HubRuntimeConfig
from anonchatd.constants import STATE_ACTIVE, STATE_CLOSED
from anonchatd.service import HubService
from anonchatd.session import DuplicateConnectionError

from fakes import FakeConnection


def _say(hub, conn: FakeConnection, text: str, **extra) -> None:
    hub.on_data(conn, json.dumps({"type": "message", "text": text, **extra}))


def test_connect_sends_history_then_presence(hub) -> None:
    early = FakeConnection("early")
    hub.on_connect(early)
    _say(hub, early, "first")
    _say(hub, early, "second")
    expected_history = [m.to_wire() for m in hub.store.snapshot()]

    late = FakeConnection("late")
    hub.on_connect(late)

    events = late.events()
    assert events[0] == {"type": "history", "messages": expected_history}
    assert events[1] == {"type": "presence", "count": 2}
    assert late.state == STATE_ACTIVE
    assert "late" in hub.registry


def test_first_client_gets_empty_history(hub) -> None:
    c = FakeConnection()
    hub.on_connect(c)
    assert c.events() == [
        {"type": "history", "messages": []},
        {"type": "presence", "count": 1},
    ]


def test_history_failure_does_not_block_activation(hub) -> None:
    other = FakeConnection("other")
    hub.on_connect(other)

    broken = FakeConnection("broken", fail=True)
    hub.on_connect(broken)

    assert broken.state == STATE_ACTIVE
    assert "broken" in hub.registry
    assert hub.stats_manager.get("history_failed") == 1
    assert other.events_of("presence")[-1] == {"type": "presence", "count": 2}


def test_three_client_scenario(hub) -> None:
    c1, c2, c3 = FakeConnection("c1"), FakeConnection("c2"), FakeConnection("c3")
    for c in (c1, c2, c3):
        hub.on_connect(c)

    for c in (c1, c2, c3):
        assert c.events_of("presence")[-1]["count"] == 3
    assert [e["count"] for e in c1.events_of("presence")] == [1, 2, 3]

    _say(hub, c1, "hi")
    for c in (c1, c2, c3):
        msg = c.events_of("message")[-1]["message"]
        assert msg["text"] == "hi"
        assert msg["alias"] == "Anonymous"

    hub.on_close(c2)
    assert c1.events()[-1] == {"type": "presence", "count": 2}
    assert c3.events()[-1] == {"type": "presence", "count": 2}
    assert c2.state == STATE_CLOSED


def test_disconnect_announces_exactly_once(hub) -> None:
    a, b = FakeConnection("a"), FakeConnection("b")
    hub.on_connect(a)
    hub.on_connect(b)
    a.sent.clear()

    hub.on_close(b)
    hub.on_close(b)

    assert a.events() == [{"type": "presence", "count": 1}]
    assert hub.stats_manager.get("disconnects") == 1


def test_close_after_registry_cleared_is_silent(hub) -> None:
    a, b = FakeConnection("a"), FakeConnection("b")
    hub.on_connect(a)
    hub.on_connect(b)
    hub.registry.deregister("b")
    a.sent.clear()

    hub.on_close(b)

    assert a.sent == []


def test_close_before_activation_does_not_touch_registry(hub) -> None:
    a = FakeConnection("a")
    hub.on_connect(a)
    a.sent.clear()

    pending = FakeConnection("pending")
    hub.on_close(pending)

    assert a.sent == []
    assert pending.state == STATE_CLOSED


def test_frames_after_close_are_ignored(hub) -> None:
    a, b = FakeConnection("a"), FakeConnection("b")
    hub.on_connect(a)
    hub.on_connect(b)
    hub.on_close(b)
    a.sent.clear()

    _say(hub, b, "ghost")

    assert a.sent == []
    assert hub.store.snapshot() == ()


def test_duplicate_connection_id_is_refused(hub) -> None:
    hub.on_connect(FakeConnection("same"))
    dup = FakeConnection("same")

    with pytest.raises(DuplicateConnectionError):
        hub.on_connect(dup)

    # The handler's cleanup must not evict the original entry.
    hub.on_close(dup)
    assert "same" in hub.registry


def test_malformed_frame_keeps_connection_open(hub) -> None:
    a = FakeConnection("a")
    hub.on_connect(a)

    hub.on_data(a, "{{{")
    _say(hub, a, "still here")

    assert a.state == STATE_ACTIVE
    assert a.events_of("message")[-1]["message"]["text"] == "still here"


def test_stop_closes_connections_without_presence(hub) -> None:
    a, b = FakeConnection("a"), FakeConnection("b")
    hub.on_connect(a)
    hub.on_connect(b)
    _say(hub, a, "bye")
    a.sent.clear()

    hub.stop()

    assert a.close_calls == 1
    assert b.close_calls == 1
    assert hub.registry.size() == 0
    assert hub.store.snapshot() == ()

    # Handlers unwinding after shutdown find nothing to deregister.
    hub.on_close(a)
    assert a.sent == []


def test_format_stats(hub) -> None:
    a = FakeConnection("a")
    hub.on_connect(a)
    _say(hub, a, "hi")

    text = hub.stats_manager.format_stats()
    assert "clients_total=1" in text
    assert "history=1/200" in text
    assert "msgs_accepted=1" in text


class _Responder:
    def respond(self, status, text):
        return (status, text)


def _request(path: str, headers: dict) -> SimpleNamespace:
    return SimpleNamespace(path=path, headers=headers)


def test_process_request_requires_upgrade(hub) -> None:
    result = hub._process_request(_Responder(), _request("/api/socket", {}))
    assert result == (HTTPStatus.UPGRADE_REQUIRED, "Expected Upgrade: websocket\n")


def test_process_request_unknown_path(hub) -> None:
    result = hub._process_request(
        _Responder(), _request("/elsewhere", {"Upgrade": "websocket"})
    )
    assert result[0] == HTTPStatus.NOT_FOUND


def test_process_request_accepts_upgrade(hub) -> None:
    req = _request("/api/socket?x=1", {"Upgrade": "websocket"})
    assert hub._process_request(_Responder(), req) is None


def _writers() -> set[str]:
    return {
        t.name
        for t in threading.enumerate()
        if t.name.startswith("anonchatd-writer-") and t.is_alive()
    }


def _wait_for(pred, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def _recv(client) -> dict:
    return json.loads(client.recv(timeout=2))


def test_hub_over_loopback_socket() -> None:
    svc = HubService(
        HubRuntimeConfig(host="127.0.0.1", port=0, ping_interval_s=0, ping_timeout_s=0)
    )
    before = _writers()
    svc.start()
    try:
        host, port = svc.address
        url = f"ws://{host}:{port}/api/socket"

        a = connect(url)
        assert _recv(a) == {"type": "history", "messages": []}
        assert _recv(a) == {"type": "presence", "count": 1}

        b = connect(url)
        assert _recv(b)["type"] == "history"
        assert _recv(b) == {"type": "presence", "count": 2}
        assert _recv(a) == {"type": "presence", "count": 2}

        a.send(json.dumps({"type": "message", "text": "hi"}))
        for c in (a, b):
            event = _recv(c)
            assert event["type"] == "message"
            assert event["message"]["text"] == "hi"

        # A frame nested past the parser's recursion limit is dropped.
        a.send("[" * 5000 + "]" * 5000)
        a.send(json.dumps({"type": "message", "text": "still here"}))
        for c in (a, b):
            assert _recv(c)["message"]["text"] == "still here"
        assert svc.stats_manager.get("pkts_bad") == 1

        b.close()
        assert _recv(a) == {"type": "presence", "count": 1}

        a.close()
        assert _wait_for(lambda: svc.registry.size() == 0)
        assert _wait_for(lambda: not (_writers() - before))
    finally:
        svc.stop()
