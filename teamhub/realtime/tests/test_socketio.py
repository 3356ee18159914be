import pytest
from asgiref.sync import async_to_sync

from teamhub.realtime import socketio as realtime_socketio
from teamhub.realtime.protocol import RELAY_EVENTS

from .fakes import build_test_hub
from .fakes import connect_as


@pytest.fixture
def hub(monkeypatch):
    hub = build_test_hub()
    monkeypatch.setattr(realtime_socketio, "hub", hub)
    return hub


@pytest.fixture
def transport(hub):
    return hub.broadcaster.transport


class TestExtractToken:
    def test_asgi_query_string(self):
        environ = {"asgi.scope": {"query_string": b"EIO=4&token=abc"}}
        assert realtime_socketio._extract_token(environ, None) == "abc"  # noqa: SLF001

    def test_wsgi_query_string(self):
        environ = {"QUERY_STRING": "token=xyz&transport=polling"}
        assert realtime_socketio._extract_token(environ, None) == "xyz"  # noqa: SLF001

    def test_auth_fallback(self):
        assert realtime_socketio._extract_token({}, {"token": "t1"}) == "t1"  # noqa: SLF001

    def test_missing(self):
        assert realtime_socketio._extract_token({}, {"token": ""}) is None  # noqa: SLF001
        assert realtime_socketio._extract_token({}, None) is None  # noqa: SLF001


def test_every_client_event_has_a_handler():
    handlers = realtime_socketio.sio.handlers["/"]
    expected = {
        "connect",
        "disconnect",
        "authenticate",
        "subscribe",
        "unsubscribe",
        "join_project",
        "leave_project",
        "ping",
        *RELAY_EVENTS,
    }
    assert expected <= set(handlers)


@pytest.mark.asyncio
async def test_handshake_token_authenticates_on_connect(hub, transport):
    environ = {"asgi.scope": {"query_string": b"token=token-1"}}
    await realtime_socketio.connect("s1", environ, None)
    assert hub.is_online(1)
    assert transport.names_for("s1") == ["authenticated"]


@pytest.mark.asyncio
async def test_connect_without_token_stays_unauthenticated(hub, transport):
    await realtime_socketio.connect("s1", {}, None)
    assert "s1" in hub.registry
    assert transport.sent == []

    await realtime_socketio.authenticate("s1", {"token": "token-2"})
    assert hub.is_online(2)


@pytest.mark.asyncio
async def test_aliases_and_relay_handlers(hub, transport):
    await realtime_socketio.connect("a1", {}, {"token": "token-1"})
    await realtime_socketio.connect("b1", {}, {"token": "token-2"})
    handlers = realtime_socketio.sio.handlers["/"]

    await handlers["leave_project"]("a1", {"projectId": "P1"})
    await handlers["join_project"]("a1", {"projectId": "P1"})
    transport.clear()
    await handlers["task_created"]("a1", {"projectId": "P1", "task": {"id": 1}})

    [(cid, message)] = transport.named("task_created")
    assert cid == "b1"
    assert message["task"] == {"id": 1}
    assert message["actingUser"]["id"] == 1


@pytest.mark.asyncio
async def test_disconnect_announces_offline(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    transport.clear()
    await realtime_socketio.disconnect("a1", "client disconnect")
    assert not hub.is_online(1)
    assert transport.named("user_offline") == [("b1", {"userId": 1, "displayName": "Alice"})]


@pytest.mark.asyncio
async def test_ping_handler(hub, transport):
    await realtime_socketio.connect("s1", {}, None)
    await realtime_socketio.ping("s1")
    assert transport.names_for("s1") == ["pong"]


@pytest.mark.asyncio
async def test_unexpected_failure_is_reported(hub, transport, monkeypatch, caplog):
    async def explode(*args):
        msg = "boom"
        raise RuntimeError(msg)

    await realtime_socketio.connect("s1", {}, None)
    monkeypatch.setattr(hub.protocol, "subscribe", explode)
    await realtime_socketio.sio.handlers["/"]["subscribe"]("s1", {"roomId": "P1"})

    assert transport.events_for("s1") == [
        ("error", {"message": "Server error", "code": "server_error"}),
    ]
    assert "Socket.IO handler error for connection s1" in caplog.text


def test_emit_helpers_from_sync_code(hub, transport):
    async_to_sync(connect_as)(hub, "a1", 1)
    async_to_sync(connect_as)(hub, "a2", 1)
    transport.clear()

    assert realtime_socketio.emit_event_to_user(1, "notification", {"id": 4}) == 2
    assert realtime_socketio.emit_event_to_room("P2", "project_member_added", {"userId": 9}) == 2
    assert realtime_socketio.query_hub(hub.is_online, 1) is True
