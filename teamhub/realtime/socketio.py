"""Global Socket.IO server for the web client.

Every connection starts unauthenticated and must send ``authenticate``
(``{token}``) before anything else is accepted. A token passed in the
handshake (``query.token`` or ``auth.token``) is treated as an immediate
``authenticate``. Connections are never refused at the handshake: a failed
authentication is reported with ``auth_error`` and the client may retry.

All state lives in the process-wide ``hub``; handlers here only translate
Socket.IO events into protocol calls.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import socketio
from asgiref.sync import async_to_sync
from django.conf import settings

from . import protocol
from .hub import build_hub

logger = logging.getLogger(__name__)


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.REALTIME_CORS_ALLOWED_ORIGINS,
    # Send the handshake ack before our connect handler runs so pushes made
    # while authenticating a handshake token reach the client.
    always_connect=True,
    logger=False,
    engineio_logger=False,
)


async def _emit_to_connection(connection_id: str, event: str, payload: dict[str, Any]) -> None:
    await sio.emit(event, payload, to=connection_id)


hub = build_hub(_emit_to_connection)


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract a JWT from the Socket.IO environ/auth.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    # Allow `auth: { token }` as fallback.
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    return None


def _credential_from(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("token")
    return data


async def _guarded(sid: str, operation: Awaitable[Any]) -> Any:
    try:
        return await operation
    except Exception:
        logger.exception("Socket.IO handler error for connection %s", sid)
        await hub.broadcaster.deliver(
            sid,
            protocol.ERROR,
            {"message": "Server error", "code": "server_error"},
        )
        return None


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    await hub.protocol.connect(sid)
    token = _extract_token(environ, auth)
    if token:
        await _guarded(sid, hub.protocol.authenticate(sid, token))


@sio.event
async def disconnect(sid: str, reason: Any = None):
    logger.debug("Connection %s disconnected (%s)", sid, reason)
    await _guarded(sid, hub.protocol.disconnect(sid))


@sio.event
async def authenticate(sid: str, data: Any = None):
    await _guarded(sid, hub.protocol.authenticate(sid, _credential_from(data)))


async def _subscribe(sid: str, data: Any = None):
    await _guarded(sid, hub.protocol.subscribe(sid, protocol.room_from_payload(data)))


async def _unsubscribe(sid: str, data: Any = None):
    await _guarded(sid, hub.protocol.unsubscribe(sid, protocol.room_from_payload(data)))


@sio.event
async def ping(sid: str, data: Any = None):
    await _guarded(sid, hub.protocol.ping(sid))


def _relay_handler(event_type: str):
    async def handler(sid: str, data: Any = None):
        await _guarded(sid, hub.protocol.relay(sid, event_type, data))

    handler.__name__ = f"relay_{event_type}"
    return handler


for _name in (protocol.SUBSCRIBE, *protocol.SUBSCRIBE_ALIASES):
    sio.on(_name, handler=_subscribe)
for _name in (protocol.UNSUBSCRIBE, *protocol.UNSUBSCRIBE_ALIASES):
    sio.on(_name, handler=_unsubscribe)
for _event_type in protocol.RELAY_EVENTS:
    sio.on(_event_type, handler=_relay_handler(_event_type))


def emit_event_to_user(user_id: int, event: str, payload: dict[str, Any]) -> int:
    """Push an event to every live connection of a user from sync code."""

    return async_to_sync(hub.notify_user)(user_id, event, payload)


def emit_event_to_room(room_id: Any, event: str, payload: dict[str, Any]) -> int:
    """Broadcast an event into a room from sync code."""

    return async_to_sync(hub.broadcast_to_room)(room_id, event, payload)


def query_hub(query: Callable[..., Any], *args: Any) -> Any:
    """Run a synchronous hub query on the event loop that owns the hub."""

    async def _run():
        return query(*args)

    return async_to_sync(_run)()
