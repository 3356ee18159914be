from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any

from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

# (connection_id, event, payload) -> push one message down one connection.
Transport = Callable[[str, str, dict[str, Any]], Awaitable[None]]


class RoomBroadcaster:
    """Fire-and-forget fan-out of events to the connections of a room.

    Targets are resolved from the registry on every call. Deliveries are
    awaited one after the other, so two broadcasts reaching the same
    connection arrive in the order they were made. A failing connection is
    logged and skipped; the caller never sees the error.
    """

    def __init__(self, registry: ConnectionRegistry, transport: Transport):
        self.registry = registry
        self.transport = transport

    async def deliver(self, connection_id: str, event: str, payload: dict[str, Any]) -> bool:
        try:
            await self.transport(connection_id, event, payload)
        except Exception:  # noqa: BLE001 - one dead socket must not abort a fan-out
            logger.warning(
                "Delivery of %s to connection %s failed",
                event,
                connection_id,
                exc_info=True,
            )
            return False
        return True

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        delivered = 0
        for connection_id in self.registry.connections_for_room(room_id):
            if connection_id == exclude:
                continue
            # A target may have left while an earlier delivery was awaited.
            if not self.registry.is_subscribed(connection_id, room_id):
                continue
            if await self.deliver(connection_id, event, payload):
                delivered += 1
        logger.debug("Broadcast %s to room %s reached %d connection(s)", event, room_id, delivered)
        return delivered

    async def send_to_user(self, user_id: int, event: str, payload: dict[str, Any]) -> int:
        """Push an event to every live connection of one user (tabs, devices)."""

        delivered = 0
        for connection_id in self.registry.connections_for_user(user_id):
            if connection_id not in self.registry:
                continue
            if await self.deliver(connection_id, event, payload):
                delivered += 1
        return delivered
