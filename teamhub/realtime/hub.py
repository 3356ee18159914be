from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from . import protocol
from .broadcaster import RoomBroadcaster
from .broadcaster import Transport
from .collaborators import IdentityVerifier
from .collaborators import MembershipStore
from .collaborators import UserResolver
from .presence import PresenceRecord
from .presence import PresenceTracker
from .registry import ConnectionRegistry
from .session import SessionProtocol

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Process-wide realtime state plus the surface the HTTP side talks to.

    The Socket.IO handlers drive ``protocol``; views, signals and services
    use the query and publish helpers below.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        verifier: IdentityVerifier,
        resolver: UserResolver,
        memberships: MembershipStore,
        auth_timeout: float | None = None,
    ):
        self.registry = ConnectionRegistry()
        self.broadcaster = RoomBroadcaster(self.registry, transport)
        self.presence = PresenceTracker(self.registry, self.broadcaster)
        self.protocol = SessionProtocol(
            self.registry,
            self.broadcaster,
            self.presence,
            verifier=verifier,
            resolver=resolver,
            memberships=memberships,
            auth_timeout=auth_timeout,
        )

    # ---- queries ----

    def is_online(self, user_id: int) -> bool:
        return self.presence.is_online(user_id)

    def online_users_in(self, room_id: Any) -> list[PresenceRecord]:
        room = protocol.normalize_room_id(room_id)
        if room is None:
            return []
        return self.presence.online_users_in(room)

    def online_users(self) -> list[PresenceRecord]:
        return self.presence.online_users()

    def stats(self) -> dict[str, int]:
        return {**self.registry.stats(), "online_users": len(self.presence.online_users())}

    # ---- server-side publishing ----

    async def notify_user(self, user_id: int, event: str, payload: dict[str, Any]) -> int:
        return await self.broadcaster.send_to_user(user_id, event, payload)

    async def broadcast_to_room(self, room_id: Any, event: str, payload: dict[str, Any]) -> int:
        room = protocol.normalize_room_id(room_id)
        if room is None:
            logger.warning("Refusing to broadcast %s to invalid room id %r", event, room_id)
            return 0
        return await self.broadcaster.broadcast(room, event, payload)


def build_hub(transport: Transport) -> RealtimeHub:
    """Build a hub with the collaborators configured in settings."""

    return RealtimeHub(
        transport,
        verifier=import_string(settings.REALTIME_IDENTITY_VERIFIER)(),
        resolver=import_string(settings.REALTIME_USER_RESOLVER)(),
        memberships=import_string(settings.REALTIME_MEMBERSHIP_STORE)(),
        auth_timeout=settings.REALTIME_AUTH_TIMEOUT,
    )
