"""Presence tracking derived from the connection registry.

A user is online while at least one of their connections is bound. The
tracker keeps one record per online user, holding the display attributes
snapshotted when the user authenticated and the set of their connection ids.
Records are attached and detached in the same synchronous step as the
matching registry mutation, so ``is_online`` always agrees with
``ConnectionRegistry.connections_for_user``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any

from . import protocol
from .broadcaster import RoomBroadcaster
from .collaborators import UserProfile
from .protocol import utc_now
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@dataclass
class PresenceRecord:
    user_id: int
    display_name: str
    avatar_url: str = ""
    connection_ids: set[str] = field(default_factory=set)
    # Every room any of the user's connections held while the record lived.
    rooms: set[str] = field(default_factory=set)
    last_seen: datetime = field(default_factory=utc_now)

    def as_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "avatarUrl": self.avatar_url,
        }


class PresenceTracker:
    def __init__(self, registry: ConnectionRegistry, broadcaster: RoomBroadcaster):
        self.registry = registry
        self.broadcaster = broadcaster
        self._records: dict[int, PresenceRecord] = {}

    # ---- bookkeeping (synchronous, paired with registry mutations) ----

    def attach(
        self,
        connection_id: str,
        profile: UserProfile,
        rooms: Iterable[str] = (),
    ) -> PresenceRecord:
        record = self._records.get(profile.user_id)
        if record is None:
            record = PresenceRecord(user_id=profile.user_id, display_name=profile.display_name)
            self._records[profile.user_id] = record
        # Refresh the snapshot on every authentication, never in between.
        record.display_name = profile.display_name
        record.avatar_url = profile.avatar_url
        record.connection_ids.add(connection_id)
        record.rooms.update(rooms)
        record.last_seen = utc_now()
        return record

    def note_room(self, user_id: int, room_id: str) -> None:
        record = self._records.get(user_id)
        if record is not None:
            record.rooms.add(room_id)

    def detach(
        self,
        connection_id: str,
        user_id: int,
        rooms: Iterable[str] = (),
        *,
        last_for_user: bool,
    ) -> PresenceRecord | None:
        """Drop a connection from its user's record.

        Returns the removed record when this was the user's last connection,
        otherwise None.
        """

        record = self._records.get(user_id)
        if record is None:
            logger.error("No presence record for user %s while detaching %s", user_id, connection_id)
            return None
        record.connection_ids.discard(connection_id)
        record.rooms.update(rooms)
        record.last_seen = utc_now()
        if last_for_user or not record.connection_ids:
            if record.connection_ids:
                logger.error(
                    "Registry reports user %s offline but presence still holds %s",
                    user_id,
                    sorted(record.connection_ids),
                )
            return self._records.pop(user_id)
        return None

    # ---- queries ----

    def get(self, user_id: int) -> PresenceRecord | None:
        return self._records.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._records

    def online_users(self) -> list[PresenceRecord]:
        return sorted(self._records.values(), key=lambda r: r.user_id)

    def online_users_in(self, room_id: str) -> list[PresenceRecord]:
        return [
            self._records[user_id]
            for user_id in sorted(self.registry.users_in_room(room_id))
            if user_id in self._records
        ]

    # ---- announcements ----

    async def announce_online(
        self,
        user_id: int,
        room_ids: Iterable[str],
        exclude: str | None = None,
    ) -> None:
        record = self._records.get(user_id)
        if record is None:
            return
        payload = record.as_payload()
        for room_id in sorted(set(room_ids)):
            await self.broadcaster.broadcast(room_id, protocol.USER_ONLINE, payload, exclude=exclude)

    async def announce_offline(self, record: PresenceRecord, room_ids: Iterable[str]) -> None:
        """Called once the user's last connection is gone; ``record`` is already detached."""

        payload = {"userId": record.user_id, "displayName": record.display_name}
        for room_id in sorted(set(room_ids)):
            await self.broadcaster.broadcast(room_id, protocol.USER_OFFLINE, payload)

    async def announce_room_join(self, user_id: int, room_id: str, exclude: str | None = None) -> None:
        record = self._records.get(user_id)
        if record is None:
            return
        payload = {**record.as_payload(), "roomId": room_id}
        await self.broadcaster.broadcast(room_id, protocol.USER_JOINED_ROOM, payload, exclude=exclude)

    async def announce_room_leave(
        self,
        user_id: int,
        display_name: str,
        room_id: str,
        exclude: str | None = None,
    ) -> None:
        payload = {"userId": user_id, "displayName": display_name, "roomId": room_id}
        await self.broadcaster.broadcast(room_id, protocol.USER_LEFT_ROOM, payload, exclude=exclude)
