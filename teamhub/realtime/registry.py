"""In-memory connection registry.

The registry is the single source of truth for which connections are live,
which user each one is bound to and which rooms it is subscribed to.

Every method is synchronous. All callers run on the one asyncio event loop
of the server process, so each call is an atomic step: no other handler can
observe a half-applied mutation.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from .errors import AlreadyBound
from .errors import ConnectionNotFound
from .protocol import utc_now

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    connection_id: str
    user_id: int | None = None
    rooms: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)

    @property
    def is_bound(self) -> bool:
        return self.user_id is not None

    def touch(self) -> None:
        self.last_activity = utc_now()


@dataclass(frozen=True)
class UnregisterResult:
    connection_id: str
    user_id: int | None
    rooms: frozenset[str]
    # True when this was the user's last live connection.
    last_for_user: bool


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_user: defaultdict[int, set[str]] = defaultdict(set)
        self._by_room: defaultdict[str, set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise ConnectionNotFound
        return conn

    def register(self, connection_id: str) -> Connection:
        existing = self._connections.get(connection_id)
        if existing is not None:
            logger.warning("Connection %s registered twice; keeping the first", connection_id)
            return existing
        conn = Connection(connection_id=connection_id)
        self._connections[connection_id] = conn
        return conn

    def bind(self, connection_id: str, user_id: int, rooms: Iterable[str]) -> Connection:
        """Attach a verified user and the initial room snapshot to a connection."""

        conn = self._require(connection_id)
        if conn.is_bound:
            raise AlreadyBound
        conn.user_id = user_id
        conn.rooms = set(rooms)
        conn.touch()
        self._by_user[user_id].add(connection_id)
        for room_id in conn.rooms:
            self._by_room[room_id].add(connection_id)
        return conn

    def add_subscription(self, connection_id: str, room_id: str) -> bool:
        """Subscribe a bound connection to a room. Returns False if already subscribed."""

        conn = self._require(connection_id)
        if not conn.is_bound or room_id in conn.rooms:
            return False
        conn.rooms.add(room_id)
        self._by_room[room_id].add(connection_id)
        return True

    def remove_subscription(self, connection_id: str, room_id: str) -> bool:
        """Returns False if the connection was not subscribed."""

        conn = self._connections.get(connection_id)
        if conn is None or room_id not in conn.rooms:
            return False
        conn.rooms.discard(room_id)
        self._discard_from_room(room_id, connection_id)
        return True

    def unregister(self, connection_id: str) -> UnregisterResult | None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return None

        for room_id in conn.rooms:
            self._discard_from_room(room_id, connection_id)

        last_for_user = False
        if conn.user_id is not None:
            user_conns = self._by_user.get(conn.user_id, set())
            user_conns.discard(connection_id)
            if not user_conns:
                self._by_user.pop(conn.user_id, None)
                last_for_user = True

        return UnregisterResult(
            connection_id=connection_id,
            user_id=conn.user_id,
            rooms=frozenset(conn.rooms),
            last_for_user=last_for_user,
        )

    def _discard_from_room(self, room_id: str, connection_id: str) -> None:
        members = self._by_room.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._by_room[room_id]

    # ---- queries ----

    def connections_for_user(self, user_id: int) -> frozenset[str]:
        return frozenset(self._by_user.get(user_id, ()))

    def connections_for_room(self, room_id: str) -> frozenset[str]:
        return frozenset(self._by_room.get(room_id, ()))

    def is_subscribed(self, connection_id: str, room_id: str) -> bool:
        return connection_id in self._by_room.get(room_id, ())

    def rooms_for_user(self, user_id: int) -> frozenset[str]:
        """Union of the rooms held by every live connection of a user."""

        rooms: set[str] = set()
        for connection_id in self._by_user.get(user_id, ()):
            rooms |= self._connections[connection_id].rooms
        return frozenset(rooms)

    def users_in_room(self, room_id: str) -> frozenset[int]:
        return frozenset(
            self._connections[cid].user_id
            for cid in self._by_room.get(room_id, ())
            if self._connections[cid].user_id is not None
        )

    def stats(self) -> dict[str, int]:
        return {
            "connections": len(self._connections),
            "users": len(self._by_user),
            "rooms": len(self._by_room),
        }
