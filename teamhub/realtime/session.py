"""Per-connection session protocol.

Each live connection moves through ``UNAUTHENTICATED -> AUTHENTICATED`` and
is dropped on disconnect. Every operation for one connection runs under that
session's lock, so operations from one connection are applied (and their
broadcasts sent) in the order they arrived, and a disconnect that races an
in-flight authenticate waits for it to settle.

Public coroutines never raise protocol errors; they report them to the
originating connection and return a boolean outcome.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from . import protocol
from .broadcaster import RoomBroadcaster
from .collaborators import IdentityVerifier
from .collaborators import MembershipStore
from .collaborators import UserProfile
from .collaborators import UserResolver
from .errors import AUTH_FAILURES
from .errors import AccessDenied
from .errors import AlreadyBound
from .errors import AuthenticationRequired
from .errors import ConnectionNotFound
from .errors import InvalidCredential
from .errors import RealtimeError
from .presence import PresenceTracker
from .protocol import DomainEvent
from .registry import Connection
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass
class Session:
    connection_id: str
    state: SessionState = SessionState.UNAUTHENTICATED
    profile: UserProfile | None = None
    # Set as soon as the transport reports a disconnect.
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionProtocol:
    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: RoomBroadcaster,
        presence: PresenceTracker,
        *,
        verifier: IdentityVerifier,
        resolver: UserResolver,
        memberships: MembershipStore,
        auth_timeout: float | None = None,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.presence = presence
        self.verifier = verifier
        self.resolver = resolver
        self.memberships = memberships
        self.auth_timeout = auth_timeout
        self._sessions: dict[str, Session] = {}

    def get_session(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def state_of(self, connection_id: str) -> SessionState | None:
        session = self._sessions.get(connection_id)
        return session.state if session is not None else None

    async def _reply(self, connection_id: str, event: str, payload: dict[str, Any]) -> None:
        await self.broadcaster.deliver(connection_id, event, payload)

    async def _report(self, connection_id: str, exc: RealtimeError) -> None:
        if isinstance(exc, AUTH_FAILURES):
            await self._reply(connection_id, protocol.AUTH_ERROR, {"message": exc.message})
        else:
            await self._reply(
                connection_id,
                protocol.ERROR,
                {"message": exc.message, "code": exc.code},
            )

    def _authenticated(self, session: Session | None) -> tuple[Session, Connection]:
        if session is None or session.state is not SessionState.AUTHENTICATED:
            raise AuthenticationRequired
        conn = self.registry.get(session.connection_id)
        if conn is None:
            raise ConnectionNotFound
        return session, conn

    # ---- lifecycle ----

    async def connect(self, connection_id: str) -> Session:
        self.registry.register(connection_id)
        session = self._sessions.get(connection_id)
        if session is None:
            session = Session(connection_id=connection_id)
            self._sessions[connection_id] = session
        logger.debug("Connection %s registered", connection_id)
        return session

    async def disconnect(self, connection_id: str) -> None:
        session = self._sessions.get(connection_id)
        if session is None:
            # Never connected through us; still make sure nothing lingers.
            self.registry.unregister(connection_id)
            return

        session.closed = True
        async with session.lock:
            self._sessions.pop(connection_id, None)
            result = self.registry.unregister(connection_id)
            if result is None or result.user_id is None:
                logger.debug("Unauthenticated connection %s closed", connection_id)
                return

            record = self.presence.detach(
                connection_id,
                result.user_id,
                result.rooms,
                last_for_user=result.last_for_user,
            )
            if record is not None:
                logger.info("User %s went offline", result.user_id)
                await self.presence.announce_offline(record, record.rooms)
                return

            # The user is still online elsewhere: only rooms they no longer
            # occupy through any connection hear that they left.
            still_present = self.registry.rooms_for_user(result.user_id)
            display_name = session.profile.display_name if session.profile else ""
            for room_id in sorted(result.rooms - still_present):
                await self.presence.announce_room_leave(result.user_id, display_name, room_id)
            logger.info("Connection %s of user %s closed", connection_id, result.user_id)

    # ---- authenticate ----

    async def authenticate(self, connection_id: str, credential: Any) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            logger.warning("authenticate from unknown connection %s", connection_id)
            return False
        async with session.lock:
            if session.closed:
                return False
            try:
                await self._authenticate(session, credential)
            except AlreadyBound as exc:
                logger.error("Connection %s tried to authenticate twice", connection_id)
                await self._report(connection_id, exc)
                return False
            except RealtimeError as exc:
                if session.closed:
                    return False
                logger.info("Authentication failed for connection %s: %s", connection_id, exc.message)
                await self._report(connection_id, exc)
                return False
            return session.state is SessionState.AUTHENTICATED

    async def _resolve(self, credential: str) -> tuple[UserProfile, frozenset[str]]:
        identity = await self.verifier.verify(credential)
        profile = await self.resolver.find_by_subject_id(identity.subject_id)
        memberships = await self.memberships.memberships_of(profile.user_id)
        return profile, frozenset(m.room_id for m in memberships)

    async def _authenticate(self, session: Session, credential: Any) -> None:
        if session.state is SessionState.AUTHENTICATED:
            raise AlreadyBound
        if not isinstance(credential, str) or not credential:
            msg = "Token required"
            raise InvalidCredential(msg)

        try:
            profile, rooms = await asyncio.wait_for(self._resolve(credential), self.auth_timeout)
        except TimeoutError as exc:
            msg = "Authentication timed out"
            raise InvalidCredential(msg) from exc

        if session.closed or session.connection_id not in self.registry:
            logger.info("Discarding authentication of closed connection %s", session.connection_id)
            return

        connection_id = session.connection_id
        covered = self.registry.rooms_for_user(profile.user_id)
        self.registry.bind(connection_id, profile.user_id, rooms)
        self.presence.attach(connection_id, profile, rooms)
        session.state = SessionState.AUTHENTICATED
        session.profile = profile
        logger.info(
            "Connection %s authenticated as user %s (%d room(s))",
            connection_id,
            profile.user_id,
            len(rooms),
        )

        await self._reply(
            connection_id,
            protocol.AUTHENTICATED,
            {
                "user": profile.as_payload(),
                "rooms": sorted(rooms),
                "message": "Authentication successful",
            },
        )
        await self.presence.announce_online(profile.user_id, rooms - covered, exclude=connection_id)

    # ---- subscriptions ----

    async def subscribe(self, connection_id: str, room_id: Any) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        async with session.lock:
            if session.closed:
                return False
            try:
                return await self._subscribe(session, room_id)
            except RealtimeError as exc:
                if not session.closed:
                    await self._report(connection_id, exc)
                return False

    async def _subscribe(self, session: Session, raw_room_id: Any) -> bool:
        session, conn = self._authenticated(session)
        room_id = protocol.normalize_room_id(raw_room_id)
        if room_id is None:
            raise AccessDenied

        if room_id in conn.rooms:
            await self._reply(conn.connection_id, protocol.JOINED_ROOM, {"roomId": room_id})
            return True

        if not await self.memberships.is_member(conn.user_id, room_id):
            logger.info("User %s denied access to room %s", conn.user_id, room_id)
            raise AccessDenied

        if session.closed or conn.connection_id not in self.registry:
            return False

        newly_present = room_id not in self.registry.rooms_for_user(conn.user_id)
        self.registry.add_subscription(conn.connection_id, room_id)
        self.presence.note_room(conn.user_id, room_id)
        conn.touch()

        await self._reply(conn.connection_id, protocol.JOINED_ROOM, {"roomId": room_id})
        if newly_present:
            await self.presence.announce_room_join(conn.user_id, room_id, exclude=conn.connection_id)
        return True

    async def unsubscribe(self, connection_id: str, room_id: Any) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        async with session.lock:
            if session.closed:
                return False
            try:
                session, conn = self._authenticated(session)
            except RealtimeError as exc:
                await self._report(connection_id, exc)
                return False

            room = protocol.normalize_room_id(room_id)
            removed = room is not None and self.registry.remove_subscription(connection_id, room)
            conn.touch()
            await self._reply(connection_id, protocol.LEFT_ROOM, {"roomId": room})
            # Other connections of the same user keep them present in the room.
            if removed and room not in self.registry.rooms_for_user(conn.user_id):
                await self.presence.announce_room_leave(
                    conn.user_id,
                    session.profile.display_name if session.profile else "",
                    room,
                    exclude=connection_id,
                )
            return removed

    # ---- relay ----

    async def relay(self, connection_id: str, event_type: str, data: Any) -> bool:
        session = self._sessions.get(connection_id)
        if session is None:
            return False
        async with session.lock:
            if session.closed:
                return False
            try:
                session, conn = self._authenticated(session)
            except RealtimeError as exc:
                await self._report(connection_id, exc)
                return False

            if event_type not in protocol.RELAY_EVENTS:
                logger.warning("Connection %s sent unknown relay event %s", connection_id, event_type)
                return False

            room_id = protocol.room_from_payload(data)
            if room_id is None or room_id not in conn.rooms:
                # Not subscribed: a client bug or a spoofing attempt. Nobody is told.
                logger.info(
                    "Dropped %s from connection %s for unsubscribed room %s",
                    event_type,
                    connection_id,
                    room_id,
                )
                return False

            conn.touch()
            event = DomainEvent(
                event_type=event_type,
                room_id=room_id,
                payload=dict(data),
                origin_connection_id=connection_id,
            )
            await self.broadcaster.broadcast(
                room_id,
                event.rule.outbound,
                event.to_message(session.profile.as_payload()),
                exclude=connection_id,
            )
            return True

    # ---- liveness ----

    async def ping(self, connection_id: str) -> None:
        conn = self.registry.get(connection_id)
        if conn is not None:
            conn.touch()
        await self._reply(connection_id, protocol.PONG, {"timestamp": protocol.utc_now().isoformat()})
