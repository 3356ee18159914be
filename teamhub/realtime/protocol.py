"""Wire vocabulary of the realtime protocol.

Event names flowing in both directions, the relay catalogue and the
immutable envelope relayed domain events travel in.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime
from typing import Any

# ---- client -> server ----

AUTHENTICATE = "authenticate"
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
PING = "ping"
# Names used by the original web client.
SUBSCRIBE_ALIASES = ("join_project",)
UNSUBSCRIBE_ALIASES = ("leave_project",)

# ---- server -> client ----

AUTHENTICATED = "authenticated"
AUTH_ERROR = "auth_error"
ERROR = "error"
JOINED_ROOM = "joined_room"
LEFT_ROOM = "left_room"
USER_ONLINE = "user_online"
USER_OFFLINE = "user_offline"
USER_JOINED_ROOM = "user_joined_room"
USER_LEFT_ROOM = "user_left_room"
PONG = "pong"
NOTIFICATION = "notification"


@dataclass(frozen=True)
class RelayRule:
    outbound: str
    include_avatar: bool = False


# Client event -> how it is pushed to the other subscribers of the room.
RELAY_EVENTS: dict[str, RelayRule] = {
    "task_created": RelayRule("task_created"),
    "task_updated": RelayRule("task_updated"),
    "task_deleted": RelayRule("task_deleted"),
    "retrospective_item_added": RelayRule("retrospective_item_added"),
    "retrospective_item_updated": RelayRule("retrospective_item_updated"),
    "retrospective_item_deleted": RelayRule("retrospective_item_deleted"),
    "retrospective_item_voted": RelayRule("retrospective_item_voted"),
    "call_initiated": RelayRule("call_initiated", include_avatar=True),
    "call_joined": RelayRule("call_joined"),
    "call_ended": RelayRule("call_ended"),
    "typing_start": RelayRule("user_typing"),
    "typing_stop": RelayRule("user_stopped_typing"),
}

# Payload keys that carry the target room; `projectId` is the legacy name.
ROOM_KEYS = ("roomId", "projectId")


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_room_id(value: Any) -> str | None:
    """Return the canonical string form of a room id, or None if unusable."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def room_from_payload(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in ROOM_KEYS:
        if key in data:
            return normalize_room_id(data[key])
    return None


@dataclass(frozen=True)
class DomainEvent:
    event_type: str
    room_id: str
    payload: dict[str, Any]
    origin_connection_id: str
    emitted_at: datetime = field(default_factory=utc_now)

    @property
    def rule(self) -> RelayRule:
        return RELAY_EVENTS[self.event_type]

    def to_message(self, acting_user: dict[str, Any]) -> dict[str, Any]:
        """Build the outbound message, enriched with the acting user."""

        body = {k: v for k, v in self.payload.items() if k not in ROOM_KEYS}
        actor = {"id": acting_user["userId"], "displayName": acting_user["displayName"]}
        if self.rule.include_avatar:
            actor["avatarUrl"] = acting_user.get("avatarUrl", "")
        return {
            **body,
            "roomId": self.room_id,
            "actingUser": actor,
            "emittedAt": self.emitted_at.isoformat(),
        }
