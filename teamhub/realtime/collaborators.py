"""Contracts of the external collaborators the realtime layer depends on.

The default, Django-backed implementations live in
``teamhub.realtime.backends``; the classes used at runtime are chosen by the
``REALTIME_*`` settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Protocol


@dataclass(frozen=True)
class VerifiedIdentity:
    subject_id: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserProfile:
    user_id: int
    display_name: str
    avatar_url: str = ""

    def as_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "avatarUrl": self.avatar_url,
        }


@dataclass(frozen=True)
class Membership:
    room_id: str
    role: str = "member"


class IdentityVerifier(Protocol):
    async def verify(self, credential: str) -> VerifiedIdentity:
        """Raise ``InvalidCredential`` for a bad or expired credential."""


class UserResolver(Protocol):
    async def find_by_subject_id(self, subject_id: str) -> UserProfile:
        """Raise ``UnknownUser`` when no application user matches."""


class MembershipStore(Protocol):
    async def memberships_of(self, user_id: int) -> set[Membership]: ...

    async def is_member(self, user_id: int, room_id: str) -> bool: ...
