"""Django-backed collaborators for the realtime layer.

- identity: djangorestframework-simplejwt access tokens
- users: the project's user model
- memberships: ``teamhub.projects`` membership rows
"""

from __future__ import annotations

import logging
import time

from channels.db import database_sync_to_async
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from teamhub.projects import services as project_services

from .collaborators import Membership
from .collaborators import UserProfile
from .collaborators import VerifiedIdentity
from .errors import InvalidCredential
from .errors import UnknownUser

logger = logging.getLogger(__name__)


def _has_expired(credential: str) -> bool:
    # Library versions disagree on the expiry message; read the claim instead.
    try:
        unverified = AccessToken(credential, verify=False)
    except TokenError:
        return False
    exp = unverified.payload.get("exp")
    return isinstance(exp, int | float) and exp <= time.time()


class JWTIdentityVerifier:
    async def verify(self, credential: str) -> VerifiedIdentity:
        try:
            token = AccessToken(credential)
        except TokenError as exc:
            # The client refreshes its token on this exact string.
            if _has_expired(credential):
                msg = "jwt_expired"
                raise InvalidCredential(msg) from exc
            raise InvalidCredential from exc

        subject = token.payload.get(api_settings.USER_ID_CLAIM)
        if subject is None:
            msg = "Token has no subject"
            raise InvalidCredential(msg)
        return VerifiedIdentity(subject_id=str(subject), claims=dict(token.payload))


@database_sync_to_async
def _load_profile(subject_id: str) -> UserProfile:
    user_model = get_user_model()
    try:
        user = user_model.objects.get(**{api_settings.USER_ID_FIELD: subject_id})
    except (user_model.DoesNotExist, ValueError, ValidationError) as exc:
        raise UnknownUser from exc
    if not user.is_active:
        logger.info("Rejected realtime login for inactive user %s", user.pk)
        raise UnknownUser
    return UserProfile(
        user_id=int(user.pk),
        display_name=user.get_display_name(),
        avatar_url=user.avatar_url or "",
    )


class DjangoUserResolver:
    async def find_by_subject_id(self, subject_id: str) -> UserProfile:
        return await _load_profile(subject_id)


class DjangoMembershipStore:
    async def memberships_of(self, user_id: int) -> set[Membership]:
        rows = await database_sync_to_async(project_services.memberships_for_user)(user_id)
        return {Membership(room_id=str(project_id), role=role) for project_id, role in rows}

    async def is_member(self, user_id: int, room_id: str) -> bool:
        project_id = project_services.parse_project_id(room_id)
        if project_id is None:
            return False
        return await database_sync_to_async(project_services.is_project_member)(
            user_id,
            project_id,
        )
