from datetime import timedelta

import pytest
from asgiref.sync import async_to_sync
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from teamhub.projects.models import Project
from teamhub.projects.models import ProjectMember
from teamhub.realtime.backends import DjangoMembershipStore
from teamhub.realtime.backends import DjangoUserResolver
from teamhub.realtime.backends import JWTIdentityVerifier
from teamhub.realtime.collaborators import Membership
from teamhub.realtime.errors import InvalidCredential
from teamhub.realtime.errors import UnknownUser

pytestmark = pytest.mark.django_db


class TestJWTIdentityVerifier:
    def setup_method(self):
        self.verifier = JWTIdentityVerifier()

    def test_valid_access_token(self, user):
        token = str(AccessToken.for_user(user))
        identity = async_to_sync(self.verifier.verify)(token)
        assert identity.subject_id == str(user.pk)
        assert identity.claims["token_type"] == "access"

    def test_garbage_token(self):
        with pytest.raises(InvalidCredential) as exc_info:
            async_to_sync(self.verifier.verify)("not-a-jwt")
        assert exc_info.value.message == "Invalid token"

    def test_expired_token(self, user):
        token = AccessToken.for_user(user)
        token.set_exp(from_time=timezone.now() - timedelta(hours=2))
        with pytest.raises(InvalidCredential) as exc_info:
            async_to_sync(self.verifier.verify)(str(token))
        assert exc_info.value.message == "jwt_expired"

    def test_token_without_subject(self, user):
        token = AccessToken.for_user(user)
        del token["user_id"]
        with pytest.raises(InvalidCredential) as exc_info:
            async_to_sync(self.verifier.verify)(str(token))
        assert exc_info.value.message == "Token has no subject"


class TestDjangoUserResolver:
    def setup_method(self):
        self.resolver = DjangoUserResolver()

    def test_known_user(self, user):
        profile = async_to_sync(self.resolver.find_by_subject_id)(str(user.pk))
        assert profile.user_id == user.pk
        assert profile.display_name == "Alice"
        assert profile.avatar_url == "https://example.com/alice.png"

    def test_display_name_falls_back_to_username(self, other_user):
        profile = async_to_sync(self.resolver.find_by_subject_id)(str(other_user.pk))
        assert profile.display_name == "bob"
        assert profile.avatar_url == ""

    @pytest.mark.parametrize("subject", ["999999", "abc"])
    def test_unknown_subject(self, subject):
        with pytest.raises(UnknownUser):
            async_to_sync(self.resolver.find_by_subject_id)(subject)

    def test_inactive_user_is_unknown(self, user):
        user.is_active = False
        user.save(update_fields=["is_active"])
        with pytest.raises(UnknownUser):
            async_to_sync(self.resolver.find_by_subject_id)(str(user.pk))


class TestDjangoMembershipStore:
    def setup_method(self):
        self.store = DjangoMembershipStore()

    def test_memberships_and_checks(self, user, other_user):
        mine = Project.objects.create(name="Mine", owner=user)
        theirs = Project.objects.create(name="Theirs", owner=other_user)
        ProjectMember.objects.create(project=mine, user=user, role=ProjectMember.Role.OWNER)
        ProjectMember.objects.create(project=theirs, user=other_user)

        memberships = async_to_sync(self.store.memberships_of)(user.pk)
        assert memberships == {Membership(room_id=str(mine.pk), role="owner")}

        assert async_to_sync(self.store.is_member)(user.pk, str(mine.pk)) is True
        assert async_to_sync(self.store.is_member)(user.pk, str(theirs.pk)) is False
        assert async_to_sync(self.store.is_member)(user.pk, "P1") is False
