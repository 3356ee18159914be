from __future__ import annotations

from rest_framework import serializers

from teamhub.realtime.presence import PresenceRecord


class OnlineUserSerializer(serializers.Serializer):
    """Read-only view of a live presence record."""

    userId = serializers.IntegerField(source="user_id")  # noqa: N815
    displayName = serializers.CharField(source="display_name")  # noqa: N815
    avatarUrl = serializers.CharField(source="avatar_url", allow_blank=True)  # noqa: N815
    connections = serializers.SerializerMethodField()
    lastSeen = serializers.DateTimeField(source="last_seen")  # noqa: N815

    def get_connections(self, obj: PresenceRecord) -> int:
        return len(obj.connection_ids)


class UserPresenceSerializer(serializers.Serializer):
    userId = serializers.IntegerField()  # noqa: N815
    online = serializers.BooleanField()


class ProjectPresenceSerializer(serializers.Serializer):
    projectId = serializers.IntegerField()  # noqa: N815
    online = OnlineUserSerializer(many=True)


class OnlineUsersSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    users = OnlineUserSerializer(many=True)
    stats = serializers.DictField(child=serializers.IntegerField())
