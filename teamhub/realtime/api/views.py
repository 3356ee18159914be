from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAdminUser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from teamhub.projects import services as project_services
from teamhub.realtime.socketio import hub
from teamhub.realtime.socketio import query_hub

from .serializers import OnlineUserSerializer
from .serializers import OnlineUsersSerializer
from .serializers import ProjectPresenceSerializer
from .serializers import UserPresenceSerializer


class UserPresenceView(APIView):
    """Whether a user currently has at least one authenticated connection."""

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Presence"], responses=UserPresenceSerializer)
    def get(self, request, user_id: int):
        online = query_hub(hub.is_online, user_id)
        return Response({"userId": user_id, "online": online})


class ProjectPresenceView(APIView):
    """Online members of a project. Only members of the project may ask."""

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Presence"], responses=ProjectPresenceSerializer)
    def get(self, request, project_id: int):
        if not project_services.is_project_member(request.user.pk, project_id):
            msg = "Access denied to project"
            raise PermissionDenied(msg)
        records = query_hub(hub.online_users_in, project_id)
        return Response(
            {
                "projectId": project_id,
                "online": OnlineUserSerializer(records, many=True).data,
            },
        )


class OnlineUsersView(APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(tags=["Presence"], responses=OnlineUsersSerializer)
    def get(self, request):
        records = query_hub(hub.online_users)
        return Response(
            {
                "count": len(records),
                "users": OnlineUserSerializer(records, many=True).data,
                "stats": query_hub(hub.stats),
            },
        )
