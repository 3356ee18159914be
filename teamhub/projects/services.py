"""Membership lookups used by the realtime layer and the presence API."""

from __future__ import annotations

from typing import Any

from .models import ProjectMember


def parse_project_id(room_id: Any) -> int | None:
    """Rooms are named after project primary keys; anything else is no project."""
    if isinstance(room_id, bool):
        return None
    if isinstance(room_id, int):
        return room_id if room_id > 0 else None
    if isinstance(room_id, str) and room_id.strip().isdigit():
        value = int(room_id.strip())
        return value if value > 0 else None
    return None


def memberships_for_user(user_id: int) -> list[tuple[int, str]]:
    """Return ``(project_id, role)`` pairs for every project the user belongs to."""
    return list(
        ProjectMember.objects.filter(user_id=user_id)
        .order_by("project_id")
        .values_list("project_id", "role"),
    )


def is_project_member(user_id: int, project_id: int) -> bool:
    return ProjectMember.objects.filter(user_id=user_id, project_id=project_id).exists()
