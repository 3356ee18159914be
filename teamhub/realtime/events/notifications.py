from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:  # import for type checking only
    from teamhub.notifications.models import Notification
from teamhub.realtime import protocol
from teamhub.realtime.socketio import emit_event_to_user


def build_notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.notification_type,
        "link": notification.related_link,
        "data": notification.data or {},
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


def publish_notification_created(notification: Notification) -> int:
    """Publish a newly created Notification to every connection of the recipient."""

    payload = build_notification_payload(notification)
    return emit_event_to_user(notification.recipient_id, protocol.NOTIFICATION, payload)
