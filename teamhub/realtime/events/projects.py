from __future__ import annotations

import logging
from typing import Any

from teamhub.realtime.protocol import utc_now
from teamhub.realtime.socketio import emit_event_to_room

logger = logging.getLogger(__name__)


def publish_to_project(project_id: int | str, event: str, payload: dict[str, Any]) -> int:
    """Broadcast a server-originated event to everyone subscribed to a project.

    Used by the CRUD layer when a change did not come through a socket (REST
    writes, admin actions), so there is no originating connection to skip.
    """

    message = {**payload, "roomId": str(project_id), "emittedAt": utc_now().isoformat()}
    delivered = emit_event_to_room(project_id, event, message)
    logger.debug("Published %s to project %s (%d connection(s))", event, project_id, delivered)
    return delivered
