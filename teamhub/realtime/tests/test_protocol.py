from datetime import UTC
from datetime import datetime

import pytest

from teamhub.realtime.protocol import RELAY_EVENTS
from teamhub.realtime.protocol import DomainEvent
from teamhub.realtime.protocol import normalize_room_id
from teamhub.realtime.protocol import room_from_payload


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (7, "7"),
        ("7", "7"),
        ("  P1 ", "P1"),
        ("", None),
        ("   ", None),
        (None, None),
        (True, None),
        (1.5, None),
        ({"id": 1}, None),
    ],
)
def test_normalize_room_id(value, expected):
    assert normalize_room_id(value) == expected


def test_room_from_payload_prefers_room_id():
    assert room_from_payload({"roomId": 3, "projectId": 4}) == "3"
    assert room_from_payload({"projectId": 4}) == "4"
    assert room_from_payload({"task": {}}) is None
    assert room_from_payload("P1") is None


def test_typing_events_are_renamed():
    assert RELAY_EVENTS["typing_start"].outbound == "user_typing"
    assert RELAY_EVENTS["typing_stop"].outbound == "user_stopped_typing"
    assert all(name == rule.outbound for name, rule in RELAY_EVENTS.items() if "typing" not in name)


def test_domain_event_message():
    event = DomainEvent(
        event_type="task_deleted",
        room_id="9",
        payload={"projectId": 9, "taskId": 12},
        origin_connection_id="c1",
        emitted_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    )
    acting = {"userId": 1, "displayName": "Alice", "avatarUrl": "a.png"}
    assert event.to_message(acting) == {
        "taskId": 12,
        "roomId": "9",
        "actingUser": {"id": 1, "displayName": "Alice"},
        "emittedAt": "2024-05-01T12:00:00+00:00",
    }


def test_domain_event_is_immutable():
    event = DomainEvent("task_created", "1", {}, "c1")
    with pytest.raises(AttributeError):
        event.room_id = "2"
