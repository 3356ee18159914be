"""End-to-end behaviour of the realtime core against in-memory collaborators.

Alice (1) is a member of P1 and P2, Bob (2) of P1 and P3, Carol (3) of P2.
"""

import asyncio

import pytest

from teamhub.realtime.tests.fakes import build_test_hub
from teamhub.realtime.tests.fakes import connect_as

pytestmark = pytest.mark.asyncio


@pytest.fixture
def hub():
    return build_test_hub()


@pytest.fixture
def transport(hub):
    return hub.broadcaster.transport


def assert_presence_invariant(hub, *user_ids):
    for user_id in user_ids:
        assert hub.is_online(user_id) == bool(hub.registry.connections_for_user(user_id))


async def test_authentication_subscribes_snapshot_and_announces_online(hub, transport):
    await connect_as(hub, "b1", 2)
    await connect_as(hub, "c1", 3)
    await hub.protocol.connect("a1")
    transport.clear()

    await hub.protocol.authenticate("a1", "token-1")

    assert hub.registry.get("a1").rooms == {"P1", "P2"}
    online = sorted(transport.named("user_online"))
    assert [cid for cid, _ in online] == ["b1", "c1"]
    assert all(payload["userId"] == 1 for _, payload in online)
    assert "user_online" not in transport.names_for("a1")


async def test_subscribe_to_foreign_room_is_denied_to_caller_only(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    transport.clear()

    await hub.protocol.subscribe("a1", "P3")

    assert transport.sent == [
        ("a1", "error", {"message": "Access denied to project", "code": "access_denied"}),
    ]
    assert hub.registry.get("a1").rooms == {"P1", "P2"}


async def test_relay_reaches_room_only(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    await connect_as(hub, "c1", 3)
    transport.clear()

    task = {"id": 1, "status": "done"}
    await hub.protocol.relay("a1", "task_updated", {"roomId": "P1", "task": task})

    [(cid, message)] = transport.sent
    assert cid == "b1"
    assert message["task"] == task
    assert message["actingUser"]["id"] == 1
    assert transport.events_for("c1") == []


async def test_presence_survives_until_last_connection(hub, transport):
    hub.protocol.memberships.rooms[1] = {"P1"}
    await connect_as(hub, "b1", 2)
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "a2", 1)
    assert hub.registry.get("a2").rooms == {"P1"}
    transport.clear()

    await hub.protocol.disconnect("a1")
    assert hub.is_online(1)
    assert transport.named("user_offline") == []
    assert_presence_invariant(hub, 1, 2)

    await hub.protocol.disconnect("a2")
    assert not hub.is_online(1)
    assert transport.named("user_offline") == [("b1", {"userId": 1, "displayName": "Alice"})]
    assert_presence_invariant(hub, 1, 2)


async def test_unauthenticated_subscribe_changes_nothing(hub, transport):
    await connect_as(hub, "b1", 2)
    await hub.protocol.connect("a1")
    transport.clear()

    await hub.protocol.subscribe("a1", "P1")

    assert transport.sent == [
        ("a1", "error", {"message": "Authentication required", "code": "authentication_required"}),
    ]
    assert hub.registry.get("a1").rooms == set()
    assert hub.registry.connections_for_room("P1") == {"b1"}


async def test_nothing_is_relayed_before_authentication(hub, transport):
    await connect_as(hub, "b1", 2)
    await hub.protocol.connect("a1")
    transport.clear()

    for event_type in ("task_created", "typing_start", "call_initiated"):
        await hub.protocol.relay("a1", event_type, {"roomId": "P1"})
    await hub.protocol.authenticate("a1", "token-1")
    transport.clear()
    await hub.protocol.relay("a1", "task_created", {"roomId": "P1"})

    assert [cid for cid, _ in transport.named("task_created")] == ["b1"]


async def test_double_unsubscribe_broadcasts_one_leave(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    transport.clear()

    await hub.protocol.unsubscribe("a1", "P1")
    await hub.protocol.unsubscribe("a1", "P1")

    assert len(transport.named("user_left_room")) == 1


async def test_relays_from_one_source_keep_their_order(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    transport.clear()

    await asyncio.gather(
        *(
            hub.protocol.relay("a1", "task_updated", {"roomId": "P1", "seq": n})
            for n in range(20)
        ),
    )

    assert [p["seq"] for _, p in transport.named("task_updated")] == list(range(20))


async def test_relay_to_unsubscribed_room_broadcasts_nothing(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "b1", 2)
    transport.clear()

    await hub.protocol.relay("a1", "task_created", {"roomId": "P3"})

    assert transport.sent == []


async def test_presence_invariant_under_interleaving(hub):
    await asyncio.gather(
        *(connect_as(hub, f"a{n}", 1) for n in range(5)),
        *(connect_as(hub, f"b{n}", 2) for n in range(5)),
    )
    assert_presence_invariant(hub, 1, 2)

    await asyncio.gather(
        *(hub.protocol.disconnect(f"a{n}") for n in range(5)),
        hub.protocol.disconnect("b0"),
    )
    assert_presence_invariant(hub, 1, 2)
    assert not hub.is_online(1)
    assert hub.is_online(2)
