import pytest

from .fakes import connect_as

pytestmark = pytest.mark.asyncio


async def test_queries_reflect_protocol_state(hub):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "a2", 1)
    await connect_as(hub, "b1", 2)

    assert hub.is_online(1)
    assert not hub.is_online(3)
    assert [r.user_id for r in hub.online_users_in("P1")] == [1, 2]
    assert hub.online_users_in(None) == []
    assert hub.stats() == {"connections": 3, "users": 2, "rooms": 3, "online_users": 2}


async def test_notify_user_reaches_all_connections(hub, transport):
    await connect_as(hub, "a1", 1)
    await connect_as(hub, "a2", 1)
    transport.clear()

    assert await hub.notify_user(1, "notification", {"id": 3}) == 2
    assert sorted(cid for cid, _ in transport.named("notification")) == ["a1", "a2"]


async def test_broadcast_to_room_normalises_ids(hub, transport):
    hub.protocol.memberships.rooms[1].add("12")
    await connect_as(hub, "a1", 1)
    transport.clear()

    assert await hub.broadcast_to_room(12, "project_member_added", {"userId": 5}) == 1
    assert await hub.broadcast_to_room("", "project_member_added", {}) == 0
    assert transport.named("project_member_added") == [("a1", {"userId": 5})]
