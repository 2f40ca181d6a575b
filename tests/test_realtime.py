import asyncio

import pytest

from qrdine.models import UserRole
from qrdine.services.realtime import Connection, Events, RoomKey, RoomKind

from tests.conftest import FakeSocket


# =============================================================================
# ROOM KEYS
# =============================================================================

def test_role_and_table_rooms_never_collide():
    assert RoomKey.for_role("kitchen") != RoomKey.for_table(1)
    assert str(RoomKey.for_role(UserRole.KITCHEN)) == "role:kitchen"
    assert str(RoomKey.for_table(5)) == "table:5"


def test_room_keys_normalize_input():
    assert RoomKey.for_role(" Kitchen ") == RoomKey.for_role(UserRole.KITCHEN)
    assert RoomKey.for_table("7") == RoomKey.for_table(7)
    assert RoomKey.for_table(7).kind == RoomKind.TABLE


@pytest.mark.parametrize("role", ["chef", "", None, "table:1"])
def test_unknown_role_room(role):
    with pytest.raises(ValueError):
        RoomKey.for_role(role)


@pytest.mark.parametrize("table_id", [0, -3, "abc", None, True])
def test_invalid_table_room(table_id):
    with pytest.raises(ValueError):
        RoomKey.for_table(table_id)


# =============================================================================
# MEMBERSHIP
# =============================================================================

def test_connections_join_no_room_by_default(manager):
    connection = manager.connect(Connection(FakeSocket()))
    assert connection.rooms == set()
    assert manager.members(RoomKey.for_role("admin")) == []


def test_join_requires_registered_connection(manager):
    with pytest.raises(ValueError):
        manager.join(Connection(FakeSocket()), RoomKey.for_role("admin"))


def test_leave_and_disconnect(manager):
    connection = manager.connect(Connection(FakeSocket()))
    kitchen, table = RoomKey.for_role("kitchen"), RoomKey.for_table(3)
    manager.join(connection, kitchen)
    manager.join(connection, table)

    manager.leave(connection, kitchen)
    assert not manager.is_member(connection, kitchen)
    assert manager.is_member(connection, table)

    manager.disconnect(connection)
    manager.disconnect(connection)
    assert manager.connection_count == 0
    assert manager.members(table) == []


# =============================================================================
# BROADCASTING
# =============================================================================

async def test_role_broadcast_reaches_only_that_room(broadcaster, subscribe):
    kitchen = subscribe(RoomKey.for_role("kitchen"))
    cashier = subscribe(RoomKey.for_role("cashier"))
    idle = subscribe()

    delivered = await broadcaster.broadcast_to_role("kitchen", Events.ORDER_NEW, {"id": 1})

    assert delivered == 1
    assert kitchen.frames == [{"event": "order:new", "data": {"id": 1}}]
    assert cashier.frames == []
    assert idle.frames == []


async def test_table_broadcast(broadcaster, subscribe):
    guest = subscribe(RoomKey.for_table(4))
    other = subscribe(RoomKey.for_table(5))

    await broadcaster.broadcast_to_table(4, Events.BILL_PAID, {"tableId": 4})

    assert guest.events == ["bill:paid"]
    assert other.frames == []


async def test_global_broadcast_reaches_every_connection(broadcaster, subscribe):
    sockets = [subscribe(), subscribe(RoomKey.for_role("admin")), subscribe(RoomKey.for_table(1))]

    assert await broadcaster.broadcast_global(Events.MENU_UPDATE, {}) == 3
    assert all(s.events == ["menu-update"] for s in sockets)


async def test_multi_role_broadcast(broadcaster, subscribe):
    waiter = subscribe(RoomKey.for_role("waiter"))
    admin = subscribe(RoomKey.for_role("admin"))

    delivered = await broadcaster.broadcast_to_roles(
        [UserRole.WAITER, UserRole.ADMIN], Events.WAITER_ASSIGNED, {}
    )

    assert delivered == 2
    assert waiter.events == admin.events == ["waiter-assigned"]


async def test_failed_send_drops_connection_everywhere(manager, broadcaster, subscribe):
    healthy = subscribe(RoomKey.for_role("kitchen"))
    subscribe(RoomKey.for_role("kitchen"), RoomKey.for_table(2), fail=True)

    delivered = await broadcaster.broadcast_to_role("kitchen", Events.ORDER_NEW, {})

    assert delivered == 1
    assert healthy.events == ["order:new"]
    assert manager.connection_count == 1
    assert len(manager.members(RoomKey.for_role("kitchen"))) == 1
    assert manager.members(RoomKey.for_table(2)) == []


async def test_frames_arrive_in_emission_order(broadcaster, subscribe):
    class SlowSocket(FakeSocket):
        async def send_json(self, data):
            await asyncio.sleep(0.001)
            await super().send_json(data)

    socket = SlowSocket()
    connection = broadcaster.manager.connect(Connection(socket))
    broadcaster.manager.join(connection, RoomKey.for_role("kitchen"))

    await asyncio.gather(*(
        broadcaster.broadcast_to_role("kitchen", Events.ORDER_UPDATE, {"seq": n})
        for n in range(10)
    ))

    assert [frame["data"]["seq"] for frame in socket.frames] == list(range(10))


async def test_no_subscribers_is_not_an_error(broadcaster):
    assert await broadcaster.broadcast_to_table(9, Events.ORDER_NEW, {}) == 0
