"""
Real-Time Event Broadcaster

Fans lifecycle events out to role-rooms, table-rooms or every connection.

Delivery is best-effort and at-most-once per connection per call: there is
no replay queue, so a client that is disconnected when an event fires
simply misses it. A connection whose send fails is pruned from the
manager.
"""

import asyncio
import logging
from typing import Any, Iterable, Union

from qrdine.models import UserRole
from qrdine.services.realtime.manager import Connection, ConnectionManager
from qrdine.services.realtime.rooms import RoomKey

logger = logging.getLogger(__name__)


class Events:
    """Event names emitted on the realtime channel."""
    ORDER_NEW = "order:new"
    ORDER_UPDATE = "order:update"
    BILL_PAID = "bill:paid"
    TABLE_CREATED = "table-created"
    TABLE_UPDATED = "table-updated"
    TABLE_DELETED = "table-deleted"
    WAITER_ASSIGNED = "waiter-assigned"
    TABLE_ISSUE = "table-issue"
    MENU_UPDATE = "menu-update"


class EventBroadcaster:
    """
    Publishes events through a ConnectionManager.

    Each method returns the number of connections the event reached.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def broadcast_to_role(
        self,
        role: Union[UserRole, str],
        event: str,
        payload: Any,
    ) -> int:
        room = RoomKey.for_role(role)
        return await self._deliver(self.manager.members(room), event, payload, str(room))

    async def broadcast_to_roles(
        self,
        roles: Iterable[Union[UserRole, str]],
        event: str,
        payload: Any,
    ) -> int:
        delivered = 0
        for role in roles:
            delivered += await self.broadcast_to_role(role, event, payload)
        return delivered

    async def broadcast_to_table(
        self,
        table_id: Union[int, str],
        event: str,
        payload: Any,
    ) -> int:
        room = RoomKey.for_table(table_id)
        return await self._deliver(self.manager.members(room), event, payload, str(room))

    async def broadcast_global(self, event: str, payload: Any) -> int:
        return await self._deliver(self.manager.all_connections(), event, payload, "*")

    async def _deliver(
        self,
        connections: list[Connection],
        event: str,
        payload: Any,
        target: str,
    ) -> int:
        if not connections:
            logger.debug(f"No subscribers for {event} in {target}")
            return 0

        results = await asyncio.gather(
            *(connection.send(event, payload) for connection in connections),
            return_exceptions=True,
        )

        delivered = 0
        for connection, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Dropping socket {connection.id} after failed {event} send: {result!r}"
                )
                self.manager.disconnect(connection)
            else:
                delivered += 1

        logger.debug(f"Emitted {event} to {target} ({delivered}/{len(connections)})")
        return delivered
