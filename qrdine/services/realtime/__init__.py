"""
Real-Time Layer

The connection manager and broadcaster are constructed explicitly by the
application and injected where needed:

    manager = ConnectionManager()
    broadcaster = EventBroadcaster(manager)
    await broadcaster.broadcast_to_role("kitchen", Events.ORDER_NEW, payload)
"""

from qrdine.services.realtime.broadcaster import EventBroadcaster, Events
from qrdine.services.realtime.manager import Connection, ConnectionManager
from qrdine.services.realtime.rooms import RoomKey, RoomKind

__all__ = [
    "EventBroadcaster",
    "Events",
    "Connection",
    "ConnectionManager",
    "RoomKey",
    "RoomKind",
]
