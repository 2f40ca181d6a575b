"""
                        Services Module

Business logic for the ordering platform. Collaborators with an external
side (QR rendering) keep a Mock (development) and Real (production)
implementation behind a cached factory.

Services:
    - auth: Identity & role gate, JWT credentials
    - tables: Table registry, reservations, maintenance
    - orders: Order lifecycle engine and table payment
    - billing: Bill calculator
    - menu: Menu catalog
    - users: Staff account directory
    - realtime: Room-based WebSocket broadcaster
    - qrcode: Table QR payload generation
"""

from qrdine.services.billing import calculate_bill
from qrdine.services.menu import MenuCatalog
from qrdine.services.orders import OrderLifecycleEngine
from qrdine.services.tables import TableRegistry
from qrdine.services.users import UserDirectory

__all__ = [
    "calculate_bill",
    "MenuCatalog",
    "OrderLifecycleEngine",
    "TableRegistry",
    "UserDirectory",
]
