"""
                QR Dine Table Ordering System

Backend for QR-code table ordering: guests scan a table code and order
from the menu, staff move orders through the kitchen and settle bills,
and every connected dashboard is kept in sync over WebSockets.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
