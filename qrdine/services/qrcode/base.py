"""
QR Code Service Abstract Base Class

Defines the interface for turning a table URL into an opaque QR payload
that is stored on the table and rendered by the admin UI.

Design Pattern: Strategy Pattern
    - Mock implementation for development (no image rendering)
    - Real implementation renders PNG data URLs
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote


@dataclass
class QRCodeResult:
    """
    Result from QR payload generation.

    Attributes:
        success: Whether generation succeeded
        url: URL encoded in the code
        payload: Opaque payload (data URL) to store on the table
        error_message: Error description if generation failed
    """
    success: bool
    url: str
    payload: Optional[str] = None
    error_message: Optional[str] = None


def table_menu_url(base_url: str, table_number: str) -> str:
    """URL a guest lands on after scanning a table's code."""
    return f"{base_url.rstrip('/')}/menu?table={quote(str(table_number), safe='')}"


class BaseQRCodeService(ABC):
    """Abstract base class for QR payload generators."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def generate(self, url: str) -> QRCodeResult:
        """
        Generate a QR payload encoding `url`.

        Generation failures are reported in the result rather than raised;
        callers decide whether a missing code is fatal.
        """
        pass

    async def health_check(self) -> bool:
        result = await self.generate("health-check")
        return result.success
