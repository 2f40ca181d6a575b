"""
Mock QR Code Service Implementation

Used in development mode (ENV_MODE=development). Instead of rendering an
image it stores the encoded URL as a base64 text data URL, which keeps the
payload deterministic and easy to inspect in tests.
"""

import base64
import logging

from qrdine.services.qrcode.base import BaseQRCodeService, QRCodeResult

logger = logging.getLogger(__name__)

MOCK_PREFIX = "data:text/plain;base64,"


class MockQRCodeService(BaseQRCodeService):
    """Mock QR generator for development."""

    def __init__(self):
        logger.info("MockQRCodeService initialized")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def generate(self, url: str) -> QRCodeResult:
        encoded = base64.b64encode(url.encode("utf-8")).decode("ascii")
        logger.debug(f"Mock QR payload generated for {url}")
        return QRCodeResult(success=True, url=url, payload=f"{MOCK_PREFIX}{encoded}")

    @staticmethod
    def decode(payload: str) -> str:
        """Recover the URL from a mock payload."""
        return base64.b64decode(payload[len(MOCK_PREFIX):]).decode("utf-8")
