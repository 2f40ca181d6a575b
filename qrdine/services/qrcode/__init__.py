"""
QR Code Service Factory

Usage:
    from qrdine.services.qrcode import get_qr_service

    # Returns MockQRCodeService or PngQRCodeService based on ENV_MODE
    qr_service = get_qr_service()
    result = await qr_service.generate(table_menu_url(base, "T5"))

Environment Switching:
    - ENV_MODE=development → MockQRCodeService (text payloads)
    - ENV_MODE=staging/production → PngQRCodeService (PNG data URLs)
"""

import logging
from functools import lru_cache

from qrdine.core.config import get_settings
from qrdine.services.qrcode.base import BaseQRCodeService, QRCodeResult, table_menu_url
from qrdine.services.qrcode.mock import MockQRCodeService
from qrdine.services.qrcode.real import PngQRCodeService

logger = logging.getLogger(__name__)


@lru_cache()
def get_qr_service() -> BaseQRCodeService:
    """
    Get the configured QR service instance (cached).

    Returns:
        BaseQRCodeService: Mock in development, PNG renderer otherwise
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("QR Service: Using MockQRCodeService (development mode)")
        return MockQRCodeService()

    logger.info(f"QR Service: Using PngQRCodeService ({settings.env_mode.value} mode)")
    return PngQRCodeService()


def reset_qr_service() -> None:
    """Clear the cached QR service instance."""
    get_qr_service.cache_clear()


__all__ = [
    "get_qr_service",
    "reset_qr_service",
    "BaseQRCodeService",
    "QRCodeResult",
    "MockQRCodeService",
    "PngQRCodeService",
    "table_menu_url",
]
