"""
QR Code Service Implementation (qrcode + Pillow)

Renders table URLs into PNG data URLs. Rendering is CPU-bound, so it runs
in a worker thread.
"""

import asyncio
import base64
import io
import logging

import qrcode

from qrdine.services.qrcode.base import BaseQRCodeService, QRCodeResult

logger = logging.getLogger(__name__)


class PngQRCodeService(BaseQRCodeService):
    """Renders QR codes as base64 PNG data URLs."""

    def __init__(self, box_size: int = 10, border: int = 4):
        self.box_size = box_size
        self.border = border
        logger.info(f"PngQRCodeService initialized (box_size={box_size}, border={border})")

    @property
    def provider_name(self) -> str:
        return "qrcode-png"

    def _render(self, url: str) -> str:
        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(url)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        image.save(buffer)
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    async def generate(self, url: str) -> QRCodeResult:
        try:
            payload = await asyncio.to_thread(self._render, url)
        except (ValueError, OSError) as e:
            logger.error(f"QR code generation failed for {url}: {e}")
            return QRCodeResult(success=False, url=url, error_message=str(e))
        return QRCodeResult(success=True, url=url, payload=payload)
