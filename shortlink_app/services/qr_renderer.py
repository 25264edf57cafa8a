"""
QR code rendering.

The shortener renders one PNG per record at creation time and stores it on
the record; nothing re-renders it later.
"""

import io
from abc import ABC, abstractmethod

import segno

from shortlink_app.exceptions import RenderFailure


class QRRenderer(ABC):

    @abstractmethod
    def render(self, text: str) -> bytes:
        """Render ``text`` as a PNG. Raises RenderFailure."""
        pass


class SegnoQRRenderer(QRRenderer):
    """
    PNG QR codes via segno (pure Python, no imaging library).

    High error correction, scale 4, 1-module border.
    """

    def __init__(self, scale: int = 4, border: int = 1, error: str = "h"):
        self.scale = scale
        self.border = border
        self.error = error

    def render(self, text: str) -> bytes:
        try:
            qr = segno.make(text, error=self.error, micro=False)
            buffer = io.BytesIO()
            qr.save(buffer, kind="png", scale=self.scale, border=self.border)
            return buffer.getvalue()
        except Exception as e:
            raise RenderFailure(f"Failed to render QR code: {e}") from e
