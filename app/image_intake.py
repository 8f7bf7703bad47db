"""File intake, image decoding and surface capture."""
import hashlib
import logging
import os
from typing import Dict, Optional

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QPointF, Qt
from PySide6.QtGui import QColor, QImage, QPainter, QRadialGradient

logger = logging.getLogger(__name__)


def intake_file(path: str) -> str:
    """Turn a user-selected file into an image resource (its absolute path).

    The format is not checked here; an undecodable file shows up later as a
    load failure in the render engine.
    """
    if not path or not os.path.isfile(path):
        raise FileNotFoundError(path)
    return os.path.abspath(path)


class ImageCache:
    """Decoded images keyed by path.  Failed decodes are not cached."""

    def __init__(self):
        self._images: Dict[str, QImage] = {}

    def __call__(self, path: Optional[str]) -> Optional[QImage]:
        return self.load(path)

    def load(self, path: Optional[str]) -> Optional[QImage]:
        if not path:
            return None
        img = self._images.get(path)
        if img is not None:
            return img
        img = QImage(path)
        if img.isNull() or img.width() == 0 or img.height() == 0:
            logger.warning("Could not decode image %s", path)
            return None
        logger.debug("Decoded %s (%dx%d)", path, img.width(), img.height())
        self._images[path] = img
        return img

    def put(self, path: str, img: QImage) -> None:
        self._images[path] = img

    def forget(self, path: Optional[str]) -> None:
        self._images.pop(path, None)

    def __contains__(self, path) -> bool:
        return path in self._images

    def __len__(self) -> int:
        return len(self._images)


def encode_png(surface: QImage, max_side: int = 0) -> bytes:
    """Encode *surface* as PNG, downscaled so its longest side is *max_side*."""
    img = surface
    if max_side and max(img.width(), img.height()) > max_side:
        img = img.scaled(max_side, max_side, Qt.AspectRatioMode.KeepAspectRatio,
                         Qt.TransformationMode.SmoothTransformation)
    data = QByteArray()
    buf = QBuffer(data)
    buf.open(QIODevice.OpenModeFlag.WriteOnly)
    ok = img.save(buf, "PNG")
    buf.close()
    if not ok:
        raise ValueError("Failed to encode surface as PNG")
    return bytes(data.data())


def image_hash(payload: bytes) -> str:
    """SHA-256 hex digest, used as the analysis cache key."""
    return hashlib.sha256(payload).hexdigest()


def placeholder_image(index: int, size: int = 512) -> QImage:
    """Synthetic grey phantom shown when a slot's default image is missing.

    Each slot gets a slightly different phantom so the four tiles are told
    apart at a glance.
    """
    img = QImage(size, size, QImage.Format.Format_RGB32)
    img.fill(QColor("black"))
    c = size / 2
    painter = QPainter(img)
    try:
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setPen(Qt.PenStyle.NoPen)
        body = QRadialGradient(QPointF(c, c), size * 0.45)
        body.setColorAt(0.0, QColor(170, 170, 170))
        body.setColorAt(1.0, QColor(60, 60, 60))
        painter.setBrush(body)
        painter.drawEllipse(QPointF(c, c), size * 0.42, size * 0.46)
        painter.setBrush(QColor(20, 20, 20))
        offset = size * (0.06 + 0.02 * index)
        for dx in (-offset - size * 0.08, offset + size * 0.08):
            painter.drawEllipse(QPointF(c + dx, c), size * 0.1, size * 0.22)
        painter.setBrush(QColor(235, 235, 235))
        painter.drawEllipse(QPointF(c, c - size * 0.3), size * 0.04, size * 0.04)
    finally:
        painter.end()
    return img
