"""Render engine: draw a slot's image and its annotation overlay.

Each slot has its own ``QImage`` surface.  The engine paints everything in
surface pixels: the image is fitted to the surface, scaled by the slot zoom,
centred and shifted by the pan offset.  Annotations live in the same surface
coordinates and are drawn on top, unaffected by pan and zoom.
"""
import logging
from typing import Callable, Iterable, Optional, Tuple

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QImage, QPainter, QPen

from geometry import text_box
from models import KIND_LINE, KIND_TEXT, Annotation, Point, Slot
from text_metrics import TextMetrics, annotation_font

logger = logging.getLogger(__name__)

ACCENT    = QColor("lime")     # selected annotations
HIGHLIGHT = QColor("yellow")   # unselected annotations
_BACKGROUND = QColor("black")
_ERROR_BG   = QColor("#333333")
_ERROR_FG   = QColor("red")

_LINE_WIDTH = 2
_LINE_WIDTH_SELECTED = 3
_HANDLE_RADIUS = 5

ERROR_LINES = ("Error loading image", "Please try uploading again")

ImageLoader = Callable[[Optional[str]], Optional[QImage]]


def compute_draw_rect(img_w: float, img_h: float, surf_w: float, surf_h: float,
                      zoom: float = 1.0, pan_x: float = 0.0,
                      pan_y: float = 0.0) -> Tuple[float, float, float, float]:
    """Return *(x, y, w, h)* of the image on the surface.

    The image keeps its aspect ratio: a relatively wider image is fitted to
    the surface width, otherwise to the height.  Both dimensions are scaled by
    *zoom*, then the result is centred and offset by the pan vector.
    """
    img_ratio = img_w / img_h
    surf_ratio = surf_w / surf_h
    if img_ratio > surf_ratio:
        w = surf_w * zoom
        h = w / img_ratio
    else:
        h = surf_h * zoom
        w = h * img_ratio
    x = (surf_w - w) / 2 + pan_x
    y = (surf_h - h) / 2 + pan_y
    return x, y, w, h


class RenderEngine:
    def __init__(self, metrics: TextMetrics, image_loader: ImageLoader,
                 on_load_error: Optional[Callable[[int], None]] = None):
        self._metrics = metrics
        self._load_image = image_loader
        self._on_load_error = on_load_error

    def render(self, surface: QImage, slot: Slot, annotations: Iterable[Annotation],
               selected_id: Optional[str] = None) -> bool:
        """Paint *slot* onto *surface*; return False if no image was drawn."""
        surface.fill(_BACKGROUND)
        if slot.load_error:
            self._draw_error(surface)
            return False

        img = self._load_image(slot.image)
        if img is None:
            logger.warning("Slot %d: image %r failed to load", slot.index, slot.image)
            if self._on_load_error is not None:
                self._on_load_error(slot.index)
            return False

        t = slot.transform
        x, y, w, h = compute_draw_rect(img.width(), img.height(),
                                       surface.width(), surface.height(),
                                       t.zoom, t.pan_x, t.pan_y)
        painter = QPainter(surface)
        try:
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
            painter.drawImage(QRectF(x, y, w, h), img)
            if t.inverted:
                painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Difference)
                painter.fillRect(surface.rect(), QColor("white"))
                painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceOver)
            painter.setRenderHint(QPainter.RenderHint.Antialiasing)
            for ann in annotations:
                self._draw_annotation(painter, ann, ann.id == selected_id)
        finally:
            painter.end()
        return True

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _draw_error(self, surface: QImage) -> None:
        surface.fill(_ERROR_BG)
        painter = QPainter(surface)
        try:
            font = annotation_font()
            font.setPixelSize(16)
            painter.setFont(font)
            painter.setPen(_ERROR_FG)
            w, h = surface.width(), surface.height()
            for text, dy in zip(ERROR_LINES, (-20, 20)):
                painter.drawText(QRectF(0, h / 2 + dy - 12, w, 24),
                                 Qt.AlignmentFlag.AlignCenter, text)
        finally:
            painter.end()

    def _draw_annotation(self, painter: QPainter, ann: Annotation, selected: bool) -> None:
        color = ACCENT if selected else HIGHLIGHT
        if ann.kind == KIND_LINE and ann.start is not None and ann.end is not None:
            painter.setPen(QPen(color, _LINE_WIDTH_SELECTED if selected else _LINE_WIDTH))
            painter.drawLine(QPointF(ann.start.x, ann.start.y), QPointF(ann.end.x, ann.end.y))
            if selected:
                painter.setPen(Qt.PenStyle.NoPen)
                painter.setBrush(color)
                for p in (ann.start, ann.end):
                    painter.drawEllipse(QPointF(p.x, p.y), _HANDLE_RADIUS, _HANDLE_RADIUS)
                painter.setBrush(Qt.BrushStyle.NoBrush)

        elif ann.kind == KIND_TEXT and ann.text and ann.position is not None:
            painter.setFont(annotation_font(bold=selected))
            painter.setPen(color)
            painter.drawText(QPointF(ann.position.x, ann.position.y), ann.text)
            if selected:
                bx, by, bw, bh = text_box(ann.text, ann.position, self._metrics)
                painter.setPen(QPen(color, 1))
                painter.drawRect(QRectF(bx, by, bw, bh))


def draw_line_preview(painter: QPainter, start: Point, end: Point) -> None:
    """Dashed ghost of a line being drawn; the widget paints it over the surface."""
    painter.save()
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.setPen(QPen(HIGHLIGHT, _LINE_WIDTH, Qt.PenStyle.DashLine))
    painter.drawLine(QPointF(start.x, start.y), QPointF(end.x, end.y))
    painter.setPen(Qt.PenStyle.NoPen)
    painter.setBrush(HIGHLIGHT)
    painter.drawEllipse(QPointF(start.x, start.y), 3, 3)
    painter.restore()
