"""Hit-testing for annotations drawn on a slot surface.

All coordinates are surface pixels, the same space the annotations are
stored in.
"""
import math
from typing import Iterable, Optional, Tuple

from models import KIND_LINE, KIND_TEXT, Annotation, Point
from text_metrics import TextMetrics

LINE_HIT_TOLERANCE = 10   # px, strict: distance must be below this
TEXT_PAD_X = 2
TEXT_PAD_BELOW = 4


def point_segment_distance(px: float, py: float,
                           x1: float, y1: float, x2: float, y2: float) -> float:
    """Minimum distance from point *(px, py)* to segment *(x1,y1)-(x2,y2)*."""
    dx, dy = x2 - x1, y2 - y1
    if dx == 0 and dy == 0:
        return math.hypot(px - x1, py - y1)
    t = max(0.0, min(1.0, ((px - x1) * dx + (py - y1) * dy) / (dx * dx + dy * dy)))
    return math.hypot(px - (x1 + t * dx), py - (y1 + t * dy))


def text_box(text: str, anchor: Point, metrics: TextMetrics) -> Tuple[float, float, float, float]:
    """Return *(x, y, w, h)* of the area a text annotation occupies.

    *anchor* is the baseline-left point the text is drawn at, so the box
    extends one line height above it and a few pixels below for descenders.
    """
    h = metrics.line_height()
    return (
        anchor.x - TEXT_PAD_X,
        anchor.y - h,
        metrics.width(text) + 2 * TEXT_PAD_X,
        h + TEXT_PAD_BELOW,
    )


def hit_line(x: float, y: float, start: Point, end: Point) -> bool:
    return point_segment_distance(x, y, start.x, start.y, end.x, end.y) < LINE_HIT_TOLERANCE


def hit_text(x: float, y: float, text: str, anchor: Point, metrics: TextMetrics) -> bool:
    bx, by, bw, bh = text_box(text, anchor, metrics)
    return bx <= x <= bx + bw and by <= y <= by + bh


def hit_annotation(ann: Annotation, x: float, y: float, metrics: TextMetrics) -> bool:
    if ann.kind == KIND_LINE and ann.start is not None and ann.end is not None:
        return hit_line(x, y, ann.start, ann.end)
    if ann.kind == KIND_TEXT and ann.text and ann.position is not None:
        return hit_text(x, y, ann.text, ann.position, metrics)
    return False


def find_annotation_at(annotations: Iterable[Annotation], x: float, y: float,
                       metrics: TextMetrics) -> Optional[Annotation]:
    """Return the first annotation (in iteration order) under *(x, y)*, or *None*."""
    for ann in annotations:
        if hit_annotation(ann, x, y, metrics):
            return ann
    return None
