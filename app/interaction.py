"""Pointer input → view manipulation or annotation creation/selection.

The controller is a small state machine.  The global annotation mode decides
what a press starts; the gesture sub-state remembers what is in progress
until the matching release.  Text entry is split in two phases so the UI can
ask for the content however it likes (dialog, inline editor, test code)::

    handle = controller.pointer_down(slot, x, y)   # text mode → PendingText
    controller.commit_text(handle, "fracture")      # or controller.cancel(handle)
"""
import logging
from typing import Callable, Optional

from annotation_store import AnnotationStore
from geometry import find_annotation_at
from models import (
    ANNOTATION_MODES, KIND_LINE, KIND_TEXT, MODE_LINE, MODE_TEXT,
    PendingText, Point, ViewerSession,
)
from text_metrics import TextMetrics
from view_transforms import ViewTransformStore

logger = logging.getLogger(__name__)

IDLE         = "idle"
PANNING      = "panning"
LINE_DRAWING = "line_drawing"


class InteractionController:
    def __init__(self, session: ViewerSession, transforms: ViewTransformStore,
                 annotations: AnnotationStore, metrics: TextMetrics,
                 on_change: Optional[Callable[[int], None]] = None):
        self._session = session
        self._transforms = transforms
        self._annotations = annotations
        self._metrics = metrics
        self._on_change = on_change
        self.state: str = IDLE
        self._gesture_slot: Optional[int] = None
        self._anchor: Optional[Point] = None       # last cursor pos while panning
        self._line_start: Optional[Point] = None
        self.preview_end: Optional[Point] = None   # rubber-band end while drawing

    # ── Mode ──────────────────────────────────────────────────────────────────

    @property
    def mode(self) -> str:
        return self._session.annotation_mode

    def set_mode(self, mode: str) -> None:
        if mode not in ANNOTATION_MODES:
            raise ValueError(f"unknown annotation mode: {mode!r}")
        if mode != self._session.annotation_mode:
            logger.debug("Annotation mode: %r → %r", self._session.annotation_mode, mode)
        self._session.annotation_mode = mode
        self._reset_gesture()

    @property
    def line_start(self) -> Optional[Point]:
        return self._line_start

    @property
    def gesture_slot(self) -> Optional[int]:
        return self._gesture_slot

    # ── Pointer events ────────────────────────────────────────────────────────

    def pointer_down(self, slot: int, x: float, y: float) -> Optional[PendingText]:
        """Handle a press on *slot*; return a PendingText in text mode."""
        self._session.slot(slot)
        self._session.active_slot = slot

        hit = find_annotation_at(self._annotations.list_for(slot), x, y, self._metrics)
        if hit is not None:
            self._annotations.select(hit.id)
            self._changed(slot)
            return None

        mode = self._session.annotation_mode
        if mode == MODE_LINE:
            self.state = LINE_DRAWING
            self._gesture_slot = slot
            self._line_start = Point(x, y)
            self.preview_end = None
        elif mode == MODE_TEXT:
            return self.begin_text_annotation(slot, Point(x, y))
        else:
            self.state = PANNING
            self._gesture_slot = slot
            self._anchor = Point(x, y)
            self._annotations.select(None)
            self._changed(slot)
        return None

    def pointer_move(self, slot: int, x: float, y: float) -> bool:
        """Return True when the gesture slot needs a redraw."""
        if self.state == PANNING:
            target = self._gesture_slot
            self._transforms.set_pan(target, x - self._anchor.x, y - self._anchor.y)
            self._anchor = Point(x, y)
            self._changed(target)
            return True
        if self.state == LINE_DRAWING:
            self.preview_end = Point(x, y)
            return True
        return False

    def pointer_up(self, slot: int, x: float, y: float) -> None:
        if self.state == LINE_DRAWING:
            target = self._gesture_slot
            start, end = self._line_start, Point(x, y)
            self._reset_gesture()
            if start != end:
                self._annotations.add(target, KIND_LINE, {"start": start, "end": end})
            self._changed(target)
        elif self.state == PANNING:
            self._reset_gesture()

    # ── Two-phase text entry ──────────────────────────────────────────────────

    def begin_text_annotation(self, slot: int, point: Point) -> PendingText:
        self._session.slot(slot)
        self._reset_gesture()
        return PendingText(slot=slot, position=point)

    def commit_text(self, handle: PendingText, content: Optional[str]) -> bool:
        """Create the text annotation; return False when nothing was created."""
        self._finish(handle)
        if not content or not content.strip():
            return False
        self._annotations.add(handle.slot, KIND_TEXT,
                              {"text": content, "position": handle.position})
        self._changed(handle.slot)
        return True

    def cancel(self, handle: PendingText) -> None:
        self._finish(handle)

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _finish(self, handle: PendingText) -> None:
        if handle.done:
            raise ValueError("pending text annotation already finished")
        handle.done = True

    def _reset_gesture(self) -> None:
        self.state = IDLE
        self._gesture_slot = None
        self._anchor = None
        self._line_start = None
        self.preview_end = None

    def _changed(self, slot: int) -> None:
        if self._on_change is not None:
            self._on_change(slot)
