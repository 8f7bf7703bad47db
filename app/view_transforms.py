"""Per-slot pan / zoom / invert state."""
import logging

from models import ViewerSession, ViewTransform

logger = logging.getLogger(__name__)

ZOOM_STEP = 0.1
ZOOM_MIN = 0.5
ZOOM_MAX = 3.0
ZOOM_DEFAULT = 1.0

ZOOM_INCREASE = "increase"
ZOOM_DECREASE = "decrease"
ZOOM_RESET = "reset"


class ViewTransformStore:
    def __init__(self, session: ViewerSession):
        self._session = session

    def get(self, slot: int) -> ViewTransform:
        return self._session.slot(slot).transform

    def set_zoom(self, slot: int, action: str) -> float:
        t = self.get(slot)
        if action == ZOOM_INCREASE:
            t.zoom = round(min(t.zoom + ZOOM_STEP, ZOOM_MAX), 2)
        elif action == ZOOM_DECREASE:
            t.zoom = round(max(t.zoom - ZOOM_STEP, ZOOM_MIN), 2)
        elif action == ZOOM_RESET:
            t.zoom = ZOOM_DEFAULT
        else:
            raise ValueError(f"unknown zoom action: {action!r}")
        logger.debug("Slot %d zoom %s -> %.2f", slot, action, t.zoom)
        return t.zoom

    def set_pan(self, slot: int, dx: float, dy: float) -> None:
        t = self.get(slot)
        t.pan_x += dx
        t.pan_y += dy

    def toggle_invert(self, slot: int) -> bool:
        t = self.get(slot)
        t.inverted = not t.inverted
        logger.debug("Slot %d inverted=%s", slot, t.inverted)
        return t.inverted

    def reset(self, slot: int) -> None:
        self._session.slot(slot).transform = ViewTransform()
