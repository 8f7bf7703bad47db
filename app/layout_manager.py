"""Slot visibility, view mode and grid geometry."""
import logging
from typing import Callable, Dict, List, Optional, Tuple

from models import SLOT_COUNT, VIEW_CUSTOM, VIEW_MODES, VIEW_QUAD, VIEW_SINGLE, ViewerSession

logger = logging.getLogger(__name__)


class LayoutManager:
    def __init__(self, session: ViewerSession,
                 on_all_hidden: Optional[Callable[[], None]] = None):
        self._session = session
        self._on_all_hidden = on_all_hidden
        self._all_hidden = self.visible_count() == 0

    # ── Queries ───────────────────────────────────────────────────────────────

    def visible_indices(self) -> List[int]:
        return [s.index for s in self._session.slots if s.visible]

    def visible_count(self) -> int:
        return len(self.visible_indices())

    @property
    def all_hidden(self) -> bool:
        return self._all_hidden

    def slots_to_draw(self) -> List[int]:
        mode = self._session.view_mode
        if mode == VIEW_SINGLE:
            active = self._session.active_slot
            return [active] if self._session.slots[active].visible else []
        if mode == VIEW_QUAD:
            return list(range(SLOT_COUNT))
        return self.visible_indices()

    def grid_shape(self) -> Tuple[int, int]:
        """Return *(rows, cols)* for the current mode and visible count."""
        mode = self._session.view_mode
        count = self.visible_count()
        if mode == VIEW_SINGLE:
            return 1, 1
        if mode == VIEW_QUAD or count == 4:
            return 2, 2
        if count == 3:
            return 2, 2   # one cell stays empty
        if count == 2:
            return 1, 2
        if count == 1:
            return 1, 1
        return 2, 2

    def cell_positions(self) -> Dict[int, Tuple[int, int]]:
        """Map each drawn slot to its *(row, col)* cell, row-major."""
        _, cols = self.grid_shape()
        return {slot: divmod(i, cols) for i, slot in enumerate(self.slots_to_draw())}

    # ── Mutations ─────────────────────────────────────────────────────────────

    def remove_slot(self, index: int) -> None:
        slot = self._session.slot(index)
        if not slot.visible:
            return
        slot.visible = False
        visible = self.visible_indices()
        if index == self._session.active_slot and visible:
            self._session.active_slot = visible[0]
        logger.info("Slot %d removed from view, %d visible", index, len(visible))
        self._recompute_mode()
        self._update_all_hidden()

    def show_slot(self, index: int) -> None:
        slot = self._session.slot(index)
        if slot.visible:
            return
        slot.visible = True
        if not self._session.slots[self._session.active_slot].visible:
            self._session.active_slot = index
        self._recompute_mode()
        self._update_all_hidden()

    def set_view_mode(self, mode: str) -> None:
        if mode not in VIEW_MODES:
            raise ValueError(f"unknown view mode: {mode!r}")
        if mode == VIEW_QUAD:
            for slot in self._session.slots:
                slot.visible = True
            self._update_all_hidden()
        self._session.view_mode = mode
        logger.debug("View mode set to %s", mode)

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _recompute_mode(self) -> None:
        count = self.visible_count()
        if count == SLOT_COUNT:
            self._session.view_mode = VIEW_QUAD
        elif count > 0:
            self._session.view_mode = VIEW_CUSTOM

    def _update_all_hidden(self) -> None:
        hidden = self.visible_count() == 0
        if hidden and not self._all_hidden:
            logger.warning("All slots are hidden")
            if self._on_all_hidden is not None:
                self._on_all_hidden()
        self._all_hidden = hidden
