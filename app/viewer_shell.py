"""Viewer shell: owns the session and wires the engine to its collaborators.

Widgets talk only to the shell.  The shell forwards pointer input to the
interaction controller, renders slot surfaces on demand, and turns failures
(bad uploads, undecodable images, analysis errors, all slots hidden) into
``notice`` signals instead of exceptions.
"""
import logging
import os
from typing import Dict, List, Optional

from PySide6.QtCore import QObject, QThreadPool, Signal
from PySide6.QtGui import QImage

import data_store
import exporter
from ai_client import AnalysisCache, AnalysisClient, AnalysisWorker
from annotation_store import AnnotationStore
from image_intake import ImageCache, encode_png, intake_file, placeholder_image
from interaction import InteractionController
from layout_manager import LayoutManager
from models import (
    VIEW_SINGLE, AnalysisResult, Annotation, PendingText, ViewerSession, ViewerSettings,
)
from render_engine import RenderEngine
from text_metrics import QtTextMetrics, TextMetrics
from view_transforms import ViewTransformStore

logger = logging.getLogger(__name__)

INFO = "info"
WARNING = "warning"
ERROR = "error"


class ViewerShell(QObject):
    notice              = Signal(str, str, str)   # title, message, level
    slot_changed        = Signal(int)             # slot needs a redraw
    layout_changed      = Signal()                # grid / visibility / view mode
    active_slot_changed = Signal(int)
    annotations_changed = Signal()
    analysis_started    = Signal(int)
    analysis_finished   = Signal(int, object)     # slot, AnalysisResult
    analysis_failed     = Signal(int, str)

    def __init__(self, settings: Optional[ViewerSettings] = None,
                 backend: Optional[data_store.KeyValueStore] = None,
                 metrics: Optional[TextMetrics] = None,
                 image_loader=None,
                 client: Optional[AnalysisClient] = None,
                 thread_pool: Optional[QThreadPool] = None,
                 parent=None):
        super().__init__(parent)
        self.settings = settings or ViewerSettings()
        self.session = ViewerSession()
        for slot, path in zip(self.session.slots, self.settings.default_images):
            slot.image = data_store.resolve_path(path) if path else None

        self.metrics = metrics or QtTextMetrics()
        if image_loader is None:
            image_loader = ImageCache()
            for slot in self.session.slots:
                if slot.image and not os.path.isfile(slot.image):
                    logger.info("Slot %d: %s not found, showing a placeholder",
                                slot.index, slot.image)
                    image_loader.put(slot.image, placeholder_image(slot.index))
        self._image_cache = image_loader
        self.transforms = ViewTransformStore(self.session)
        self.annotations = AnnotationStore(self.session, backend)
        self.layout = LayoutManager(self.session, on_all_hidden=self._on_all_hidden)
        self.engine = RenderEngine(self.metrics, self._image_cache,
                                   on_load_error=self._on_image_error)
        self.controller = InteractionController(self.session, self.transforms,
                                                self.annotations, self.metrics,
                                                on_change=self._on_controller_change)
        self.client = client or AnalysisClient(self.settings.ai_endpoint,
                                               self.settings.ai_timeout)
        self._analysis_cache = AnalysisCache()
        self._pool = thread_pool or QThreadPool.globalInstance()
        self._workers: Dict[int, AnalysisWorker] = {}
        self._surfaces: Dict[int, QImage] = {}
        self._drawn: Dict[int, bool] = {}
        self.last_results: Dict[int, AnalysisResult] = {}

    # ── Rendering ─────────────────────────────────────────────────────────────

    def render_slot(self, index: int, width: int, height: int) -> QImage:
        """Render *index* onto its surface (resized to *width* × *height*)."""
        slot = self.session.slot(index)
        width, height = max(1, width), max(1, height)
        surface = self._surfaces.get(index)
        if surface is None or surface.width() != width or surface.height() != height:
            surface = QImage(width, height, QImage.Format.Format_ARGB32_Premultiplied)
            self._surfaces[index] = surface
        self._drawn[index] = self.engine.render(
            surface, slot, self.annotations.list_for(index), self.session.selected_id,
        )
        return surface

    def surface(self, index: int) -> Optional[QImage]:
        return self._surfaces.get(index)

    def slots_to_draw(self) -> List[int]:
        return self.layout.slots_to_draw()

    def _refresh(self, indices=None) -> None:
        for i in (self.slots_to_draw() if indices is None else indices):
            self.slot_changed.emit(i)

    def _on_image_error(self, index: int) -> None:
        slot = self.session.slot(index)
        if slot.load_error:
            return
        slot.load_error = True
        self.notice.emit(
            "Image Loading Error",
            f"Failed to load image {index + 1}. The file may be corrupted "
            "or in an unsupported format.",
            ERROR,
        )
        self.slot_changed.emit(index)

    # ── File intake ───────────────────────────────────────────────────────────

    def upload(self, index: int, path: str) -> bool:
        slot = self.session.slot(index)
        try:
            resource = intake_file(path)
        except FileNotFoundError:
            self.notice.emit("Upload Failed", f"File not found: {path}", ERROR)
            return False
        if isinstance(self._image_cache, ImageCache):
            previous = slot.image
            if previous and all(s.image != previous for s in self.session.slots if s is not slot):
                self._image_cache.forget(previous)
            self._image_cache.forget(resource)
        slot.image = resource
        slot.load_error = False
        self.transforms.reset(index)
        self.layout.show_slot(index)
        logger.info("Slot %d: loaded %s", index, resource)
        self.notice.emit("Image Loaded",
                         f"Image has been loaded successfully for slice {index + 1}.", INFO)
        self.layout_changed.emit()
        self.slot_changed.emit(index)
        return True

    # ── Layout ────────────────────────────────────────────────────────────────

    def remove_slot(self, index: int) -> None:
        self.layout.remove_slot(index)
        self.layout_changed.emit()
        self.active_slot_changed.emit(self.session.active_slot)

    def set_view_mode(self, mode: str) -> None:
        self.layout.set_view_mode(mode)
        self.layout_changed.emit()
        self._refresh()

    def set_active_slot(self, index: int) -> None:
        self.session.slot(index)
        if index != self.session.active_slot:
            self.session.active_slot = index
            self.active_slot_changed.emit(index)
            if self.session.view_mode == VIEW_SINGLE:
                self.layout_changed.emit()

    def _on_all_hidden(self) -> None:
        self.notice.emit(
            "No Images Visible",
            "All images have been removed from view. Upload new images or reload the viewer.",
            WARNING,
        )

    # ── View transforms (active slot unless given) ────────────────────────────

    def zoom(self, action: str, index: Optional[int] = None) -> float:
        index = self.session.active_slot if index is None else index
        value = self.transforms.set_zoom(index, action)
        self.slot_changed.emit(index)
        return value

    def toggle_invert(self, index: Optional[int] = None) -> bool:
        index = self.session.active_slot if index is None else index
        value = self.transforms.toggle_invert(index)
        self.slot_changed.emit(index)
        return value

    def reset_view(self, index: Optional[int] = None) -> None:
        index = self.session.active_slot if index is None else index
        self.transforms.reset(index)
        self.slot_changed.emit(index)

    # ── Pointer input ─────────────────────────────────────────────────────────

    def set_annotation_mode(self, mode: str) -> None:
        self.controller.set_mode(mode)
        self._refresh()

    def pointer_down(self, index: int, x: float, y: float) -> Optional[PendingText]:
        previous = self.session.active_slot
        pending = self.controller.pointer_down(index, x, y)
        if self.session.active_slot != previous:
            self.active_slot_changed.emit(self.session.active_slot)
        return pending

    def pointer_move(self, index: int, x: float, y: float) -> bool:
        needs_redraw = self.controller.pointer_move(index, x, y)
        if needs_redraw and self.controller.gesture_slot is not None:
            self.slot_changed.emit(self.controller.gesture_slot)
        return needs_redraw

    def pointer_up(self, index: int, x: float, y: float) -> None:
        self.controller.pointer_up(index, x, y)

    def commit_text(self, handle: PendingText, content: Optional[str]) -> bool:
        return self.controller.commit_text(handle, content)

    def cancel_text(self, handle: PendingText) -> None:
        self.controller.cancel(handle)

    def _on_controller_change(self, index: int) -> None:
        self.annotations_changed.emit()
        self._refresh()

    # ── Annotations ───────────────────────────────────────────────────────────

    def select_annotation(self, ann_id: Optional[str]) -> None:
        self.annotations.select(ann_id)
        self._refresh()
        self.annotations_changed.emit()

    def delete_annotation(self, ann_id: str) -> bool:
        if not self.annotations.remove(ann_id):
            return False
        self.notice.emit("Annotation Deleted", "The selected annotation has been removed.", INFO)
        self.annotations_changed.emit()
        self._refresh()
        return True

    def delete_selected(self) -> bool:
        ann_id = self.session.selected_id
        if ann_id is None:
            return False
        return self.delete_annotation(ann_id)

    def clear_annotations(self, index: Optional[int] = None) -> int:
        """Remove every annotation of *index* (active slot by default)."""
        index = self.session.active_slot if index is None else index
        removed = self.annotations.clear_slot(index)
        if removed:
            self.notice.emit("Annotations Cleared",
                             f"Removed {removed} annotation(s) from slice {index + 1}.", INFO)
            self.annotations_changed.emit()
            self._refresh()
        return removed

    def annotations_for(self, index: int) -> List[Annotation]:
        return self.annotations.newest_first(index)

    # ── AI analysis ───────────────────────────────────────────────────────────

    def capture_payload(self, index: int) -> Optional[bytes]:
        """PNG of the slot as last drawn, or *None* if nothing is shown."""
        slot = self.session.slot(index)
        surface = self._surfaces.get(index)
        if slot.load_error or surface is None or not self._drawn.get(index):
            return None
        try:
            return encode_png(surface, self.settings.ai_max_upload_side)
        except ValueError:
            logger.exception("Could not capture slot %d", index)
            return None

    def default_notes(self) -> str:
        return f"Study: {self.settings.study}"

    def is_busy(self, index: int) -> bool:
        return self.session.slot(index).analysis_busy

    def request_analysis(self, index: Optional[int] = None,
                         notes: Optional[str] = None) -> bool:
        """Start an analysis of *index*; return False when it was refused."""
        index = self.session.active_slot if index is None else index
        slot = self.session.slot(index)
        if slot.analysis_busy:
            self.notice.emit("Analysis Running",
                             f"Slice {index + 1} is already being analyzed.", WARNING)
            return False

        payload = self.capture_payload(index)
        if payload is None:
            self.notice.emit("Image Not Available",
                             "Unable to analyze this image. Please try another image.", ERROR)
            return False

        cached = self._analysis_cache.get(payload)
        if cached is not None:
            logger.info("Slot %d: using cached analysis result", index)
            self._publish_result(index, cached)
            return True

        slot.analysis_busy = True
        self.analysis_started.emit(index)
        worker = AnalysisWorker(self.client, index, payload, self.settings.patient_name,
                                self.default_notes() if notes is None else notes)
        worker.setAutoDelete(False)
        worker.signals.finished.connect(self._on_analysis_finished)
        worker.signals.failed.connect(self._on_analysis_failed)
        self._workers[index] = worker
        self._pool.start(worker)
        return True

    def _on_analysis_finished(self, index: int, result: AnalysisResult) -> None:
        self.session.slot(index).analysis_busy = False
        worker = self._workers.pop(index, None)
        if worker is not None:
            self._analysis_cache.put(worker.image, result)
        self._publish_result(index, result)

    def _publish_result(self, index: int, result: AnalysisResult) -> None:
        self.last_results[index] = result
        self.analysis_finished.emit(index, result)
        self.notice.emit("Analysis Complete", "AI analysis has been completed successfully.", INFO)

    def _on_analysis_failed(self, index: int, message: str) -> None:
        self.session.slot(index).analysis_busy = False
        self._workers.pop(index, None)
        self.analysis_failed.emit(index, message)
        self.notice.emit("Analysis Failed",
                         f"There was an error analyzing this image. Please try again.\n{message}",
                         ERROR)

    # ── Export ────────────────────────────────────────────────────────────────

    def export_annotations(self, path: str) -> int:
        anns = self.annotations.all()
        if os.path.splitext(path)[1].lower() == ".csv":
            return exporter.export_annotations_csv(anns, path)
        return exporter.export_annotations_xlsx(anns, path)

    def export_report(self, path: str) -> int:
        snapshots = []
        for index in self.slots_to_draw():
            payload = self.capture_payload(index)
            if payload is not None:
                snapshots.append((index, payload))
        if not snapshots:
            self.notice.emit("Export", "There is no rendered slice to export.", WARNING)
            return 0
        title = f"{self.settings.patient_name} ({self.settings.patient_id})"
        return exporter.export_report_pdf(snapshots, self.annotations.all(), path, title=title)