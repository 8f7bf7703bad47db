"""Main entry point for the slice viewer."""
import argparse
import logging
import os
import subprocess
import sys
from typing import Dict

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import (
    QApplication,
    QFileDialog,
    QGridLayout,
    QInputDialog,
    QLabel,
    QMainWindow,
    QMessageBox,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

import data_store
import exporter
from models import MODE_LINE, MODE_NONE, MODE_TEXT, SLOT_COUNT, VIEW_QUAD, VIEW_SINGLE
from viewer_shell import ERROR, WARNING, ViewerShell
from viewer_widgets import AnalysisSidebar, AnnotationListPanel, SlotPanel, ViewerToolbar

logger = logging.getLogger(__name__)

_IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.tif *.tiff *.dcm);;All Files (*)"
_NOTICE_MS = 5000


class MainWindow(QMainWindow):
    def __init__(self, shell: ViewerShell):
        super().__init__()
        self.setWindowTitle("Slice Viewer")
        self.resize(1400, 900)
        self._shell = shell
        self._panels: Dict[int, SlotPanel] = {}
        self._setup_ui()

        shell.notice.connect(self._on_notice)
        shell.slot_changed.connect(self._on_slot_changed)
        shell.layout_changed.connect(self._rebuild_grid)
        shell.active_slot_changed.connect(self._on_active_slot_changed)
        shell.annotations_changed.connect(self._on_annotations_changed)
        self._rebuild_grid()

    def _setup_ui(self):
        file_menu = self.menuBar().addMenu("File")
        file_menu.addAction("Upload Image…").triggered.connect(
            lambda: self._upload(self._shell.session.active_slot))
        file_menu.addSeparator()
        file_menu.addAction("Export Annotations as XLSX").triggered.connect(
            lambda: self._export_annotations("xlsx"))
        file_menu.addAction("Export Annotations as CSV").triggered.connect(
            lambda: self._export_annotations("csv"))
        file_menu.addAction("Export Report as PDF").triggered.connect(self._export_report)
        file_menu.addSeparator()
        file_menu.addAction("Quit").triggered.connect(self.close)

        edit_menu = self.menuBar().addMenu("Edit")
        edit_menu.addAction("Delete Selected Annotation").triggered.connect(
            self._shell.delete_selected)
        edit_menu.addAction("Clear Annotations on Active Slice").triggered.connect(
            self._clear_annotations)

        view_menu = self.menuBar().addMenu("View")
        view_menu.addAction("Quad View").triggered.connect(
            lambda: self._shell.set_view_mode(VIEW_QUAD))
        view_menu.addAction("Single View").triggered.connect(
            lambda: self._shell.set_view_mode(VIEW_SINGLE))
        view_menu.addAction("Reset Pan && Zoom").triggered.connect(self._shell.reset_view)

        for key, slot in [
            (QKeySequence.StandardKey.Delete, self._shell.delete_selected),
            (QKeySequence(Qt.Key.Key_Escape), lambda: self._shell.set_annotation_mode(MODE_NONE)),
            (QKeySequence(Qt.Key.Key_L), lambda: self._shell.set_annotation_mode(MODE_LINE)),
            (QKeySequence(Qt.Key.Key_T), lambda: self._shell.set_annotation_mode(MODE_TEXT)),
        ]:
            action = QAction(self)
            action.setShortcut(key)
            action.triggered.connect(slot)
            self.addAction(action)

        splitter = QSplitter(Qt.Orientation.Horizontal)

        left = QWidget()
        left_layout = QVBoxLayout(left)
        left_layout.setContentsMargins(0, 0, 0, 0)
        left_layout.setSpacing(0)

        header = QLabel(f"  SLICE VIEWER    patient {self._shell.settings.patient_id}")
        header.setStyleSheet("background-color: #111827; color: white; font-weight: bold;"
                             " padding: 4px;")
        left_layout.addWidget(header)

        self._grid_host = QWidget()
        self._grid_host.setStyleSheet("background-color: black;")
        self._grid = QGridLayout(self._grid_host)
        self._grid.setContentsMargins(0, 0, 0, 0)
        self._grid.setSpacing(4)
        left_layout.addWidget(self._grid_host, stretch=1)

        self._empty_label = QLabel("No images visible.\nUpload an image or choose Quad View.")
        self._empty_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._empty_label.setStyleSheet("color: #9ca3af;")

        for i in range(SLOT_COUNT):
            panel = SlotPanel(self._shell, i)
            panel.canvas.pressed.connect(self._on_pressed)
            panel.canvas.moved.connect(self._shell.pointer_move)
            panel.canvas.released.connect(self._shell.pointer_up)
            panel.upload_requested.connect(self._upload)
            panel.remove_requested.connect(self._shell.remove_slot)
            panel.list_requested.connect(self._toggle_annotation_list)
            self._panels[i] = panel

        self._toolbar = ViewerToolbar(self._shell)
        self._toolbar.upload_requested.connect(
            lambda: self._upload(self._shell.session.active_slot))
        self._toolbar.analysis_requested.connect(self._toggle_sidebar)
        left_layout.addWidget(self._toolbar)
        splitter.addWidget(left)

        self._annotation_list = AnnotationListPanel(self._shell)
        self._annotation_list.closed.connect(self._annotation_list.hide)
        self._annotation_list.hide()
        splitter.addWidget(self._annotation_list)

        self._sidebar = AnalysisSidebar(self._shell)
        self._sidebar.closed.connect(self._sidebar.hide)
        self._sidebar.hide()
        splitter.addWidget(self._sidebar)

        splitter.setSizes([1000, 260, 300])
        self.setCentralWidget(splitter)

    # ── Grid ──────────────────────────────────────────────────────────────────

    def _rebuild_grid(self):
        while self._grid.count():
            item = self._grid.takeAt(0)
            if item.widget() is not None:
                item.widget().hide()
        positions = self._shell.layout.cell_positions()
        if not positions:
            self._grid.addWidget(self._empty_label, 0, 0)
            self._empty_label.show()
        else:
            for index, (row, col) in positions.items():
                panel = self._panels[index]
                self._grid.addWidget(panel, row, col)
                panel.show()
                panel.refresh()
        rows, cols = self._shell.layout.grid_shape()
        for r in range(2):
            self._grid.setRowStretch(r, 1 if r < rows else 0)
        for c in range(2):
            self._grid.setColumnStretch(c, 1 if c < cols else 0)
        self._toolbar.sync()
        if (self._annotation_list.isVisible()
                and self._annotation_list.slot not in positions):
            self._annotation_list.hide()

    # ── Shell signal handlers ─────────────────────────────────────────────────

    def _on_notice(self, title: str, message: str, level: str):
        text = f"{title}: {message}".replace("\n", " ")
        self.statusBar().showMessage(text, _NOTICE_MS)
        if level == ERROR:
            logger.error(text)
        elif level == WARNING:
            logger.warning(text)
        else:
            logger.info(text)

    def _on_slot_changed(self, index: int):
        panel = self._panels.get(index)
        if panel is not None and panel.isVisible():
            panel.refresh()

    def _on_active_slot_changed(self, index: int):
        for panel in self._panels.values():
            panel.canvas.update()

    def _on_annotations_changed(self):
        self._toolbar.sync()
        if self._annotation_list.isVisible():
            self._annotation_list.refresh()

    # ── Pointer / text prompt ─────────────────────────────────────────────────

    def _on_pressed(self, index: int, x: float, y: float):
        pending = self._shell.pointer_down(index, x, y)
        if pending is None:
            return
        # Let the press finish before opening a modal dialog.
        QTimer.singleShot(0, lambda: self._ask_text(pending))

    def _ask_text(self, pending):
        text, ok = QInputDialog.getText(self, "Text Annotation", "Enter annotation text:")
        if ok:
            self._shell.commit_text(pending, text)
        else:
            self._shell.cancel_text(pending)

    # ── Actions ───────────────────────────────────────────────────────────────

    def _upload(self, index: int):
        path, _ = QFileDialog.getOpenFileName(self, f"Upload Image for Slice {index + 1}",
                                              "", _IMAGE_FILTER)
        if path:
            self._shell.upload(index, path)

    def _clear_annotations(self):
        index = self._shell.session.active_slot
        count = self._shell.annotations.count_for(index)
        if not count:
            return
        reply = QMessageBox.question(
            self, "Clear Annotations",
            f"Remove all {count} annotation(s) from slice {index + 1}?",
        )
        if reply == QMessageBox.StandardButton.Yes:
            self._shell.clear_annotations(index)

    def _toggle_annotation_list(self, index: int):
        if self._annotation_list.isVisible() and self._annotation_list.slot == index:
            self._annotation_list.hide()
            return
        self._annotation_list.show_slot(index)
        self._annotation_list.show()

    def _toggle_sidebar(self):
        self._sidebar.setVisible(not self._sidebar.isVisible())
        if self._sidebar.isVisible():
            self._sidebar.sync()

    def _export_annotations(self, ext: str):
        path = exporter.default_export_path(data_store.EXPORT_DIR, "annotations", ext)
        try:
            count = self._shell.export_annotations(path)
        except OSError as exc:
            QMessageBox.warning(self, "Export", f"Could not export annotations:\n{exc}")
            return
        self._export_done(path, f"{count} annotation(s) exported to:\n{path}")

    def _export_report(self):
        path = exporter.default_export_path(data_store.EXPORT_DIR, "report", "pdf")
        try:
            pages = self._shell.export_report(path)
        except (OSError, RuntimeError, ValueError) as exc:
            QMessageBox.warning(self, "Export", f"Could not export the report:\n{exc}")
            return
        if pages:
            self._export_done(path, f"Report ({pages} page(s)) exported to:\n{path}")

    def _export_done(self, path: str, message: str):
        dlg = QMessageBox(QMessageBox.Icon.Information, "Export", message, parent=self)
        open_btn = dlg.addButton("Open File", QMessageBox.ButtonRole.ActionRole)
        dlg.addButton(QMessageBox.StandardButton.Ok)
        dlg.exec()
        if dlg.clickedButton() is open_btn:
            _open_path(path)


def _open_path(path: str) -> None:
    """Open *path* with the platform's default handler (file or directory)."""
    if not os.path.exists(path):
        return
    try:
        if sys.platform == "darwin":
            subprocess.Popen(["open", path])
        elif sys.platform == "win32":
            os.startfile(path)  # type: ignore[attr-defined]
        else:
            subprocess.Popen(["xdg-open", path])
    except OSError as exc:
        logger.warning("Could not open %s: %s", path, exc)


def main():
    parser = argparse.ArgumentParser(description="Slice Viewer")
    parser.add_argument("--data-dir", help="Directory for settings, annotations and exports")
    args, qt_args = parser.parse_known_args()

    logging.basicConfig(level=logging.INFO, format=data_store.LOG_FORMAT)
    app = QApplication(sys.argv[:1] + qt_args)
    app.setApplicationName("Slice Viewer")
    if args.data_dir:
        data_store.set_data_dir(args.data_dir)
    data_store.ensure_data_dirs()
    first_run = not os.path.exists(data_store.SETTINGS_PATH)
    settings = data_store.load_settings()
    if first_run:
        data_store.save_settings(settings)
    data_store.set_debug(settings.debug_mode)
    data_store.dbg(f"Settings loaded from {data_store.SETTINGS_PATH}")
    shell = ViewerShell(settings, backend=data_store.JsonFileStore())
    window = MainWindow(shell)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
