"""Widgets: slot panels, toolbar, annotation list and the AI sidebar."""
import datetime
from typing import Dict, List, Optional

from PySide6.QtCore import QPointF, QRectF, Qt, Signal
from PySide6.QtGui import QColor, QFont, QPainter, QPen
from PySide6.QtWidgets import (
    QFormLayout, QHBoxLayout, QLabel, QListWidget, QListWidgetItem,
    QPlainTextEdit, QProgressBar, QPushButton, QSizePolicy, QVBoxLayout, QWidget,
)

from models import (
    MODE_LINE, MODE_NONE, MODE_TEXT, VIEW_QUAD, VIEW_SINGLE,
    AnalysisResult, Annotation,
)
from render_engine import draw_line_preview
from view_transforms import ZOOM_DECREASE, ZOOM_INCREASE, ZOOM_RESET
from viewer_shell import ViewerShell

# Orientation markers: (text, horizontal fraction, vertical fraction)
_ORIENTATION_LABELS = [
    ("A", 0.25, 0.0), ("A", 0.75, 0.0),
    ("P", 0.25, 1.0), ("P", 0.75, 1.0),
    ("R", 0.0, 0.25), ("R", 0.0, 0.75),
    ("L", 1.0, 0.25), ("L", 1.0, 0.75),
]
_ACTIVE_BORDER = QColor(59, 130, 246)


class SlotCanvas(QWidget):
    """Paints one slot surface and emits pointer events in surface pixels."""

    pressed  = Signal(int, float, float)
    moved    = Signal(int, float, float)
    released = Signal(int, float, float)

    def __init__(self, shell: ViewerShell, index: int, parent=None):
        super().__init__(parent)
        self._shell = shell
        self.index = index
        self.setMouseTracking(True)
        self.setMinimumSize(120, 120)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)

    def paintEvent(self, event):
        surface = self._shell.render_slot(self.index, self.width(), self.height())
        painter = QPainter(self)
        painter.drawImage(0, 0, surface)

        controller = self._shell.controller
        if (controller.gesture_slot == self.index
                and controller.line_start is not None
                and controller.preview_end is not None):
            draw_line_preview(painter, controller.line_start, controller.preview_end)

        font = QFont()
        font.setPixelSize(12)
        painter.setFont(font)
        painter.setPen(QColor(255, 255, 255, 180))
        w, h = self.width(), self.height()
        for text, fx, fy in _ORIENTATION_LABELS:
            x = min(max(fx * w, 4), w - 14)
            y = min(max(fy * h, 16), h - 4)
            painter.drawText(QPointF(x, y), text)

        if self._shell.session.active_slot == self.index:
            painter.setPen(QPen(_ACTIVE_BORDER, 2))
            painter.drawRect(QRectF(1, 1, w - 2, h - 2))
        painter.end()

    def mousePressEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            p = event.position()
            self.pressed.emit(self.index, p.x(), p.y())
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        p = event.position()
        self.moved.emit(self.index, p.x(), p.y())
        event.accept()

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            p = event.position()
            self.released.emit(self.index, p.x(), p.y())
        super().mouseReleaseEvent(event)


class SlotPanel(QWidget):
    """Header row (title, annotation badge, zoom, buttons) above a SlotCanvas."""

    upload_requested = Signal(int)
    remove_requested = Signal(int)
    list_requested   = Signal(int)

    def __init__(self, shell: ViewerShell, index: int, parent=None):
        super().__init__(parent)
        self._shell = shell
        self.index = index

        layout = QVBoxLayout(self)
        layout.setContentsMargins(1, 1, 1, 1)
        layout.setSpacing(0)

        header = QWidget()
        header.setStyleSheet("background-color: #111827; color: #e5e7eb;")
        hl = QHBoxLayout(header)
        hl.setContentsMargins(6, 2, 2, 2)
        hl.setSpacing(4)
        self._title = QLabel(f"Slice {index + 1}")
        hl.addWidget(self._title)
        self._badge = QLabel()
        self._badge.setToolTip("Annotations on this slice")
        hl.addWidget(self._badge)
        self._zoom_label = QLabel()
        hl.addWidget(self._zoom_label)
        hl.addStretch()
        for label, tip, signal in [
            ("⇪", "Upload image", self.upload_requested),
            ("☰", "Annotation list", self.list_requested),
            ("✕", "Remove from view", self.remove_requested),
        ]:
            btn = QPushButton(label)
            btn.setToolTip(tip)
            btn.setFixedWidth(28)
            btn.clicked.connect(lambda checked=False, s=signal: s.emit(self.index))
            hl.addWidget(btn)
        layout.addWidget(header)

        self.canvas = SlotCanvas(shell, index)
        layout.addWidget(self.canvas, stretch=1)
        self.refresh()

    def refresh(self):
        count = self._shell.annotations.count_for(self.index)
        self._badge.setText(f"✎ {count}" if count else "")
        zoom = self._shell.session.slot(self.index).transform.zoom
        self._zoom_label.setText(f"{int(round(zoom * 100))}%")
        self.canvas.update()


class ViewerToolbar(QWidget):
    """Bottom toolbar: view mode, active-slot view controls, annotation tools."""

    upload_requested   = Signal()
    analysis_requested = Signal()

    def __init__(self, shell: ViewerShell, parent=None):
        super().__init__(parent)
        self._shell = shell
        layout = QHBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)
        layout.setSpacing(2)

        self._view_buttons: Dict[str, QPushButton] = {}
        for mode, label, tip in [
            (VIEW_QUAD, "▦", "Quad view"),
            (VIEW_SINGLE, "□", "Single view (active slice)"),
        ]:
            btn = self._button(label, tip, checkable=True)
            btn.clicked.connect(lambda checked=False, m=mode: shell.set_view_mode(m))
            layout.addWidget(btn)
            self._view_buttons[mode] = btn
        layout.addSpacing(12)

        for label, tip, slot in [
            ("◐", "Invert active slice", lambda: shell.toggle_invert()),
            ("−", "Zoom out", lambda: shell.zoom(ZOOM_DECREASE)),
            ("+", "Zoom in", lambda: shell.zoom(ZOOM_INCREASE)),
            ("1:1", "Reset zoom", lambda: shell.zoom(ZOOM_RESET)),
        ]:
            btn = self._button(label, tip)
            btn.clicked.connect(slot)
            layout.addWidget(btn)
        layout.addSpacing(12)

        self._mode_buttons: Dict[str, QPushButton] = {}
        for mode, label, tip in [
            (MODE_NONE, "✋", "Pan / select (Esc)"),
            (MODE_LINE, "╱", "Line annotation (L)"),
            (MODE_TEXT, "T", "Text annotation (T)"),
        ]:
            btn = self._button(label, tip, checkable=True)
            btn.clicked.connect(lambda checked=False, m=mode: shell.set_annotation_mode(m))
            layout.addWidget(btn)
            self._mode_buttons[mode] = btn

        self._delete_btn = self._button("⌫", "Delete selected annotation (Del)")
        self._delete_btn.clicked.connect(shell.delete_selected)
        layout.addWidget(self._delete_btn)
        layout.addStretch()

        upload_btn = self._button("⇪", "Upload image to active slice")
        upload_btn.clicked.connect(self.upload_requested.emit)
        layout.addWidget(upload_btn)
        ai_btn = QPushButton("AI Analysis")
        ai_btn.setToolTip("Show the AI analysis sidebar")
        ai_btn.clicked.connect(self.analysis_requested.emit)
        layout.addWidget(ai_btn)
        self.sync()

    @staticmethod
    def _button(label: str, tip: str, checkable: bool = False) -> QPushButton:
        btn = QPushButton(label)
        btn.setToolTip(tip)
        btn.setCheckable(checkable)
        btn.setFixedWidth(36)
        return btn

    def sync(self):
        """Reflect the session's modes and selection in the buttons."""
        session = self._shell.session
        for mode, btn in self._view_buttons.items():
            btn.setChecked(mode == session.view_mode)
        for mode, btn in self._mode_buttons.items():
            btn.setChecked(mode == session.annotation_mode)
        self._delete_btn.setEnabled(session.selected_id is not None)


class AnnotationListPanel(QWidget):
    """Annotations of one slice, newest first."""

    closed = Signal()

    def __init__(self, shell: ViewerShell, parent=None):
        super().__init__(parent)
        self._shell = shell
        self.slot: Optional[int] = None
        self._items: List[Annotation] = []
        self.setMinimumWidth(220)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)
        top = QHBoxLayout()
        self._title = QLabel("Annotations")
        top.addWidget(self._title)
        top.addStretch()
        close_btn = QPushButton("✕")
        close_btn.setFixedWidth(28)
        close_btn.clicked.connect(self.closed.emit)
        top.addWidget(close_btn)
        layout.addLayout(top)

        self._list = QListWidget()
        self._list.itemClicked.connect(self._on_item_clicked)
        layout.addWidget(self._list, stretch=1)

        self._empty = QLabel("No annotations for this slice")
        self._empty.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(self._empty)

        self._delete_btn = QPushButton("Delete selected")
        self._delete_btn.clicked.connect(self._shell.delete_selected)
        layout.addWidget(self._delete_btn)

    def show_slot(self, slot: int):
        self.slot = slot
        self._title.setText(f"Annotations, slice {slot + 1}")
        self.refresh()

    def refresh(self):
        if self.slot is None:
            return
        self._items = self._shell.annotations_for(self.slot)
        selected = self._shell.session.selected_id
        self._list.blockSignals(True)
        self._list.clear()
        for ann in self._items:
            when = (datetime.datetime.fromtimestamp(ann.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
                    if ann.timestamp else "Unknown date")
            item = QListWidgetItem(f"{ann.describe()}\n{when}")
            self._list.addItem(item)
            if ann.id == selected:
                item.setSelected(True)
        self._list.blockSignals(False)
        self._empty.setVisible(not self._items)
        self._list.setVisible(bool(self._items))
        self._delete_btn.setEnabled(any(a.id == selected for a in self._items))

    def _on_item_clicked(self, item: QListWidgetItem):
        row = self._list.row(item)
        if 0 <= row < len(self._items):
            self._shell.select_annotation(self._items[row].id)


class AnalysisSidebar(QWidget):
    """Patient info, notes, run button and the latest result."""

    closed = Signal()

    def __init__(self, shell: ViewerShell, parent=None):
        super().__init__(parent)
        self._shell = shell
        self.setMinimumWidth(260)
        settings = shell.settings

        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)
        top = QHBoxLayout()
        top.addWidget(QLabel("<b>AI Analysis</b>"))
        top.addStretch()
        close_btn = QPushButton("✕")
        close_btn.setFixedWidth(28)
        close_btn.clicked.connect(self.closed.emit)
        top.addWidget(close_btn)
        layout.addLayout(top)

        info = QFormLayout()
        info.addRow("Patient ID:", QLabel(settings.patient_id))
        info.addRow("Name:", QLabel(settings.patient_name))
        info.addRow("Study:", QLabel(settings.study))
        layout.addLayout(info)

        layout.addWidget(QLabel("Notes:"))
        self._notes = QPlainTextEdit()
        self._notes.setPlainText(shell.default_notes())
        self._notes.setMaximumHeight(80)
        layout.addWidget(self._notes)

        self._run_btn = QPushButton("Analyze active slice")
        self._run_btn.clicked.connect(self._run)
        layout.addWidget(self._run_btn)

        self._progress = QProgressBar()
        self._progress.setRange(0, 1)
        self._progress.setValue(0)
        self._progress.setTextVisible(False)
        layout.addWidget(self._progress)

        result = QFormLayout()
        self._diagnosis = QLabel("No diagnosis available")
        self._diagnosis.setWordWrap(True)
        self._confidence = QLabel("-")
        self._elapsed = QLabel("-")
        result.addRow("Diagnosis:", self._diagnosis)
        result.addRow("Confidence:", self._confidence)
        result.addRow("Processing time:", self._elapsed)
        layout.addLayout(result)
        layout.addStretch()

        shell.analysis_started.connect(self._on_started)
        shell.analysis_finished.connect(self._on_finished)
        shell.analysis_failed.connect(self._on_failed)
        shell.active_slot_changed.connect(lambda _i: self.sync())
        self.sync()

    def _run(self):
        self._shell.request_analysis(notes=self._notes.toPlainText())

    def sync(self):
        active = self._shell.session.active_slot
        busy = self._shell.is_busy(active)
        self._run_btn.setEnabled(not busy)
        self._set_progress(busy)
        result = self._shell.last_results.get(active)
        if result is not None:
            self._show_result(result)
        else:
            self._diagnosis.setText("No diagnosis available")
            self._confidence.setText("-")
            self._elapsed.setText("-")

    def _set_progress(self, busy: bool):
        if busy:
            self._progress.setRange(0, 0)   # indeterminate
        else:
            self._progress.setRange(0, 1)
            self._progress.setValue(0)

    def _show_result(self, result: AnalysisResult):
        self._diagnosis.setText(result.diagnosis)
        self._confidence.setText(result.confidence)
        self._elapsed.setText(result.processing_time)

    def _on_started(self, slot: int):
        if slot == self._shell.session.active_slot:
            self.sync()

    def _on_finished(self, slot: int, result: AnalysisResult):
        if slot == self._shell.session.active_slot:
            self.sync()
            self._progress.setRange(0, 1)
            self._progress.setValue(1)

    def _on_failed(self, slot: int, message: str):
        if slot == self._shell.session.active_slot:
            self.sync()
