"""Data models for the slice viewer."""
from dataclasses import dataclass, field
from typing import List, Optional

SLOT_COUNT = 4

VIEW_SINGLE = "single"
VIEW_QUAD   = "quad"
VIEW_CUSTOM = "custom"
VIEW_MODES = (VIEW_SINGLE, VIEW_QUAD, VIEW_CUSTOM)

MODE_NONE = "none"   # pointer drags pan the slice
MODE_LINE = "line"
MODE_TEXT = "text"
ANNOTATION_MODES = (MODE_NONE, MODE_LINE, MODE_TEXT)

KIND_LINE = "line"
KIND_TEXT = "text"


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass
class ViewTransform:
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = 1.0
    inverted: bool = False


@dataclass
class Slot:
    index: int
    image: Optional[str] = None      # path of the image resource
    visible: bool = True
    load_error: bool = False
    analysis_busy: bool = False
    transform: ViewTransform = field(default_factory=ViewTransform)


@dataclass(frozen=True)
class Annotation:
    id: str
    kind: str          # KIND_LINE | KIND_TEXT
    slot: int          # owning slot index, fixed at creation
    timestamp: int     # ms since epoch
    start: Optional[Point] = None    # line only
    end: Optional[Point] = None      # line only
    text: Optional[str] = None       # text only
    position: Optional[Point] = None  # text anchor (baseline-left)

    def length(self) -> float:
        if self.kind != KIND_LINE or self.start is None or self.end is None:
            return 0.0
        return ((self.end.x - self.start.x) ** 2 + (self.end.y - self.start.y) ** 2) ** 0.5

    def describe(self) -> str:
        """Short label used by the annotation list and the exports."""
        if self.kind == KIND_TEXT:
            return self.text or ""
        return f"Line annotation ({round(self.length())}px)"


@dataclass
class PendingText:
    """Handle for a text annotation waiting for its content."""
    slot: int
    position: Point
    done: bool = False


@dataclass
class AnalysisResult:
    diagnosis: str
    confidence: str       # as reported by the model, e.g. "97.70%"
    processing_time: str  # e.g. "0.6324 seconds"

    def confidence_value(self) -> Optional[float]:
        """Return the confidence as a number (percent), or *None*."""
        raw = str(self.confidence).strip().rstrip("%").strip()
        try:
            return float(raw)
        except ValueError:
            return None


@dataclass
class ViewerSettings:
    ai_endpoint: str = "http://localhost:3000/api/gradio"
    ai_timeout: float = 60.0
    ai_max_upload_side: int = 1024
    default_images: List[str] = field(default_factory=lambda: [
        "samples/chestx.jpg",
        "samples/chestx2.jpg",
        "samples/handx.jpg",
        "samples/neckx.jpg",
    ])
    patient_id: str = "112233"
    patient_name: str = "Sample Patient"
    study: str = "Cranial CT Scan"
    debug_mode: bool = False


@dataclass
class ViewerSession:
    """All mutable viewer state shared by the components.

    Components receive the session by reference; nothing else holds
    process-wide state.
    """
    slots: List[Slot] = field(
        default_factory=lambda: [Slot(index=i) for i in range(SLOT_COUNT)]
    )
    active_slot: int = 0
    view_mode: str = VIEW_QUAD
    annotation_mode: str = MODE_NONE
    selected_id: Optional[str] = None

    def slot(self, index: int) -> Slot:
        if not 0 <= index < len(self.slots):
            raise IndexError(f"slot index out of range: {index}")
        return self.slots[index]
