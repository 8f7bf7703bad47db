"""Text measurement used by both rendering and hit-testing.

The render engine and the interaction controller only need two numbers from a
font: the advance width of a string and the line height.  Hiding them behind
:class:`TextMetrics` lets tests run with :class:`FixedWidthTextMetrics`
instead of a real font.
"""
from typing import Protocol

from PySide6.QtGui import QFont, QFontMetricsF

FONT_FAMILY = "Arial"
FONT_PX = 14


class TextMetrics(Protocol):
    def width(self, text: str) -> float: ...

    def line_height(self) -> float: ...


def annotation_font(bold: bool = False) -> QFont:
    font = QFont(FONT_FAMILY)
    font.setPixelSize(FONT_PX)
    font.setBold(bold)
    return font


class QtTextMetrics:
    """Measures with the same font the render engine draws with."""

    def __init__(self, font: QFont = None):
        self._fm = QFontMetricsF(font if font is not None else annotation_font())

    def width(self, text: str) -> float:
        return self._fm.horizontalAdvance(text)

    def line_height(self) -> float:
        # Selection boxes and hit areas use the nominal pixel size, not the
        # font's ascent+descent.
        return float(FONT_PX)


class FixedWidthTextMetrics:
    def __init__(self, char_width: float = 7.0, height: float = float(FONT_PX)):
        self.char_width = char_width
        self.height = height

    def width(self, text: str) -> float:
        return len(text) * self.char_width

    def line_height(self) -> float:
        return self.height
