"""Export annotations (CSV/XLSX) and an annotated snapshot report (PDF).

The PDF report has one A4 page per drawn slot: a header with the patient and
slot, the rendered slot surface (image, inversion and annotations exactly as
on screen) and the slot's annotation list underneath.
"""
import csv
import datetime
import logging
import os
from typing import Iterable, List, Optional, Sequence, Tuple

import fitz
import openpyxl

from models import KIND_LINE, Annotation

logger = logging.getLogger(__name__)

_A4_W, _A4_H = 595.0, 842.0
_MARGIN = 36.0
_HEADER_PT = 14
_BODY_PT = 9
_LINE_GAP = 13.0

COLUMNS = ["id", "slot", "type", "created", "text", "x1", "y1", "x2", "y2", "length_px"]


def _created(ann: Annotation) -> str:
    if not ann.timestamp:
        return ""
    return datetime.datetime.fromtimestamp(ann.timestamp / 1000).isoformat(timespec="seconds")


def annotation_row(ann: Annotation) -> list:
    if ann.kind == KIND_LINE:
        return [ann.id, ann.slot + 1, ann.kind, _created(ann), "",
                ann.start.x, ann.start.y, ann.end.x, ann.end.y, round(ann.length(), 1)]
    return [ann.id, ann.slot + 1, ann.kind, _created(ann), ann.text,
            ann.position.x, ann.position.y, "", "", ""]


def export_annotations_csv(annotations: Iterable[Annotation], path: str) -> int:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        for ann in annotations:
            writer.writerow(annotation_row(ann))
            count += 1
    logger.info("Exported %d annotation(s) to %s", count, path)
    return count


def export_annotations_xlsx(annotations: Iterable[Annotation], path: str) -> int:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Annotations"
    ws.append(COLUMNS)
    count = 0
    for ann in annotations:
        ws.append(annotation_row(ann))
        count += 1
    wb.save(path)
    logger.info("Exported %d annotation(s) to %s", count, path)
    return count


def export_report_pdf(
    snapshots: Sequence[Tuple[int, bytes]],
    annotations: List[Annotation],
    path: str,
    title: str = "",
    progress_cb=None,
) -> int:
    """Write one page per *(slot_index, png_bytes)* snapshot to *path*.

    Returns the number of pages written.
    """
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    doc = fitz.open()
    try:
        total = len(snapshots)
        for i, (slot, png) in enumerate(snapshots):
            if progress_cb:
                progress_cb(i, total)
            page = doc.new_page(width=_A4_W, height=_A4_H)
            header = f"{title}, slice {slot + 1}" if title else f"Slice {slot + 1}"
            page.insert_text((_MARGIN, _MARGIN + _HEADER_PT), header, fontsize=_HEADER_PT)

            image_rect = fitz.Rect(_MARGIN, _MARGIN + 2 * _HEADER_PT,
                                   _A4_W - _MARGIN, _A4_H * 0.62)
            page.insert_image(image_rect, stream=png, keep_proportion=True)

            y = image_rect.y1 + _LINE_GAP * 1.5
            own = sorted((a for a in annotations if a.slot == slot),
                         key=lambda a: a.timestamp, reverse=True)
            if not own:
                page.insert_text((_MARGIN, y), "No annotations for this slice",
                                 fontsize=_BODY_PT)
            for ann in own:
                if y > _A4_H - _MARGIN:
                    break
                page.insert_text((_MARGIN, y), _report_line(ann), fontsize=_BODY_PT)
                y += _LINE_GAP
        if progress_cb:
            progress_cb(total, total)
        pages = doc.page_count
        if pages:
            doc.save(path)
    finally:
        doc.close()
    logger.info("Exported %d page(s) to %s", pages, path)
    return pages


def _report_line(ann: Annotation) -> str:
    when = _created(ann) or "Unknown date"
    return f"{when}  {ann.describe()}"


def default_export_path(export_dir: str, stem: str, ext: str,
                        now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now()
    return os.path.join(export_dir, f"{stem}_{now:%Y%m%d_%H%M%S}.{ext}")
