import csv
import datetime
import os

import fitz
import openpyxl

import exporter
from image_intake import encode_png
from models import KIND_LINE, KIND_TEXT, Annotation, Point

ANNOTATIONS = [
    Annotation(id="l1", kind=KIND_LINE, slot=0, timestamp=1_700_000_000_000,
               start=Point(0, 0), end=Point(30, 40)),
    Annotation(id="t1", kind=KIND_TEXT, slot=2, timestamp=1_700_000_100_000,
               text="left lower lobe", position=Point(12, 34)),
]


def test_rows():
    assert exporter.annotation_row(ANNOTATIONS[0])[5:] == [0, 0, 30, 40, 50.0]
    row = exporter.annotation_row(ANNOTATIONS[1])
    assert row[1:3] == [3, "text"]
    assert row[4:7] == ["left lower lobe", 12, 34]


def test_export_csv(tmp_path):
    path = str(tmp_path / "out" / "annotations.csv")
    assert exporter.export_annotations_csv(ANNOTATIONS, path) == 2
    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == exporter.COLUMNS
    assert [r[0] for r in rows[1:]] == ["l1", "t1"]


def test_export_xlsx(tmp_path):
    path = str(tmp_path / "annotations.xlsx")
    assert exporter.export_annotations_xlsx(ANNOTATIONS, path) == 2
    ws = openpyxl.load_workbook(path).active
    assert ws.title == "Annotations"
    assert [c.value for c in ws[1]] == exporter.COLUMNS
    assert ws.cell(row=3, column=5).value == "left lower lobe"
    assert ws.cell(row=2, column=10).value == 50.0


def test_export_report_pdf(tmp_path, make_image):
    png = encode_png(make_image(64, 48))
    path = str(tmp_path / "report.pdf")
    progress = []
    pages = exporter.export_report_pdf([(0, png), (1, png)], ANNOTATIONS, path,
                                       title="Sample Patient",
                                       progress_cb=lambda i, n: progress.append(i))
    assert pages == 2
    assert progress == [0, 1, 2]
    with fitz.open(path) as doc:
        assert doc.page_count == 2
        first, second = doc[0].get_text(), doc[1].get_text()
    assert "Sample Patient, slice 1" in first
    assert "Line annotation (50px)" in first
    assert "No annotations for this slice" in second


def test_export_report_without_snapshots_writes_nothing(tmp_path):
    path = str(tmp_path / "empty.pdf")
    assert exporter.export_report_pdf([], ANNOTATIONS, path) == 0
    assert not os.path.exists(path)


def test_default_export_path():
    now = datetime.datetime(2024, 3, 5, 14, 7, 9)
    path = exporter.default_export_path("/exports", "annotations", "xlsx", now)
    assert path == os.path.join("/exports", "annotations_20240305_140709.xlsx")
