import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtGui import QColor, QImage
from PySide6.QtWidgets import QApplication

import data_store
from annotation_store import AnnotationStore
from models import ViewerSession
from text_metrics import FixedWidthTextMetrics


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """Redirect all data reads/writes to a temporary directory."""
    monkeypatch.setattr(data_store, "DATA_DIR", str(tmp_path))
    monkeypatch.setattr(data_store, "SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setattr(data_store, "EXPORT_DIR", str(tmp_path / "export"))
    return tmp_path


@pytest.fixture()
def session():
    return ViewerSession()


@pytest.fixture()
def metrics():
    return FixedWidthTextMetrics()


@pytest.fixture()
def store(session):
    return AnnotationStore(session)


def solid_image(width, height, rgb=(10, 20, 30)):
    img = QImage(width, height, QImage.Format.Format_RGB32)
    img.fill(QColor(*rgb))
    return img


@pytest.fixture()
def make_image():
    return solid_image
