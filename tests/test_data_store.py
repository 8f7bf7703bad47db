import json
import logging

import data_store
from models import ViewerSettings


def test_json_file_store_round_trip(tmp_data_dir):
    store = data_store.JsonFileStore()
    assert store.load("dicom-annotations") is None
    store.save("dicom-annotations", "[1, 2]")
    assert store.load("dicom-annotations") == "[1, 2]"
    assert (tmp_data_dir / "dicom-annotations.json").exists()
    assert not (tmp_data_dir / "dicom-annotations.json.tmp").exists()


def test_json_file_store_sanitizes_keys(tmp_path):
    store = data_store.JsonFileStore(str(tmp_path / "kv"))
    store.save("../escape", "x")
    assert (tmp_path / "kv" / ".._escape.json").exists()


def test_settings_default_when_missing():
    assert data_store.load_settings() == ViewerSettings()


def test_settings_round_trip():
    settings = ViewerSettings(ai_endpoint="http://example.test/api", ai_timeout=5,
                              patient_name="Jane Doe", debug_mode=True)
    data_store.save_settings(settings)
    assert data_store.load_settings() == settings


def test_settings_partial_file_uses_defaults(tmp_data_dir):
    (tmp_data_dir / "settings.json").write_text(json.dumps({"study": "Chest X-ray"}))
    settings = data_store.load_settings()
    assert settings.study == "Chest X-ray"
    assert settings.ai_endpoint == ViewerSettings().ai_endpoint


def test_settings_bad_file_uses_defaults(tmp_data_dir):
    (tmp_data_dir / "settings.json").write_text("{oops")
    assert data_store.load_settings() == ViewerSettings()


def test_set_data_dir(tmp_path):
    data_store.set_data_dir(str(tmp_path / "elsewhere"))
    assert data_store.SETTINGS_PATH == str(tmp_path / "elsewhere" / "settings.json")
    assert data_store.EXPORT_DIR == str(tmp_path / "elsewhere" / "export")


def test_set_debug():
    root = logging.getLogger()
    level = root.level
    try:
        data_store.set_debug(True)
        assert root.level == logging.DEBUG
        data_store.set_debug(False)
        assert root.level == logging.INFO
    finally:
        root.setLevel(level)


def test_resolve_path(tmp_path):
    assert data_store.resolve_path(str(tmp_path)) == str(tmp_path)
    assert data_store.resolve_path("samples/chestx.jpg").endswith("samples/chestx.jpg")


def test_settings_bad_value_falls_back_per_key(tmp_data_dir):
    (tmp_data_dir / "settings.json").write_text(
        json.dumps({"ai_timeout": "sixty", "ai_max_upload_side": None, "study": "Chest X-ray"}))
    settings = data_store.load_settings()
    assert settings.ai_timeout == ViewerSettings().ai_timeout
    assert settings.ai_max_upload_side == ViewerSettings().ai_max_upload_side
    assert settings.study == "Chest X-ray"


def test_settings_non_object_root_uses_defaults(tmp_data_dir):
    (tmp_data_dir / "settings.json").write_text("[1, 2]")
    assert data_store.load_settings() == ViewerSettings()


def test_default_data_dir_outside_a_checkout(tmp_path, monkeypatch):
    monkeypatch.setattr(data_store, "_REPO_DIR", str(tmp_path / "site-packages"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))
    assert data_store.default_data_dir() == str(tmp_path / "share" / "slice-viewer")


def test_default_data_dir_in_a_checkout(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text("")
    monkeypatch.setattr(data_store, "_REPO_DIR", str(tmp_path))
    assert data_store.default_data_dir() == str(tmp_path / "data")
