"""Data persistence: key-value JSON files, viewer settings, debug logging."""
import json
import logging
import os
from typing import Optional, Protocol

from models import ViewerSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# ── Data directory (set via set_data_dir) ─────────────────────────────────────

_APP_DIR = os.path.dirname(os.path.abspath(__file__))
_REPO_DIR = os.path.dirname(_APP_DIR)


def default_data_dir() -> str:
    """`<repo>/data` in a source checkout, the user data directory otherwise."""
    if os.path.exists(os.path.join(_REPO_DIR, "pyproject.toml")):
        return os.path.join(_REPO_DIR, "data")
    xdg = os.getenv("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    return os.path.join(xdg, "slice-viewer")


DATA_DIR: str = default_data_dir()
SETTINGS_PATH: str = os.path.join(DATA_DIR, "settings.json")
EXPORT_DIR: str = os.path.join(DATA_DIR, "export")


def set_data_dir(data_dir: str) -> None:
    """Configure all data paths to use *data_dir* as the root."""
    global DATA_DIR, SETTINGS_PATH, EXPORT_DIR
    DATA_DIR = os.path.abspath(data_dir)
    SETTINGS_PATH = os.path.join(DATA_DIR, "settings.json")
    EXPORT_DIR = os.path.join(DATA_DIR, "export")


def ensure_data_dirs():
    os.makedirs(DATA_DIR, exist_ok=True)
    os.makedirs(EXPORT_DIR, exist_ok=True)


# ── Debug logging ─────────────────────────────────────────────────────────────

def set_debug(enabled: bool) -> None:
    logging.getLogger().setLevel(logging.DEBUG if enabled else logging.INFO)


def dbg(message: str) -> None:
    logger.debug(message)


# ── Key-value store ───────────────────────────────────────────────────────────

class KeyValueStore(Protocol):
    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, value: str) -> None: ...


class JsonFileStore:
    """One ``<key>.json`` file per key under the data directory.

    Values are stored verbatim; callers serialize.  ``save`` raises
    ``OSError`` when the file cannot be written.
    """

    def __init__(self, directory: Optional[str] = None):
        self._directory = directory

    @property
    def directory(self) -> str:
        return self._directory or DATA_DIR

    def _path(self, key: str) -> str:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return os.path.join(self.directory, f"{safe}.json")

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def save(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(key)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, path)


# ── Settings ──────────────────────────────────────────────────────────────────

def _setting(data: dict, key: str, cast, default):
    if key not in data:
        return default
    try:
        return cast(data[key])
    except (TypeError, ValueError):
        logger.warning("Invalid value %r for setting %r, using %r", data[key], key, default)
        return default


def load_settings() -> ViewerSettings:
    """Read settings.json; a missing file, bad keys or bad values fall back to defaults."""
    defaults = ViewerSettings()
    if not os.path.exists(SETTINGS_PATH):
        return defaults
    try:
        with open(SETTINGS_PATH, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s, using defaults: %s", SETTINGS_PATH, exc)
        return defaults
    if not isinstance(data, dict):
        logger.warning("%s does not hold a JSON object, using defaults", SETTINGS_PATH)
        return defaults
    images = data.get("default_images", defaults.default_images)
    if not isinstance(images, list):
        logger.warning("Invalid value %r for setting 'default_images', using defaults", images)
        images = defaults.default_images
    return ViewerSettings(
        ai_endpoint=_setting(data, "ai_endpoint", str, defaults.ai_endpoint),
        ai_timeout=_setting(data, "ai_timeout", float, defaults.ai_timeout),
        ai_max_upload_side=_setting(data, "ai_max_upload_side", int, defaults.ai_max_upload_side),
        default_images=[str(p) for p in images],
        patient_id=_setting(data, "patient_id", str, defaults.patient_id),
        patient_name=_setting(data, "patient_name", str, defaults.patient_name),
        study=_setting(data, "study", str, defaults.study),
        debug_mode=_setting(data, "debug_mode", bool, defaults.debug_mode),
    )


def save_settings(settings: ViewerSettings) -> None:
    ensure_data_dirs()
    data = {
        "ai_endpoint": settings.ai_endpoint,
        "ai_timeout": settings.ai_timeout,
        "ai_max_upload_side": settings.ai_max_upload_side,
        "default_images": list(settings.default_images),
        "patient_id": settings.patient_id,
        "patient_name": settings.patient_name,
        "study": settings.study,
        "debug_mode": settings.debug_mode,
    }
    with open(SETTINGS_PATH, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def resolve_path(path: str) -> str:
    """Resolve a settings-relative path against the repository root."""
    if os.path.isabs(path):
        return path
    return os.path.join(_REPO_DIR, path)
