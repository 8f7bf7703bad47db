"""Client for the hosted pneumonia-detection model.

The endpoint is the small proxy in front of the hosted model: it takes the
image as a base64 data URL plus the patient name and free-text notes, and
answers with the model's output list ``[overlay, diagnosis, confidence,
time]``.
"""
import base64
import logging
from typing import Dict, Optional

import requests
from PySide6.QtCore import QObject, QRunnable, Signal

from image_intake import image_hash
from models import AnalysisResult

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """The analysis request failed; the message is fit for the user."""


class AnalysisClient:
    def __init__(self, endpoint: str, timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self._http = session or requests.Session()

    def analyze(self, image: bytes, patient_name: str, notes: str = "") -> AnalysisResult:
        payload = {
            "img_path": "data:image/png;base64," + base64.b64encode(image).decode("ascii"),
            "patient_name": patient_name,
            "doctor_notes": notes,
        }
        logger.info("POST %s (%d bytes of image)", self.endpoint, len(image))
        try:
            resp = self._http.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AnalysisError(f"Could not reach the analysis service: {exc}") from exc

        if not resp.ok:
            detail = ""
            try:
                detail = resp.json().get("error", "")
            except (ValueError, AttributeError):
                pass
            raise AnalysisError(
                f"API request failed: {resp.status_code} {resp.reason}. {detail}".strip()
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise AnalysisError("The analysis service returned invalid JSON") from exc
        return parse_response(data)


def parse_response(data) -> AnalysisResult:
    """Turn the model output list into an :class:`AnalysisResult`."""
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, list) or len(data) < 4:
        raise AnalysisError("Invalid result format received from API")
    diagnosis, confidence, elapsed = data[1], data[2], data[3]
    if not isinstance(diagnosis, str) or not diagnosis:
        raise AnalysisError("Invalid result format received from API")
    return AnalysisResult(diagnosis=diagnosis, confidence=str(confidence),
                          processing_time=str(elapsed))


class AnalysisCache:
    """Results keyed by the SHA-256 of the submitted image."""

    def __init__(self):
        self._results: Dict[str, AnalysisResult] = {}

    def get(self, image: bytes) -> Optional[AnalysisResult]:
        return self._results.get(image_hash(image))

    def put(self, image: bytes, result: AnalysisResult) -> None:
        self._results[image_hash(image)] = result


# ── Background worker ─────────────────────────────────────────────────────────

class AnalysisSignals(QObject):
    finished = Signal(int, object)   # slot, AnalysisResult
    failed   = Signal(int, str)      # slot, message


class AnalysisWorker(QRunnable):
    """Runs one analysis request off the GUI thread."""

    def __init__(self, client: AnalysisClient, slot: int, image: bytes,
                 patient_name: str, notes: str):
        super().__init__()
        self.signals = AnalysisSignals()
        self.client = client
        self.slot = slot
        self.image = image
        self.patient_name = patient_name
        self.notes = notes

    def run(self) -> None:
        try:
            result = self.client.analyze(self.image, self.patient_name, self.notes)
        except AnalysisError as exc:
            logger.warning("Analysis for slot %d failed: %s", self.slot, exc)
            self.signals.failed.emit(self.slot, str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error during analysis of slot %d", self.slot)
            self.signals.failed.emit(self.slot, f"Unexpected error: {exc}")
            return
        self.signals.finished.emit(self.slot, result)
