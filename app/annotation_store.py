"""Annotation collection with best-effort persistence.

The whole collection is written back to the key-value store after every
mutation.  Persistence problems are logged and never reach the caller: the
in-memory collection stays authoritative.
"""
import json
import logging
import time
import uuid
from typing import Iterator, List, Optional

from data_store import KeyValueStore
from models import KIND_LINE, KIND_TEXT, Annotation, Point, ViewerSession

logger = logging.getLogger(__name__)

STORAGE_KEY = "dicom-annotations"


# ── Serialization ─────────────────────────────────────────────────────────────

def _point_to_dict(p: Point) -> dict:
    return {"x": p.x, "y": p.y}


def _point_from_dict(d) -> Point:
    return Point(x=float(d["x"]), y=float(d["y"]))


def annotation_to_dict(ann: Annotation) -> dict:
    item = {
        "id": ann.id,
        "type": ann.kind,
        "imageIndex": ann.slot,
        "timestamp": ann.timestamp,
    }
    if ann.kind == KIND_LINE:
        item["start"] = _point_to_dict(ann.start)
        item["end"] = _point_to_dict(ann.end)
    else:
        item["text"] = ann.text
        item["position"] = _point_to_dict(ann.position)
    return item


def annotation_from_dict(item: dict) -> Annotation:
    """Build an Annotation from its stored form; raises on malformed input."""
    kind = item["type"]
    common = dict(
        id=str(item["id"]),
        kind=kind,
        slot=int(item["imageIndex"]),
        timestamp=int(item.get("timestamp") or 0),
    )
    if kind == KIND_LINE:
        return Annotation(start=_point_from_dict(item["start"]),
                          end=_point_from_dict(item["end"]), **common)
    if kind == KIND_TEXT:
        return Annotation(text=str(item["text"]),
                          position=_point_from_dict(item["position"]), **common)
    raise ValueError(f"unknown annotation type: {kind!r}")


def serialize(annotations: List[Annotation]) -> str:
    return json.dumps([annotation_to_dict(a) for a in annotations])


def deserialize(raw: str) -> List[Annotation]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("annotation data is not a list")
    annotations = []
    seen = set()
    for item in data:
        try:
            ann = annotation_from_dict(item)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed annotation %r: %s", item, exc)
            continue
        if ann.id in seen:
            logger.warning("Skipping duplicate annotation id %s", ann.id)
            continue
        seen.add(ann.id)
        annotations.append(ann)
    return annotations


# ── Store ─────────────────────────────────────────────────────────────────────

class AnnotationStore:
    def __init__(self, session: ViewerSession, backend: Optional[KeyValueStore] = None,
                 key: str = STORAGE_KEY):
        self._session = session
        self._backend = backend
        self._key = key
        self._annotations: List[Annotation] = []
        self._load()

    # -- persistence bridge --

    def _load(self) -> None:
        if self._backend is None:
            return
        try:
            raw = self._backend.load(self._key)
            if raw:
                self._annotations = deserialize(raw)
        except Exception:
            logger.exception("Error loading annotations from %r", self._key)
            self._annotations = []
        logger.info("Loaded %d annotation(s)", len(self._annotations))

    def _save(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.save(self._key, serialize(self._annotations))
        except Exception:
            logger.exception("Error saving annotations to %r", self._key)

    # -- mutation --

    def _new_id(self) -> str:
        existing = {a.id for a in self._annotations}
        while True:
            ann_id = f"annotation-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
            if ann_id not in existing:
                return ann_id

    def add(self, slot: int, kind: str, payload: dict) -> Annotation:
        """Create an annotation on *slot*.

        *payload* holds ``start``/``end`` for lines and ``text``/``position``
        for text annotations (points as :class:`Point`).
        """
        self._session.slot(slot)
        if kind == KIND_LINE:
            ann = Annotation(id=self._new_id(), kind=kind, slot=slot,
                             timestamp=int(time.time() * 1000),
                             start=payload["start"], end=payload["end"])
        elif kind == KIND_TEXT:
            ann = Annotation(id=self._new_id(), kind=kind, slot=slot,
                             timestamp=int(time.time() * 1000),
                             text=payload["text"], position=payload["position"])
        else:
            raise ValueError(f"unknown annotation kind: {kind!r}")
        self._annotations.append(ann)
        logger.debug("Added %s annotation %s on slot %d", kind, ann.id, slot)
        self._save()
        return ann

    def remove(self, ann_id: str) -> bool:
        """Remove *ann_id*; return False if there was no such annotation."""
        before = len(self._annotations)
        self._annotations = [a for a in self._annotations if a.id != ann_id]
        if self._session.selected_id == ann_id:
            self._session.selected_id = None
        if len(self._annotations) == before:
            return False
        logger.debug("Removed annotation %s", ann_id)
        self._save()
        return True

    def clear_slot(self, slot: int) -> int:
        """Remove every annotation of *slot*; return how many were removed."""
        doomed = {a.id for a in self._annotations if a.slot == slot}
        self._annotations = [a for a in self._annotations if a.id not in doomed]
        if self._session.selected_id in doomed:
            self._session.selected_id = None
        self._save()
        return len(doomed)

    def replace_all(self, annotations: List[Annotation]) -> None:
        self._annotations = list(annotations)
        if self.get(self._session.selected_id) is None:
            self._session.selected_id = None
        self._save()

    def select(self, ann_id: Optional[str]) -> None:
        self._session.selected_id = ann_id

    # -- queries --

    def selected(self) -> Optional[str]:
        return self._session.selected_id

    def get(self, ann_id: Optional[str]) -> Optional[Annotation]:
        if ann_id is None:
            return None
        return next((a for a in self._annotations if a.id == ann_id), None)

    def all(self) -> List[Annotation]:
        return list(self._annotations)

    def list_for(self, slot: int) -> Iterator[Annotation]:
        return (a for a in self._annotations if a.slot == slot)

    def newest_first(self, slot: int) -> List[Annotation]:
        return sorted(self.list_for(slot), key=lambda a: a.timestamp, reverse=True)

    def count_for(self, slot: int) -> int:
        return sum(1 for _ in self.list_for(slot))
