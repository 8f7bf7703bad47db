import json

import pytest

from annotation_store import STORAGE_KEY, AnnotationStore, deserialize, serialize
from data_store import JsonFileStore
from models import KIND_LINE, KIND_TEXT, Annotation, Point


def _add_line(store, slot=0, x=10):
    return store.add(slot, KIND_LINE, {"start": Point(x, 10), "end": Point(x + 50, 60)})


def _add_text(store, slot=0, text="note"):
    return store.add(slot, KIND_TEXT, {"text": text, "position": Point(30, 40)})


class FailingBackend:
    def load(self, key):
        raise OSError("disk on fire")

    def save(self, key, value):
        raise OSError("disk full")


class MemoryBackend:
    def __init__(self, data=None):
        self.data = dict(data or {})

    def load(self, key):
        return self.data.get(key)

    def save(self, key, value):
        self.data[key] = value


def test_add_then_list(store):
    ann = _add_line(store)
    assert [a.id for a in store.list_for(0)] == [ann.id]
    assert list(store.list_for(1)) == []
    assert ann.id.startswith("annotation-")
    assert ann.timestamp > 0


def test_add_on_bad_slot(store):
    with pytest.raises(IndexError):
        _add_line(store, slot=4)


def test_add_unknown_kind(store):
    with pytest.raises(ValueError):
        store.add(0, "arrow", {})


def test_ids_are_unique(store):
    ids = {_add_line(store).id for _ in range(50)}
    assert len(ids) == 50


def test_remove(store, session):
    keep = _add_line(store)
    gone = _add_text(store)
    store.remove(gone.id)
    assert [a.id for a in store.list_for(0)] == [keep.id]
    store.remove("does-not-exist")
    assert store.count_for(0) == 1


def test_remove_clears_matching_selection(store, session):
    a = _add_line(store)
    b = _add_line(store)
    store.select(a.id)
    store.remove(b.id)
    assert session.selected_id == a.id
    store.remove(a.id)
    assert session.selected_id is None


def test_select_last_wins(store):
    a = _add_line(store)
    b = _add_text(store)
    store.select(a.id)
    store.select(b.id)
    assert store.selected() == b.id
    store.select(None)
    assert store.selected() is None


def test_newest_first(store):
    store.replace_all([
        Annotation(id="old", kind=KIND_TEXT, slot=1, timestamp=100, text="a", position=Point(0, 0)),
        Annotation(id="new", kind=KIND_TEXT, slot=1, timestamp=300, text="b", position=Point(0, 0)),
        Annotation(id="mid", kind=KIND_TEXT, slot=1, timestamp=200, text="c", position=Point(0, 0)),
    ])
    assert [a.id for a in store.newest_first(1)] == ["new", "mid", "old"]


def test_clear_slot(store):
    _add_line(store, slot=0)
    _add_line(store, slot=2)
    _add_text(store, slot=2)
    assert store.clear_slot(2) == 2
    assert store.count_for(2) == 0
    assert store.count_for(0) == 1


def test_persist_and_reload(session, tmp_data_dir):
    backend = JsonFileStore()
    store = AnnotationStore(session, backend)
    created = [_add_line(store, x=i) for i in range(3)] + [_add_text(store, slot=3, text="x")]

    reloaded = AnnotationStore(session, JsonFileStore())
    assert reloaded.all() == created
    assert (tmp_data_dir / f"{STORAGE_KEY}.json").exists()


def test_stored_format(session):
    backend = MemoryBackend()
    store = AnnotationStore(session, backend)
    line = _add_line(store, slot=1)
    data = json.loads(backend.data[STORAGE_KEY])
    assert data == [{
        "id": line.id,
        "type": "line",
        "imageIndex": 1,
        "timestamp": line.timestamp,
        "start": {"x": 10, "y": 10},
        "end": {"x": 60, "y": 60},
    }]


def test_corrupt_data_starts_empty(session):
    store = AnnotationStore(session, MemoryBackend({STORAGE_KEY: "{not json"}))
    assert store.all() == []


def test_failing_backend_is_not_fatal(session):
    store = AnnotationStore(session, FailingBackend())
    ann = _add_line(store)
    store.remove(ann.id)
    assert store.all() == []


def test_deserialize_skips_malformed_and_duplicates():
    raw = json.dumps([
        {"id": "a", "type": "text", "imageIndex": 0, "timestamp": 1,
         "text": "hi", "position": {"x": 1, "y": 2}},
        {"id": "b", "type": "line", "imageIndex": 0, "timestamp": 1},
        {"id": "c", "type": "circle", "imageIndex": 0},
        {"id": "a", "type": "text", "imageIndex": 1, "timestamp": 1,
         "text": "dup", "position": {"x": 1, "y": 2}},
    ])
    anns = deserialize(raw)
    assert [a.id for a in anns] == ["a"]
    assert anns[0].position == Point(1, 2)


def test_serialize_round_trip():
    anns = [
        Annotation(id="l", kind=KIND_LINE, slot=2, timestamp=5,
                   start=Point(1.5, 2), end=Point(3, 4)),
        Annotation(id="t", kind=KIND_TEXT, slot=0, timestamp=6,
                   text="tumour", position=Point(7, 8)),
    ]
    assert deserialize(serialize(anns)) == anns


def test_remove_reports_whether_anything_was_removed(store):
    ann = _add_line(store)
    assert store.remove("missing") is False
    assert store.remove(ann.id) is True
    assert store.remove(ann.id) is False
