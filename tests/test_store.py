from __future__ import annotations

import json
import logging

import pytest

from realities.memory.backends import InMemoryBackend, PersistenceError, SQLiteBackend
from realities.memory.schema import Profile, RealityStatus
from realities.memory.store import (
    ACTIVE_REALITY_KEY,
    PROFILE_KEY,
    REALITIES_KEY,
    CorruptLineage,
    RealityStore,
    StoreEvent,
)


def test_save_and_lookup_roundtrip(tmp_path, make_document) -> None:
    db_path = tmp_path / "realities.sqlite"
    with RealityStore(SQLiteBackend(db_path)) as store:
        saved = store.save("Data Science", make_document(), Profile(name="Asha"), "fork into data")

        assert saved.id.startswith("reality_")
        assert store.get_active_id() == saved.id
        assert store.get_by_id("missing") is None

    with RealityStore(SQLiteBackend(db_path)) as reopened:
        loaded = reopened.get_by_id(saved.id)
        assert loaded == saved
        assert loaded.profile.name == "Asha"
        assert reopened.get_active() == saved


def test_delete_keeps_order_and_clears_active_pointer(make_document) -> None:
    store = RealityStore()
    first = store.save("one", make_document("one"), Profile(), "p1")
    second = store.save("two", make_document("two"), Profile(), "p2")
    third = store.save("three", make_document("three"), Profile(), "p3")

    store.set_active_id(second.id)
    store.delete(second.id)

    assert [artifact.id for artifact in store.get_all()] == [first.id, third.id]
    assert store.get_active_id() is None

    store.delete("unknown")
    assert len(store.get_all()) == 2


def test_deleting_parent_leaves_children_as_roots(make_document) -> None:
    store = RealityStore()
    root = store.save("root", make_document("root"), Profile(), "p")
    child = store.save("child", make_document("child"), Profile(), "p", parent_id=root.id)

    store.delete(root.id)

    assert store.get_by_id(child.id).parent_id == root.id
    assert store.get_parent(store.get_by_id(child.id)) is None
    assert [artifact.id for artifact in store.get_roots()] == [child.id]
    assert [artifact.id for artifact in store.get_ancestry_chain(child.id)] == [child.id]


def test_lineage_queries(make_document) -> None:
    store = RealityStore()
    root = store.save("root", make_document("root"), Profile(), "p")
    child = store.save("child", make_document("child"), Profile(), "p", parent_id=root.id)
    grandchild = store.save("grand", make_document("grand"), Profile(), "p", parent_id=child.id)
    sibling = store.save("sibling", make_document("sibling"), Profile(), "p", parent_id=root.id)

    chain = store.get_ancestry_chain(grandchild.id)
    assert [artifact.id for artifact in chain] == [root.id, child.id, grandchild.id]
    assert store.get_ancestry_chain("missing") == []
    assert [a.id for a in store.get_children(root.id)] == [child.id, sibling.id]
    assert store.get_parent(grandchild) == child

    (tree,) = store.build_tree()
    assert tree.artifact.id == root.id
    assert [node.artifact.id for node in tree.children] == [child.id, sibling.id]
    assert tree.children[0].children[0].artifact.id == grandchild.id


def test_cycle_in_stored_lineage_is_reported(make_document) -> None:
    store = RealityStore()
    a = store.save("a", make_document("a"), Profile(), "p")
    b = store.save("b", make_document("b"), Profile(), "p", parent_id=a.id)

    payload = json.loads(store.backend.get(REALITIES_KEY))
    payload[0]["parentId"] = b.id
    store.backend.set(REALITIES_KEY, json.dumps(payload))

    with pytest.raises(CorruptLineage):
        store.get_ancestry_chain(b.id)
    with pytest.raises(CorruptLineage):
        store.save("c", make_document("c"), Profile(), "p", parent_id=b.id)
    assert store.build_tree() == []


def test_failed_write_leaves_store_unchanged(make_document) -> None:
    store = RealityStore(InMemoryBackend(capacity_bytes=200), capacity_bytes=200)

    with pytest.raises(PersistenceError):
        store.save("big", make_document("big"), Profile(), "p")

    assert store.get_all() == []
    assert store.get_active_id() is None


def test_active_write_failure_restores_previous_list(make_document) -> None:
    class FlakyBackend(InMemoryBackend):
        def set(self, key: str, value: str) -> None:
            if key == ACTIVE_REALITY_KEY:
                raise PersistenceError("quota")
            super().set(key, value)

    store = RealityStore(FlakyBackend())
    with pytest.raises(PersistenceError):
        store.save("x", make_document("x"), Profile(), "p")
    assert store.backend.get(REALITIES_KEY) is None


def test_corrupt_payload_raises_persistence_error() -> None:
    backend = InMemoryBackend()
    backend.set(REALITIES_KEY, "{not json")
    store = RealityStore(backend)
    with pytest.raises(PersistenceError):
        store.get_all()


def test_notify_receives_every_mutation(make_document) -> None:
    events: list[StoreEvent] = []
    store = RealityStore(notify=events.append)

    saved = store.save("one", make_document("one"), Profile(), "p")
    store.delete(saved.id)
    store.save_profile(Profile(name="Ravi"))
    store.clear_all()

    assert [event.kind for event in events] == ["saved", "deleted", "profile", "cleared"]
    assert events[0].artifact_id == saved.id


def test_saved_artifact_is_detached_from_caller_objects(make_document) -> None:
    store = RealityStore()
    document = make_document("A")
    profile = Profile(name="Asha")

    saved = store.save("A", document, profile, "p")
    document.status = RealityStatus.BREACH_DETECTED
    document.timeline_phases[0].duration = "40 months"
    profile.name = "Someone else"

    assert saved.data.status == RealityStatus.STABLE
    assert saved.data.timeline_phases[0].duration == "6 months"
    assert saved.profile.name == "Asha"
    assert store.get_by_id(saved.id) == saved


def test_failing_listener_does_not_fail_committed_writes(make_document, caplog) -> None:
    def listener(event: StoreEvent) -> None:
        raise RuntimeError("listener down")

    store = RealityStore(notify=listener)
    with caplog.at_level(logging.ERROR, logger="realities.memory.store"):
        saved = store.save("A", make_document("A"), Profile(), "p")

    assert [artifact.id for artifact in store.get_all()] == [saved.id]
    assert "listener failed on saved event" in caplog.text


def test_reading_default_profile_emits_no_event() -> None:
    events: list[StoreEvent] = []
    store = RealityStore(notify=events.append)

    store.get_profile()

    assert events == []
    assert store.backend.get(PROFILE_KEY) is not None


def test_reading_default_profile_at_capacity_still_returns_it() -> None:
    store = RealityStore(InMemoryBackend(capacity_bytes=10), capacity_bytes=10)

    profile = store.get_profile()

    assert profile.education.university == "Christ University"
    assert store.backend.get(PROFILE_KEY) is None


def test_profile_defaults_and_persists() -> None:
    store = RealityStore()
    profile = store.get_profile()
    assert profile.education.university == "Christ University"

    store.save_profile(profile.model_copy(update={"name": "Meera"}))
    assert store.get_profile().name == "Meera"


def test_storage_info_reports_usage(make_document) -> None:
    store = RealityStore(capacity_bytes=1_000_000)
    assert store.storage_info().used == 0

    store.save("one", make_document("one"), Profile(), "p")
    info = store.storage_info()
    assert info.total == 1_000_000
    assert 0 < info.used < info.total
    assert info.percentage == pytest.approx(info.used / info.total * 100)


def test_sqlite_backend_falls_back_when_path_unwritable(tmp_path, monkeypatch) -> None:
    blocked = tmp_path / "blocked" / "realities.sqlite"
    original = SQLiteBackend._is_writable

    def fake_is_writable(path):
        if path == blocked.resolve():
            return False
        return original(path)

    monkeypatch.setattr(SQLiteBackend, "_is_writable", staticmethod(fake_is_writable))
    monkeypatch.setattr("tempfile.gettempdir", lambda: str(tmp_path / "tmp"))

    with SQLiteBackend(blocked) as backend:
        assert backend.db_path != blocked.resolve()
        assert (tmp_path / "tmp") in backend.db_path.parents
        backend.set("k", "v")
        assert backend.get("k") == "v"


def test_sqlite_backend_enforces_capacity(tmp_path) -> None:
    with SQLiteBackend(tmp_path / "kv.sqlite", capacity_bytes=10) as backend:
        backend.set("a", "12345")
        with pytest.raises(PersistenceError):
            backend.set("b", "123456789")
        assert backend.get("b") is None
        backend.set("a", "123456789")
        assert backend.size() == 10
