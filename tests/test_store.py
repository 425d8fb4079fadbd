"""Unit tests for the sqlite document store and the live snapshot."""
import pytest

from organ_care.snapshot import LiveSnapshot
from organ_care.store import DocumentStore, StorageError


class TestDocuments:
    def test_set_get_list(self, store):
        store.set("organs", "o1", {"id": "o1", "model": "Allen"})
        store.set("organs", "o2", {"id": "o2", "model": "Rodgers"})
        assert store.get("organs", "o1") == {"id": "o1", "model": "Allen"}
        assert store.get("organs", "missing") is None
        assert [d["id"] for d in store.list("organs")] == ["o1", "o2"]

    def test_set_is_upsert(self, store):
        store.set("organs", "o1", {"id": "o1", "model": "Allen"})
        store.set("organs", "o1", {"id": "o1", "model": "Allen Q-345"})
        assert store.list("organs") == [{"id": "o1", "model": "Allen Q-345"}]

    def test_query_by_equality(self, store):
        store.set("maintenances", "m1", {"id": "m1", "organId": "o1"})
        store.set("maintenances", "m2", {"id": "m2", "organId": "o2"})
        store.set("maintenances", "m3", {"id": "m3", "organId": "o1"})
        assert [d["id"] for d in store.query("maintenances", "organId", "o1")] == ["m1", "m3"]

    def test_delete(self, store):
        store.set("organs", "o1", {"id": "o1"})
        store.delete("organs", "o1")
        assert store.list("organs") == []

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            store.set("churches", "c1", {})

    def test_invalid_query_field(self, store):
        with pytest.raises(ValueError):
            store.query("maintenances", "organId') OR 1=1 --", "x")

    def test_deleted_items_are_immutable(self, store):
        store.set("deletedItems", "d1", {"id": "d1", "reason": "teste"})
        with pytest.raises(StorageError):
            store.set("deletedItems", "d1", {"id": "d1", "reason": "alterado"})
        with pytest.raises(StorageError):
            store.delete("deletedItems", "d1")
        assert store.get("deletedItems", "d1")["reason"] == "teste"


class TestBatch:
    def test_commit_applies_all(self, store):
        store.set("organs", "o1", {"id": "o1"})
        store.batch().set("deletedItems", "d1", {"id": "d1"}).delete("organs", "o1").commit()
        assert store.list("organs") == []
        assert len(store.list("deletedItems")) == 1

    def test_failure_rolls_back_everything(self, store):
        store.set("deletedItems", "d1", {"id": "d1"})
        batch = store.batch()
        batch.set("organs", "o9", {"id": "o9"})
        batch.set("deletedItems", "d1", {"id": "d1", "overwrite": True})
        with pytest.raises(StorageError):
            batch.commit()
        assert store.get("organs", "o9") is None


class TestSubscriptions:
    def test_initial_and_subsequent_pushes(self, store):
        pushes = []
        unsubscribe = store.subscribe("organs", pushes.append)
        assert pushes == [[]]
        store.set("organs", "o1", {"id": "o1"})
        assert pushes[-1] == [{"id": "o1"}]
        unsubscribe()
        store.set("organs", "o2", {"id": "o2"})
        assert len(pushes) == 2

    def test_only_touched_collections_are_pushed(self, store):
        organ_pushes, maint_pushes = [], []
        store.subscribe("organs", organ_pushes.append)
        store.subscribe("maintenances", maint_pushes.append)
        store.set("maintenances", "m1", {"id": "m1"})
        assert len(organ_pushes) == 1
        assert len(maint_pushes) == 2

    def test_failed_batch_pushes_nothing(self, store):
        store.set("deletedItems", "d1", {"id": "d1"})
        pushes = []
        store.subscribe("organs", pushes.append)
        with pytest.raises(StorageError):
            store.batch().set("organs", "o1", {"id": "o1"}).set("deletedItems", "d1", {}).commit()
        assert pushes == [[]]

    def test_read_failure_goes_to_error_callback(self, store, monkeypatch):
        errors = []
        store.subscribe("organs", lambda docs: None, errors.append)

        def broken_list(collection):
            raise StorageError("disk I/O error")

        monkeypatch.setattr(store, "list", broken_list)
        store.set("organs", "o1", {"id": "o1"})
        assert len(errors) == 1
        assert isinstance(errors[0], StorageError)


class TestLiveSnapshot:
    def test_tracks_store(self, store, snapshot):
        assert snapshot.is_loading is False
        store.set("organs", "o1", {"id": "o1", "locationId": "cps-central"})
        assert snapshot.find_organ("o1")["locationId"] == "cps-central"
        store.delete("organs", "o1")
        assert snapshot.organs == []

    def test_subscription_failure_counts_as_loaded(self, tmp_path, monkeypatch):
        store = DocumentStore(tmp_path / "broken.sqlite")
        store.ensure_schema()

        def broken_list(collection):
            raise StorageError("no such table")

        monkeypatch.setattr(store, "list", broken_list)
        snap = LiveSnapshot()
        assert snap.is_loading is True
        snap.attach(store)
        assert snap.is_loading is False
        assert snap.organs == []
        assert snap.maintenances == []
        assert snap.deleted_items == []
