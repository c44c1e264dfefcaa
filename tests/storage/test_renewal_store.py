"""Tests for certwright.storage.renewal_store."""

from __future__ import annotations

import json

import pytest

from certwright.core.errors import InterruptedWriteError, PersistenceError
from certwright.models import DnsIdentifier, OrderResult, Renewal, Target, TargetPart, ValidationOptions
from certwright.storage.renewal_store import RenewalStore


def _renewal(renewal_id="r1", name="www.example.com"):
    return Renewal(
        id=renewal_id,
        target=Target(friendly_name=None, common_name=None, parts=[TargetPart([DnsIdentifier(name)])]),
        validation=ValidationOptions("filesystem"),
    )


@pytest.fixture()
def store(tmp_path):
    return RenewalStore(tmp_path / "renewals")


class TestRenewalStore:
    def test_save_and_load(self, store):
        renewal = _renewal()
        renewal.record([OrderResult(name="main", success=True, thumbprint="ab")])
        path = store.save(renewal)

        assert path.name == "r1.renewal.json"
        loaded = store.load("r1")
        assert loaded.id == "r1"
        assert loaded.target.display_name == "www.example.com"
        assert loaded.history[0].order_results[0].thumbprint == "ab"

    def test_saved_document_is_json(self, store):
        path = store.save(_renewal())
        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["id"] == "r1"

    def test_load_missing(self, store):
        assert store.load("absent") is None

    def test_load_corrupt(self, store):
        store.directory.mkdir(parents=True)
        (store.directory / "bad.renewal.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError, match="Unable to read renewal"):
            store.load("bad")

    @pytest.mark.parametrize("renewal_id", ["../escape", "a b", "", "a/b"])
    def test_invalid_id(self, store, renewal_id):
        with pytest.raises(PersistenceError, match="Invalid renewal id"):
            store.load(renewal_id)

    def test_iter_skips_unreadable(self, store):
        store.save(_renewal("a", "a.example.com"))
        store.save(_renewal("c", "c.example.com"))
        (store.directory / "b.renewal.json").write_text("[]", encoding="utf-8")

        assert [r.id for r in store.list()] == ["a", "c"]

    def test_iter_without_directory(self, store):
        assert store.list() == []

    def test_delete(self, store):
        store.save(_renewal())
        assert store.delete("r1") is True
        assert store.load("r1") is None
        assert store.delete("r1") is False

    def test_save_refused_after_interruption(self, store):
        store.save(_renewal())
        (store.directory / "r1.renewal.json.new").write_text("partial", encoding="utf-8")
        with pytest.raises(InterruptedWriteError):
            store.save(_renewal())

    def test_unwritable_directory(self, tmp_path):
        (tmp_path / "blocker").write_text("not a directory", encoding="utf-8")
        store = RenewalStore(tmp_path / "blocker" / "renewals")
        with pytest.raises(PersistenceError, match="Unable to create renewal directory"):
            store.save(_renewal())
