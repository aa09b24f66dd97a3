#!/usr/bin/env python3
"""
Tests for local storage and the assignment store
"""

import json

import pytest

from sevasync.core.state import AssignmentState, SyncRecord
from sevasync.core.tasks import DEFAULT_ASSIGNMENTS
from sevasync.storage import (
    AssignmentStore,
    FileLocalStore,
    MemoryLocalStore,
    StorageError,
)
from sevasync.storage.persistence import LAST_UPDATED_KEY, STORAGE_KEY


@pytest.fixture
def store(roster, clock):
    return AssignmentStore(MemoryLocalStore(), roster, clock)


def default_record(ts=1_700_000_000_000, origin="viewer_a"):
    return SyncRecord(AssignmentState(DEFAULT_ASSIGNMENTS), ts, origin, "rotation")


def test_empty_store_loads_nothing(store):
    assert store.load() is None
    assert store.last_updated() is None


def test_saved_record_loads_back(store):
    record = default_record()
    store.save(record)

    assert store.load() == record
    assert store.last_updated() is not None


def test_invalid_json_raises_storage_error(store):
    store.local_store.set(STORAGE_KEY, b"{not json")
    with pytest.raises(StorageError):
        store.load()


def test_wrong_shape_raises_storage_error(store):
    payload = {"assignments": [["P1"]], "updatedAtMillis": 1, "originId": "x"}
    store.local_store.set(STORAGE_KEY, json.dumps(payload).encode("utf-8"))
    with pytest.raises(StorageError):
        store.load()


def test_clear_keeps_identity(store):
    origin = store.origin_id()
    store.remember_record_id("room1")
    store.save(default_record())

    store.clear()

    assert store.load() is None
    assert store.local_store.get(LAST_UPDATED_KEY) is None
    assert store.origin_id() == origin
    assert store.record_id() == "room1"


def test_origin_id_is_generated_once(store, clock):
    first = store.origin_id()
    clock.advance(5000)

    assert first.startswith(f"viewer_{clock.now - 5000}_")
    assert store.origin_id() == first


def test_file_store_survives_restart(tmp_path, roster):
    record = default_record()
    AssignmentStore(FileLocalStore(str(tmp_path)), roster).save(record)

    reopened = AssignmentStore(FileLocalStore(str(tmp_path)), roster)

    assert reopened.load() == record
    assert not list(tmp_path.glob("*.tmp"))


def test_file_store_remove_missing_key_is_fine(tmp_path):
    local = FileLocalStore(str(tmp_path))
    local.remove("nothing")
    assert local.get("nothing") is None


def test_file_store_rejects_unsafe_keys(tmp_path):
    local = FileLocalStore(str(tmp_path))
    with pytest.raises(StorageError):
        local.set("../escape", b"x")


def test_file_store_write_failure_is_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    local = FileLocalStore(str(blocker / "sub"))
    with pytest.raises(StorageError):
        local.set("key", b"value")
