#!/usr/bin/env python3
"""
Tests for the application controller
"""

import pytest

from sevasync.app import AppController
from sevasync.core.rotation import CapacityMismatchError, rotate
from sevasync.core.state import AssignmentState, MalformedStateError, SyncRecord
from sevasync.core.tasks import DEFAULT_ASSIGNMENTS, GROCERY_PERMANENT, YARD_VOLUNTEER
from sevasync.storage import AssignmentStore, MemoryLocalStore, StorageError
from sevasync.storage.persistence import STORAGE_KEY


class BrokenLocalStore(MemoryLocalStore):
    """Reads work, writes fail"""

    def set(self, key, value):
        raise StorageError("disk full")


class RecordingSync:
    def __init__(self):
        self.pushed = []

    def enqueue_push(self, record):
        self.pushed.append(record)

    def status(self):
        return {"connection": "connected"}


@pytest.fixture
def controller(roster, clock):
    store = AssignmentStore(MemoryLocalStore(), roster, clock)
    ctrl = AppController(store, roster=roster, clock=clock)
    ctrl.load()
    return ctrl


def test_first_load_uses_defaults_with_zero_timestamp(controller):
    assert controller.state == AssignmentState(DEFAULT_ASSIGNMENTS)
    assert controller.snapshot().updated_at_millis == 0
    assert controller.store.load() is None


def test_rotate_saves_and_notifies(controller, clock):
    seen = []
    controller.subscribe(seen.append)

    state = controller.rotate()

    assert seen == [state]
    saved = controller.store.load()
    assert saved.state == state
    assert saved.updated_at_millis == clock.now
    assert saved.last_action == "rotation"
    assert saved.origin_id == controller.origin_id


def test_timestamps_strictly_increase_with_a_stuck_clock(controller):
    controller.rotate()
    first = controller.snapshot().updated_at_millis
    controller.rotate()
    assert controller.snapshot().updated_at_millis == first + 1


def test_commit_queues_push(controller):
    sync = RecordingSync()
    controller.attach_sync(sync)

    controller.rotate()

    assert sync.pushed == [controller.snapshot()]
    assert controller.status()["sync"] == {"connection": "connected"}


def test_reset_restores_defaults(controller):
    controller.rotate()
    controller.reset_to_default()

    assert controller.state == AssignmentState(DEFAULT_ASSIGNMENTS)
    assert controller.snapshot().last_action == "reset"
    assert controller.snapshot().updated_at_millis > 0


def test_clear_storage_and_reset(controller):
    controller.rotate()
    origin = controller.origin_id

    controller.clear_storage_and_reset()

    assert controller.state == AssignmentState(DEFAULT_ASSIGNMENTS)
    assert controller.snapshot().last_action == "clear_storage"
    assert controller.store.origin_id() == origin


def test_load_restores_saved_record(roster, clock):
    store = AssignmentStore(MemoryLocalStore(), roster, clock)
    first = AppController(store, roster=roster, clock=clock)
    first.load()
    rotated = first.rotate()

    second = AppController(store, roster=roster, clock=clock)

    assert second.load() == rotated
    assert second.origin_id == first.origin_id


def test_corrupt_storage_falls_back_to_defaults(roster, clock):
    local = MemoryLocalStore()
    local.set(STORAGE_KEY, b"garbage")
    warnings = []
    ctrl = AppController(
        AssignmentStore(local, roster, clock), roster=roster, clock=clock,
        on_warning=warnings.append,
    )

    assert ctrl.load() == AssignmentState(DEFAULT_ASSIGNMENTS)
    assert len(warnings) == 1


def test_storage_failure_keeps_change_in_memory(roster, clock):
    warnings = []
    ctrl = AppController(
        AssignmentStore(BrokenLocalStore(), roster, clock), roster=roster, clock=clock,
        on_warning=warnings.append,
    )
    ctrl.load()

    state = ctrl.rotate()

    assert ctrl.state == state
    assert any("disk full" in w for w in warnings)


def test_rotation_error_leaves_everything_untouched(small_roster, clock):
    store = AssignmentStore(MemoryLocalStore(), small_roster, clock)
    overfull = (("P1", "P2", "P3"), ("P4",), (GROCERY_PERMANENT, "P5"), (YARD_VOLUNTEER,))
    ctrl = AppController(
        store, roster=small_roster, default_assignments=overfull,
        strict_rotation=True, clock=clock,
    )
    ctrl.load()
    sync = RecordingSync()
    ctrl.attach_sync(sync)
    before = ctrl.snapshot()

    with pytest.raises(CapacityMismatchError):
        ctrl.rotate()

    assert ctrl.snapshot() is before
    assert store.load() is None
    assert sync.pushed == []


def test_apply_remote_replaces_state_wholesale(controller):
    seen = []
    controller.subscribe(seen.append)
    remote_state = rotate(controller.roster, AssignmentState(DEFAULT_ASSIGNMENTS))
    record = SyncRecord(remote_state, 99, "viewer_other", "rotation")

    controller.apply_remote(record)

    assert controller.snapshot() is record
    assert controller.store.load() == record
    assert seen == [remote_state]


def test_failing_listener_does_not_block_others(controller):
    seen = []

    def broken(state):
        raise RuntimeError("boom")

    controller.subscribe(broken)
    controller.subscribe(seen.append)
    controller.rotate()

    assert len(seen) == 1
    controller.unsubscribe(broken)


def test_reset_twice_equals_reset_once(controller):
    controller.rotate()
    once = controller.reset_to_default()
    twice = controller.reset_to_default()
    assert once == twice


def test_remote_breaking_pinned_members_is_refused(controller):
    seen = []
    controller.subscribe(seen.append)
    groups = [list(g) for g in DEFAULT_ASSIGNMENTS]
    groups[controller.roster.grocery_index] = ["Mann Bhai"]
    groups[controller.roster.yard_index] = ["Het Bhai"]
    before = controller.snapshot()

    with pytest.raises(MalformedStateError):
        controller.apply_remote(SyncRecord(AssignmentState(groups), 99, "viewer_other"))

    assert controller.snapshot() is before
    assert controller.store.load() is None
    assert seen == []
