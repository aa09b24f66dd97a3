#!/usr/bin/env python3
"""
Tests for the sync client: reconciliation, echo suppression, record
creation, failure handling and conflict resolution
"""

import asyncio
import time

import pytest

from sevasync.core.state import AssignmentState, SyncRecord
from sevasync.networking import (
    ConnectionState,
    ManualResolution,
    MemoryRemoteStore,
    RecordNotFoundError,
    SyncClient,
    SyncSettings,
)

ROOM = "room1"
ME = "viewer_me"
OTHER = "viewer_other"


def make_state(tag):
    return AssignmentState([[f"{tag}1", f"{tag}2"], [f"{tag}3"], ["Bhagirath Bhai"], ["Volunteer"]])


def make_record(tag, ts, origin, action="rotation"):
    return SyncRecord(make_state(tag), ts, origin, action)


class Device:
    """Stands in for the controller: holds the local record"""

    def __init__(self, remote, record, clock, origin=ME, record_id=ROOM, **kwargs):
        self.record = record
        self.adopted = []
        self.created_ids = []
        self.client = SyncClient(
            remote=remote,
            origin_id=origin,
            local_record=lambda: self.record,
            adopt=self._adopt,
            record_id=record_id,
            clock=clock,
            on_record_id=self.created_ids.append,
            **kwargs,
        )
        self.connections = []
        self.client.add_connection_listener(self.connections.append)

    def _adopt(self, record):
        self.record = record
        self.adopted.append(record)

    def commit(self, record):
        self.record = record
        self.client.state.pending_changes = True
        return record


async def seed(remote, record, record_id=ROOM):
    await remote.write(record_id, record.to_payload())


async def remote_record(remote, record_id=ROOM):
    return SyncRecord.from_payload(await remote.read(record_id))


@pytest.mark.asyncio
async def test_newer_remote_is_adopted_exactly_once(clock):
    remote = MemoryRemoteStore()
    x = make_record("X", 100, OTHER)
    await seed(remote, x)
    device = Device(remote, make_record("Y", 90, ME), clock)

    assert await device.client.poll() is True
    assert await device.client.poll() is False

    assert device.adopted == [x]
    assert device.record == x
    assert device.client.state.connection is ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_older_remote_is_overwritten_by_pending_local(clock):
    remote = MemoryRemoteStore()
    await seed(remote, make_record("Y", 90, OTHER))
    device = Device(remote, make_record("X", 0, ME), clock)
    local = device.commit(make_record("X", 100, ME))

    assert await device.client.poll() is False

    assert device.adopted == []
    assert await remote_record(remote) == local
    assert device.client.state.pending_changes is False


@pytest.mark.asyncio
async def test_own_echo_is_ignored(clock):
    remote = MemoryRemoteStore()
    device = Device(remote, make_record("X", 100, ME), clock)
    await seed(remote, make_record("X", 100, ME))

    assert await device.client.poll() is False

    assert device.adopted == []
    assert device.client.tracker.counters["echoes_suppressed"] == 1


@pytest.mark.asyncio
async def test_echo_of_older_push_repushes_newer_local(clock):
    remote = MemoryRemoteStore()
    await seed(remote, make_record("X", 100, ME))
    device = Device(remote, make_record("X", 100, ME), clock)
    newer = device.commit(make_record("Z", 900, ME))

    assert await device.client.poll() is False

    assert device.adopted == []
    assert await remote_record(remote) == newer


@pytest.mark.asyncio
async def test_missing_record_is_created_from_local(clock):
    remote = MemoryRemoteStore()
    local = make_record("X", 100, ME)
    device = Device(remote, local, clock)

    assert await device.client.poll() is False

    assert await remote_record(remote) == local
    assert device.client.state.connection is ConnectionState.CONNECTED
    assert device.client.state.last_acknowledged_millis == 100


class LosingRaceStore(MemoryRemoteStore):
    """Reports 404 once, but another client creates the record meanwhile"""

    def __init__(self, winner):
        super().__init__()
        self.winner = winner
        self.reads = 0

    async def read(self, record_id):
        self.reads += 1
        if self.reads == 1:
            await self.write(record_id, self.winner.to_payload())
            raise RecordNotFoundError(record_id)
        return await super().read(record_id)


@pytest.mark.asyncio
async def test_first_writer_wins_record_creation(clock):
    winner = make_record("W", 200, OTHER)
    remote = LosingRaceStore(winner)
    device = Device(remote, make_record("D", 0, ME, "default"), clock)

    assert await device.client.poll() is False
    assert await remote_record(remote) == winner

    assert await device.client.poll() is True
    assert device.record == winner


@pytest.mark.asyncio
async def test_record_is_created_when_no_room_is_known(clock):
    remote = MemoryRemoteStore()
    local = make_record("X", 100, ME)
    device = Device(remote, local, clock, record_id=None)

    await device.client.poll()

    assert len(device.created_ids) == 1
    assert device.client.record_id == device.created_ids[0]
    assert await remote_record(remote, device.created_ids[0]) == local


@pytest.mark.asyncio
async def test_push_failure_keeps_change_pending(clock, flaky_remote):
    await seed(flaky_remote, make_record("Y", 50, OTHER))
    device = Device(flaky_remote, make_record("Y", 50, OTHER), clock)
    local = device.commit(make_record("X", 100, ME))
    flaky_remote.failing = True

    assert await device.client.push(local) is False

    assert device.record == local
    assert device.client.state.pending_changes is True
    assert device.client.state.connection is ConnectionState.DISCONNECTED
    assert device.client.state.consecutive_failures == 1

    flaky_remote.failing = False
    await device.client.poll()

    assert await remote_record(flaky_remote) == local
    assert device.client.state.pending_changes is False
    assert device.client.state.connection is ConnectionState.CONNECTED


class InterleavingStore(MemoryRemoteStore):
    """Runs a callback in the middle of the first write"""

    def __init__(self, during_write):
        super().__init__()
        self.during_write = during_write

    async def write(self, record_id, payload):
        if self.during_write:
            callback, self.during_write = self.during_write, None
            callback()
        await super().write(record_id, payload)


@pytest.mark.asyncio
async def test_ack_for_older_push_does_not_clear_newer_change(clock):
    first = make_record("A", 100, ME)
    second = make_record("B", 101, ME)
    holder = {}
    remote = InterleavingStore(lambda: holder["device"].commit(second))
    device = Device(remote, first, clock)
    holder["device"] = device
    device.commit(first)

    await device.client.push(first)
    assert device.client.state.pending_changes is True

    await device.client.push(second)
    assert device.client.state.pending_changes is False

    # A late retry of the first push must not regress the shared record
    await device.client.push(first)
    assert await remote_record(remote) == second


@pytest.mark.asyncio
async def test_malformed_remote_record_is_a_failure(clock):
    remote = MemoryRemoteStore()
    await remote.write(ROOM, {"assignments": "nope", "updatedAtMillis": 5, "originId": OTHER})
    local = make_record("X", 100, ME)
    device = Device(remote, local, clock)

    assert await device.client.poll() is False

    assert device.record == local
    assert device.client.state.connection is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_backoff_grows_then_gives_up(clock, flaky_remote):
    settings = SyncSettings(
        poll_interval=5.0, max_retries=3, backoff_base=1.0, backoff_max=4.0, retry_cooldown=60.0
    )
    device = Device(flaky_remote, make_record("X", 100, ME), clock, settings=settings)
    flaky_remote.failing = True

    assert device.client.next_delay() == 5.0
    delays = []
    for _ in range(3):
        await device.client.poll()
        delays.append(device.client.next_delay())

    assert delays == [1.0, 2.0, 60.0]
    assert device.client.gave_up is True

    device.client.set_online()
    assert device.client.gave_up is False
    assert device.client.next_delay() == 5.0


def test_offline_and_online_transitions(clock):
    device = Device(MemoryRemoteStore(), make_record("X", 100, ME), clock)

    device.client.set_offline()
    assert device.client.state.online is False
    assert device.client.state.connection is ConnectionState.DISCONNECTED

    device.client.set_online()
    assert device.client.state.online is True
    assert device.client.state.connection is ConnectionState.CONNECTING


@pytest.mark.asyncio
async def test_lww_conflict_adopts_newer_remote(clock):
    remote = MemoryRemoteStore()
    theirs = make_record("T", 200, OTHER)
    await seed(remote, theirs)
    device = Device(remote, make_record("M", 50, ME), clock)
    device.commit(make_record("M", 100, ME))

    assert await device.client.poll() is True

    assert device.record == theirs
    assert ConnectionState.CONFLICT in device.connections
    assert device.client.state.connection is ConnectionState.CONNECTED
    assert device.client.state.pending_changes is False
    assert device.client.tracker.counters["conflicts"] == 1


@pytest.mark.asyncio
async def test_manual_conflict_keeps_local_with_async_chooser(clock):
    remote = MemoryRemoteStore()
    await seed(remote, make_record("T", 200, OTHER))
    asked = []

    async def chooser(local, theirs):
        asked.append((local, theirs))
        await asyncio.sleep(0)
        return "local"

    device = Device(
        remote, make_record("M", 50, ME), clock, resolver=ManualResolution(chooser, clock)
    )
    mine = device.commit(make_record("M", 100, ME))

    assert await device.client.poll() is True

    assert len(asked) == 1
    assert device.record.state == mine.state
    assert device.record.updated_at_millis == clock.now
    assert device.record.last_action == "conflict_resolved"
    assert await remote_record(remote) == device.record


@pytest.mark.asyncio
async def test_manual_conflict_can_take_remote(clock):
    remote = MemoryRemoteStore()
    theirs = make_record("T", 200, OTHER)
    await seed(remote, theirs)
    device = Device(
        remote, make_record("M", 50, ME), clock,
        resolver=ManualResolution(lambda local, remote: "remote", clock),
    )
    device.commit(make_record("M", 100, ME))

    assert await device.client.poll() is True
    assert device.record == theirs


@pytest.mark.asyncio
async def test_local_change_during_resolution_defers_decision(clock):
    remote = MemoryRemoteStore()
    await seed(remote, make_record("T", 200, OTHER))
    holder = {}

    async def chooser(local, theirs):
        holder["device"].commit(make_record("N", 300, ME))
        return "remote"

    device = Device(
        remote, make_record("M", 50, ME), clock, resolver=ManualResolution(chooser, clock)
    )
    holder["device"] = device
    device.commit(make_record("M", 100, ME))

    assert await device.client.poll() is False
    assert device.adopted == []
    assert device.record.updated_at_millis == 300


def test_manual_resolution_without_pending_changes_is_lww(clock):
    resolver = ManualResolution(lambda local, remote: pytest.fail("should not ask"), clock)
    local = make_record("M", 100, ME)
    theirs = make_record("T", 200, OTHER)

    assert resolver.resolve(local, theirs, pending=False) is theirs


@pytest.mark.asyncio
async def test_running_client_pushes_queued_changes(clock):
    remote = MemoryRemoteStore()
    settings = SyncSettings(poll_interval=0.05)
    device = Device(remote, make_record("X", 10, ME), clock, settings=settings)

    await device.client.start()
    try:
        record = device.commit(make_record("Z", 20, ME))
        device.client.enqueue_push(record)
        await asyncio.wait_for(device.client.drain(), timeout=2.0)
        await asyncio.sleep(0.1)

        assert await remote_record(remote) == record
        assert device.client.status()["pending_changes"] is False
    finally:
        await device.client.stop()

    assert device.client.state.connection is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_remote_breaking_pinned_members_is_not_adopted(clock, small_roster):
    remote = MemoryRemoteStore()
    await remote.write(
        ROOM,
        {
            "assignments": [["X1", "X2"], ["X3"], ["Mann Bhai"], ["Het Bhai"]],
            "updatedAtMillis": 500,
            "originId": OTHER,
        },
    )
    local = make_record("M", 100, ME)
    device = Device(remote, local, clock, roster=small_roster)

    assert await device.client.poll() is False

    assert device.adopted == []
    assert device.record == local
    assert device.client.state.connection is ConnectionState.DISCONNECTED
    assert device.client.tracker.counters["failures"] == 1


class SlowCreateStore(MemoryRemoteStore):
    """create() takes a while, so other callers can overlap it"""

    def __init__(self):
        super().__init__()
        self.creates = 0

    async def create(self, payload):
        self.creates += 1
        await asyncio.sleep(0.05)
        return await super().create(payload)


@pytest.mark.asyncio
async def test_overlapping_poll_and_push_create_one_record(clock):
    remote = SlowCreateStore()
    device = Device(remote, make_record("X", 100, ME), clock, record_id=None)
    newer = device.commit(make_record("Z", 200, ME))

    await asyncio.gather(device.client.poll(), device.client.push(newer))

    assert remote.creates == 1
    assert device.created_ids == [device.client.record_id]
    assert await remote_record(remote, device.client.record_id) == newer


def test_sync_quality_follows_configured_poll_interval(clock):
    slow = Device(
        MemoryRemoteStore(), make_record("X", 100, ME), clock,
        settings=SyncSettings(poll_interval=60.0),
    )
    fast = Device(MemoryRemoteStore(), make_record("X", 100, ME), clock)
    for device in (slow, fast):
        device.client.tracker.last_sync_time = time.time() - 30

    assert slow.client.status()["stats"]["sync_quality"] == "Good"
    assert fast.client.status()["stats"]["sync_quality"] == "Sync lost"
