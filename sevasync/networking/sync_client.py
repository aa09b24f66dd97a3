#!/usr/bin/env python3
"""
Sync client for SevaSync
Keeps this device's assignments eventually consistent with the shared
remote record by polling it and pushing local changes.

Rules:
  - the remote record is replaced wholesale, never merged
  - the newer timestamp wins (last-write-wins), decided by a resolver
  - a poll that reads back this client's own recent push is an echo
    and changes nothing
  - every decision is made against the local record as it is *after* the
    network call returns, so a rotation made meanwhile is never
    overwritten by older data
  - transport failures become state transitions, never exceptions for
    the caller
"""

import asyncio
import dataclasses
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sevasync.core.identity import SystemClock
from sevasync.core.logger import log_debug, log_error, log_info, log_warning
from sevasync.core.state import MalformedRecordError, SyncRecord
from sevasync.core.system_state import SyncTracker
from sevasync.core.tasks import Roster
from .conflict import ConflictResolver, LastWriteWins
from .remote import RecordNotFoundError, RemoteStore, RemoteStoreError


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CONFLICT = "conflict"


@dataclass
class SyncSettings:
    """Timing knobs for polling and retry"""

    poll_interval: float = 5.0
    echo_tolerance_ms: int = 2000
    max_retries: int = 5
    backoff_base: float = 1.0
    backoff_max: float = 30.0
    retry_cooldown: float = 60.0


@dataclass
class SyncState:
    """What this client knows about its link to the remote record"""

    connection: ConnectionState = ConnectionState.DISCONNECTED
    pending_changes: bool = False
    consecutive_failures: int = 0
    last_acknowledged_millis: Optional[int] = None
    online: bool = True
    gave_up_at: Optional[float] = None


class SyncClient:
    """Polls and pushes the shared assignment record"""

    def __init__(
        self,
        remote: RemoteStore,
        origin_id: str,
        local_record: Callable[[], Optional[SyncRecord]],
        adopt: Callable[[SyncRecord], None],
        record_id: Optional[str] = None,
        roster: Optional[Roster] = None,
        resolver: Optional[ConflictResolver] = None,
        settings: Optional[SyncSettings] = None,
        tracker: Optional[SyncTracker] = None,
        clock: Optional[SystemClock] = None,
        on_record_id: Optional[Callable[[str], None]] = None,
    ):
        self.remote = remote
        self.origin_id = origin_id
        self.local_record = local_record
        self.adopt = adopt
        self.record_id = record_id
        self.roster = roster
        self.resolver = resolver or LastWriteWins()
        self.settings = settings or SyncSettings()
        self.tracker = tracker or SyncTracker(poll_interval=self.settings.poll_interval)
        self.clock = clock or SystemClock()
        self.on_record_id = on_record_id

        self.state = SyncState()
        self._listeners: List[Callable[[ConnectionState], None]] = []
        self._queue: "asyncio.Queue[SyncRecord]" = asyncio.Queue()
        self._write_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._running = False

    def add_connection_listener(self, listener: Callable[[ConnectionState], None]) -> None:
        self._listeners.append(listener)

    def _set_connection(self, connection: ConnectionState) -> None:
        if connection is self.state.connection:
            return
        log_info(
            f"Sync {self.state.connection.value} -> {connection.value}", component="sync"
        )
        self.state.connection = connection
        for listener in list(self._listeners):
            try:
                listener(connection)
            except Exception as e:
                log_error(f"Connection listener failed: {e}", component="sync")

    def _mark_success(self) -> None:
        self.state.consecutive_failures = 0
        self.state.gave_up_at = None
        if self.state.connection is not ConnectionState.CONFLICT:
            self._set_connection(ConnectionState.CONNECTED)

    def _mark_failure(self, error: Exception) -> None:
        self.state.consecutive_failures += 1
        self.tracker.record_failure(str(error))
        log_warning(
            f"Remote store failure #{self.state.consecutive_failures}: {error}",
            component="sync",
        )
        self._set_connection(ConnectionState.DISCONNECTED)
        if (
            self.state.consecutive_failures >= self.settings.max_retries
            and self.state.gave_up_at is None
        ):
            self.state.gave_up_at = time.monotonic()
            log_error(
                f"Giving up after {self.state.consecutive_failures} failures, "
                f"local-only for {self.settings.retry_cooldown:.0f}s",
                component="sync",
            )

    def _reset_backoff(self) -> None:
        self.state.consecutive_failures = 0
        self.state.gave_up_at = None

    @property
    def gave_up(self) -> bool:
        return self.state.gave_up_at is not None

    def next_delay(self) -> float:
        """Seconds until the next poll attempt"""
        failures = self.state.consecutive_failures
        if failures == 0:
            return self.settings.poll_interval
        if self.gave_up:
            return self.settings.retry_cooldown
        return min(
            self.settings.backoff_base * (2 ** (failures - 1)), self.settings.backoff_max
        )

    def _acknowledge(self, record: SyncRecord) -> None:
        ack = self.state.last_acknowledged_millis
        if ack is None or record.updated_at_millis > ack:
            self.state.last_acknowledged_millis = record.updated_at_millis
        self.tracker.record_push(record.updated_at_millis)

        # Only clear pending if nothing newer was committed meanwhile
        current = self.local_record()
        if current is not None and current.updated_at_millis == record.updated_at_millis:
            self.state.pending_changes = False

    async def _ensure_record_id(self) -> bool:
        if self.record_id:
            return True
        async with self._write_lock:
            # Another caller may have created the record while we waited
            if self.record_id:
                return True
            local = self.local_record()
            if local is None:
                return False
            try:
                record_id = await self.remote.create(local.to_payload())
            except RemoteStoreError as e:
                self._mark_failure(e)
                return False

            self.record_id = record_id
            self._acknowledge(local)

        log_info(f"Created shared record {record_id}", component="sync")
        self._mark_success()
        if self.on_record_id:
            self.on_record_id(record_id)
        return True

    async def _write(self, record: SyncRecord) -> None:
        async with self._write_lock:
            ack = self.state.last_acknowledged_millis
            if ack is not None and record.updated_at_millis < ack:
                # A newer record from this client already landed
                log_debug(
                    f"Skipping superseded push {record.updated_at_millis} < {ack}",
                    component="sync",
                )
                return
            await self.remote.write(self.record_id, record.to_payload())
            self._acknowledge(record)

    async def push(self, record: SyncRecord) -> bool:
        """Write a record through to the remote store; False on failure"""
        if not await self._ensure_record_id():
            self.state.pending_changes = True
            return False
        try:
            await self._write(record)
        except RemoteStoreError as e:
            self.state.pending_changes = True
            self._mark_failure(e)
            return False
        self._mark_success()
        log_debug(f"Pushed record {record.updated_at_millis}", component="sync")
        return True

    def enqueue_push(self, record: SyncRecord) -> None:
        """Queue a local change; pushes go out in the order they were queued"""
        self.state.pending_changes = True
        self._queue.put_nowait(record)

    async def _create_remote(self) -> bool:
        local = self.local_record()
        if local is None:
            self._mark_success()
            return False
        try:
            async with self._write_lock:
                created = await self.remote.create_if_absent(
                    self.record_id, local.to_payload()
                )
                if created:
                    self._acknowledge(local)
        except RemoteStoreError as e:
            self._mark_failure(e)
            return False

        self._mark_success()
        if created:
            log_info(f"Created missing record {self.record_id}", component="sync")
        else:
            log_info(
                f"Record {self.record_id} was created by another client first",
                component="sync",
            )
        return False

    async def poll(self) -> bool:
        """Read the remote record and reconcile; True if local state changed"""
        if not await self._ensure_record_id():
            return False
        try:
            payload = await self.remote.read(self.record_id)
        except RecordNotFoundError:
            return await self._create_remote()
        except RemoteStoreError as e:
            self._mark_failure(e)
            return False

        try:
            remote = SyncRecord.from_payload(payload, self.roster)
        except MalformedRecordError as e:
            self._mark_failure(RemoteStoreError(f"Malformed remote record: {e}"))
            return False

        self._mark_success()
        self.tracker.record_poll()
        return await self._reconcile(remote)

    async def _reconcile(self, remote: SyncRecord) -> bool:
        # Read local again: a rotation may have landed while we awaited
        local = self.local_record()
        if local is None:
            self._adopt(remote)
            return True

        if remote.origin_id == self.origin_id and (
            abs(remote.updated_at_millis - local.updated_at_millis)
            <= self.settings.echo_tolerance_ms
        ):
            self.tracker.record_echo()
            if self.state.pending_changes and local.updated_at_millis > remote.updated_at_millis:
                await self._repush(local)
            return False

        if (
            remote.updated_at_millis == local.updated_at_millis
            and remote.origin_id == local.origin_id
        ):
            return False

        # Unpushed local changes about to be overtaken by someone else's
        in_conflict = (
            self.state.pending_changes
            and remote.origin_id != self.origin_id
            and remote.updated_at_millis > local.updated_at_millis
        )
        if in_conflict:
            self._set_connection(ConnectionState.CONFLICT)
            self.tracker.record_conflict(
                f"local {local.updated_at_millis} vs {remote.origin_id}@{remote.updated_at_millis}"
            )
        try:
            winner = await self.resolver.resolve_async(local, remote, in_conflict)
        finally:
            if in_conflict:
                self._set_connection(ConnectionState.CONNECTED)

        if self.local_record() is not local:
            # Local state moved while the resolver waited; next poll decides
            log_info("Local state changed during resolution, deferring", component="sync")
            return False

        if winner is remote:
            self._adopt(remote)
            return True

        if winner is local:
            if self.state.pending_changes and local.updated_at_millis > remote.updated_at_millis:
                await self._repush(local)
            return False

        # Resolver produced a fresh record (e.g. re-stamped local copy)
        restamped = dataclasses.replace(winner, origin_id=self.origin_id)
        self._adopt(restamped)
        self.state.pending_changes = True
        await self._repush(restamped)
        return True

    def _adopt(self, record: SyncRecord) -> None:
        self.adopt(record)
        self.state.pending_changes = False
        self.tracker.record_adopted(record.origin_id, record.updated_at_millis)
        log_info(
            f"Adopted record from {record.origin_id} ({record.updated_at_millis})",
            component="sync",
        )

    async def _repush(self, record: SyncRecord) -> None:
        log_info(f"Re-pushing pending record {record.updated_at_millis}", component="sync")
        await self.push(record)

    async def _poll_loop(self) -> None:
        while self._running:
            if self.state.online:
                if self.gave_up:
                    elapsed = time.monotonic() - self.state.gave_up_at
                    if elapsed >= self.settings.retry_cooldown:
                        log_info("Retry cooldown over, reconnecting", component="sync")
                        self._reset_backoff()
                        self._set_connection(ConnectionState.CONNECTING)
                if not self.gave_up:
                    try:
                        await self.poll()
                    except Exception as e:
                        # Keep polling whatever a tick throws
                        log_error(f"Unexpected sync error: {e}", component="sync")
                        self._mark_failure(e)

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.next_delay())
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

    async def _push_worker(self) -> None:
        while self._running:
            record = await self._queue.get()
            try:
                if self.state.online and not self.gave_up:
                    await self.push(record)
            except Exception as e:
                log_error(f"Unexpected push error: {e}", component="sync")
                self.state.pending_changes = True
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        """Start polling and the push worker on the running loop"""
        if self._running:
            return
        self._running = True
        self._set_connection(ConnectionState.CONNECTING)
        self._tasks = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._push_worker()),
        ]
        log_info(
            f"Sync started (record={self.record_id}, origin={self.origin_id}, "
            f"every {self.settings.poll_interval}s)",
            component="sync",
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.remote.close()
        self._set_connection(ConnectionState.DISCONNECTED)
        log_info("Sync stopped", component="sync")

    def set_offline(self) -> None:
        """Transport went away; stay local-only until set_online()"""
        self.state.online = False
        self._set_connection(ConnectionState.DISCONNECTED)

    def set_online(self) -> None:
        """Transport is back; retry straight away"""
        self.state.online = True
        self._reset_backoff()
        self._set_connection(ConnectionState.CONNECTING)
        self._wake.set()

    async def force_sync(self) -> bool:
        """Manual sync: push anything pending, then poll"""
        self._reset_backoff()
        self._set_connection(ConnectionState.CONNECTING)
        if self.state.pending_changes:
            local = self.local_record()
            if local is not None:
                await self.push(local)
        changed = await self.poll()
        self._wake.set()
        return changed

    async def drain(self) -> None:
        """Wait until every queued push has been attempted"""
        await self._queue.join()

    def status(self) -> Dict[str, Any]:
        return {
            "connection": self.state.connection.value,
            "online": self.state.online,
            "pending_changes": self.state.pending_changes,
            "consecutive_failures": self.state.consecutive_failures,
            "gave_up": self.gave_up,
            "record_id": self.record_id,
            "origin_id": self.origin_id,
            "last_acknowledged": self.state.last_acknowledged_millis,
            "stats": self.tracker.get_stats(),
        }
