#!/usr/bin/env python3
"""
Application controller for SevaSync
Owns the current assignment record and sequences every change:
rotate/reset -> save locally -> notify observers -> queue a push.
"""

from typing import Any, Callable, Dict, List, Optional

from sevasync.core.identity import SystemClock, generate_origin_id
from sevasync.core.logger import log_error, log_info, log_warning
from sevasync.core.rotation import rotate
from sevasync.core.state import AssignmentState, SyncRecord
from sevasync.core.tasks import DEFAULT_ASSIGNMENTS, Roster
from sevasync.storage import AssignmentStore, StorageError


StateListener = Callable[[AssignmentState], None]


class AppController:
    """Single owner of the current AssignmentState"""

    def __init__(
        self,
        store: AssignmentStore,
        roster: Optional[Roster] = None,
        default_assignments=DEFAULT_ASSIGNMENTS,
        strict_rotation: bool = False,
        clock: Optional[SystemClock] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.roster = roster or store.roster
        self.default_state = AssignmentState(default_assignments).check_pinned(self.roster)
        self.strict_rotation = strict_rotation
        self.clock = clock or SystemClock()
        self.sync_client = None

        self._listeners: List[StateListener] = []
        self.on_warning = on_warning
        self.origin_id = self._load_origin_id()
        self._record: SyncRecord = SyncRecord(
            state=self.default_state,
            updated_at_millis=0,
            origin_id=self.origin_id,
            last_action="default",
        )

    def _load_origin_id(self) -> str:
        try:
            return self.store.origin_id()
        except StorageError as e:
            self._warn(f"Could not read device id, using a temporary one: {e}")
            return generate_origin_id(self.clock)

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        state = self._record.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                log_error(f"State listener failed: {e}", component="controller")

    def _warn(self, message: str) -> None:
        log_warning(message, component="controller")
        if self.on_warning:
            self.on_warning(message)

    @property
    def state(self) -> AssignmentState:
        return self._record.state

    def snapshot(self) -> SyncRecord:
        """Current record; records are immutable so sharing is safe"""
        return self._record

    def current_record(self) -> Optional[SyncRecord]:
        """Provider for the sync client"""
        return self._record

    def attach_sync(self, sync_client) -> None:
        self.sync_client = sync_client

    def load(self) -> AssignmentState:
        """Load saved assignments, falling back to the defaults"""
        try:
            record = self.store.load()
        except StorageError as e:
            self._warn(f"Error loading saved data, using defaults: {e}")
            record = None

        if record is None:
            # Timestamp 0: any shared record seen later is newer than this
            log_info("Using default assignments", component="controller")
            record = SyncRecord(
                state=self.default_state,
                updated_at_millis=0,
                origin_id=self.origin_id,
                last_action="default",
            )
        self._record = record
        self._notify()
        return record.state

    def _next_timestamp(self) -> int:
        # Strictly increasing even if the wall clock stalls or steps back
        return max(self.clock.now_millis(), self._record.updated_at_millis + 1)

    def _save(self, record: SyncRecord) -> None:
        try:
            self.store.save(record)
        except StorageError as e:
            self._warn(f"Error saving data, keeping changes in memory only: {e}")

    def _commit(self, state: AssignmentState, action: str) -> SyncRecord:
        record = SyncRecord(
            state=state,
            updated_at_millis=self._next_timestamp(),
            origin_id=self.origin_id,
            last_action=action,
        )
        self._record = record
        self._save(record)
        self._notify()
        if self.sync_client is not None:
            self.sync_client.enqueue_push(record)
        log_info(f"Committed {action} at {record.updated_at_millis}", component="controller")
        return record

    def rotate(self) -> AssignmentState:
        """Rotate everyone one step; errors leave state and storage untouched"""
        next_state = rotate(self.roster, self._record.state, strict=self.strict_rotation)
        return self._commit(next_state, "rotation").state

    def reset_to_default(self) -> AssignmentState:
        return self._commit(self.default_state, "reset").state

    def clear_storage_and_reset(self) -> AssignmentState:
        """Drop saved assignments, then start over from the defaults"""
        try:
            self.store.clear()
        except StorageError as e:
            self._warn(f"Error clearing storage: {e}")
        return self._commit(self.default_state, "clear_storage").state

    def apply_remote(self, record: SyncRecord) -> AssignmentState:
        """Adopt a record chosen by the sync client, wholesale"""
        record.state.check_pinned(self.roster)
        self._record = record
        self._save(record)
        self._notify()
        return record.state

    def status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "origin_id": self.origin_id,
            "updated_at": self._record.updated_at_millis,
            "last_action": self._record.last_action,
            "last_modified_by": self._record.origin_id,
            "headcount": self._record.state.headcount(),
        }
        if self.sync_client is not None:
            status["sync"] = self.sync_client.status()
        return status

