#!/usr/bin/env python3
"""
Assignment persistence for SevaSync
Saves the current sync record, the device's origin id and the shared
record id on top of a LocalStore
"""

import json
import time
from typing import Optional

from sevasync.core.identity import SystemClock, generate_origin_id
from sevasync.core.logger import log_info, log_warning
from sevasync.core.state import MalformedRecordError, SyncRecord
from sevasync.core.tasks import Roster
from .local import LocalStore, StorageError


STORAGE_KEY = "sevaAppData"
LAST_UPDATED_KEY = "sevaAppLastUpdated"
VIEWER_ID_KEY = "sevaAppViewerId"
ROOM_ID_KEY = "sevaAppRoomId"


class AssignmentStore:
    """Reads and writes the persisted assignment record"""

    def __init__(self, local_store: LocalStore, roster: Roster, clock=None):
        self.local_store = local_store
        self.roster = roster
        self.clock = clock or SystemClock()

    def load(self) -> Optional[SyncRecord]:
        """Return the saved record, None if nothing was saved yet"""
        raw = self.local_store.get(STORAGE_KEY)
        if raw is None:
            return None
        try:
            payload = json.loads(raw.decode("utf-8"))
            record = SyncRecord.from_payload(payload, self.roster)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Saved assignments are not valid JSON: {e}") from e
        except MalformedRecordError as e:
            raise StorageError(f"Saved assignments are unusable: {e}") from e
        log_info(
            f"Assignments loaded from storage ({record.updated_at_millis})",
            component="storage",
        )
        return record

    def save(self, record: SyncRecord) -> None:
        try:
            data = json.dumps(record.to_payload()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"Could not serialize assignments: {e}") from e
        self.local_store.set(STORAGE_KEY, data)
        self.local_store.set(
            LAST_UPDATED_KEY,
            time.strftime(
                "%Y-%m-%d %H:%M:%S",
                time.localtime(record.updated_at_millis / 1000),
            ).encode("utf-8"),
        )

    def last_updated(self) -> Optional[str]:
        raw = self.local_store.get(LAST_UPDATED_KEY)
        return raw.decode("utf-8", errors="replace") if raw else None

    def clear(self) -> None:
        """Forget saved assignments; identity and room are kept"""
        self.local_store.remove(STORAGE_KEY)
        self.local_store.remove(LAST_UPDATED_KEY)
        log_info("Cleared saved assignments", component="storage")

    def origin_id(self) -> str:
        """This device's origin id, generated and saved on first use"""
        raw = self.local_store.get(VIEWER_ID_KEY)
        if raw:
            return raw.decode("utf-8")
        origin_id = generate_origin_id(self.clock)
        try:
            self.local_store.set(VIEWER_ID_KEY, origin_id.encode("utf-8"))
        except StorageError as e:
            log_warning(
                f"Could not persist origin id, using it for this session: {e}",
                component="storage",
            )
        return origin_id

    def record_id(self) -> Optional[str]:
        raw = self.local_store.get(ROOM_ID_KEY)
        return raw.decode("utf-8") if raw else None

    def remember_record_id(self, record_id: str) -> None:
        self.local_store.set(ROOM_ID_KEY, record_id.encode("utf-8"))
