#!/usr/bin/env python3
"""
Conflict resolution strategies for SevaSync
A resolver picks which record survives when the local and remote copies
differ. Last-write-wins is the default; manual resolution hands genuine
conflicts (local changes not yet pushed) to a chooser callback.
"""

import inspect
from typing import Awaitable, Callable, Optional, Union

from sevasync.core.identity import SystemClock
from sevasync.core.logger import log_info
from sevasync.core.state import SyncRecord


class ConflictResolver:
    """Base resolver - to be implemented by subclasses"""

    name = "base"

    def resolve(self, local: SyncRecord, remote: SyncRecord, pending: bool) -> SyncRecord:
        """
        Return the record that should be current.

        Returning ``remote`` adopts it, returning ``local`` keeps it, and
        any other record is adopted locally and pushed.
        """
        raise NotImplementedError("Subclasses must implement resolve")

    async def resolve_async(
        self, local: SyncRecord, remote: SyncRecord, pending: bool
    ) -> SyncRecord:
        """Awaitable variant used by the sync loop"""
        return self.resolve(local, remote, pending)


class LastWriteWins(ConflictResolver):
    """Newer timestamp wins; ties keep the local copy"""

    name = "lww"

    def resolve(self, local: SyncRecord, remote: SyncRecord, pending: bool) -> SyncRecord:
        if remote.updated_at_millis > local.updated_at_millis:
            return remote
        return local


Chooser = Callable[[SyncRecord, SyncRecord], Union[str, Awaitable[str]]]


class ManualResolution(ConflictResolver):
    """
    Ask a chooser on real conflicts.

    The chooser gets (local, remote) and answers "local" or "remote",
    directly or through an awaitable so a UI can ask the user.
    Without pending local changes there is nothing to lose, so this falls
    back to last-write-wins.
    """

    name = "manual"

    def __init__(self, chooser: Chooser, clock: Optional[SystemClock] = None):
        self.chooser = chooser
        self.clock = clock or SystemClock()
        self._fallback = LastWriteWins()

    def resolve(self, local: SyncRecord, remote: SyncRecord, pending: bool) -> SyncRecord:
        if not pending:
            return self._fallback.resolve(local, remote, pending)

        choice = self.chooser(local, remote)
        if inspect.isawaitable(choice):
            raise TypeError("Async chooser used from synchronous resolve")
        return self._apply_choice(local, remote, choice)

    async def resolve_async(
        self, local: SyncRecord, remote: SyncRecord, pending: bool
    ) -> SyncRecord:
        if not pending:
            return self._fallback.resolve(local, remote, pending)

        choice = self.chooser(local, remote)
        if inspect.isawaitable(choice):
            choice = await choice
        return self._apply_choice(local, remote, choice)

    def _apply_choice(self, local: SyncRecord, remote: SyncRecord, choice: str) -> SyncRecord:
        log_info(f"Manual conflict resolution chose {choice}", component="sync")
        if choice == "remote":
            return remote
        if choice != "local":
            raise ValueError(f"Chooser must answer 'local' or 'remote', got {choice!r}")
        if local.updated_at_millis > remote.updated_at_millis:
            return local

        # Keeping an older local copy: re-stamp so it wins everywhere
        return SyncRecord(
            state=local.state,
            updated_at_millis=max(self.clock.now_millis(), remote.updated_at_millis + 1),
            origin_id=local.origin_id,
            last_action="conflict_resolved",
        )


def create_resolver(
    strategy: str, chooser: Optional[Chooser] = None, clock: Optional[SystemClock] = None
) -> ConflictResolver:
    """Build the resolver named in configuration"""
    strategy = (strategy or "lww").strip().lower()
    if strategy == "lww":
        return LastWriteWins()
    if strategy == "manual":
        if chooser is None:
            raise ValueError("Manual conflict resolution needs a chooser")
        return ManualResolution(chooser, clock)
    raise ValueError(f"Unknown conflict strategy: {strategy}")
