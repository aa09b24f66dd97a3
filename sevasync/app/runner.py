#!/usr/bin/env python3
"""
Wiring and event loop for SevaSync
Builds the controller and sync client from configuration and runs the
asyncio loop in a background thread. UI calls are marshalled onto that
loop so application logic only ever runs on one thread.
"""

import asyncio
import threading
from typing import Any, Callable, Optional

from sevasync.config import ConfigManager
from sevasync.core.logger import log_error, log_info
from sevasync.core.system_state import SyncTracker
from sevasync.core.tasks import default_roster
from sevasync.networking import (
    FileRemoteStore,
    HttpRemoteStore,
    MemoryRemoteStore,
    RemoteStore,
    SyncClient,
    SyncSettings,
    create_resolver,
)
from sevasync.storage import AssignmentStore, FileLocalStore, StorageError
from .controller import AppController


def create_remote_store(config: ConfigManager) -> RemoteStore:
    backend = config.remote_backend
    if backend == "http":
        return HttpRemoteStore(config.remote_url, timeout=config.request_timeout)
    if backend == "file":
        return FileRemoteStore(config.remote_dir)
    return MemoryRemoteStore()


def sync_settings_from(config: ConfigManager) -> SyncSettings:
    return SyncSettings(
        poll_interval=config.poll_interval,
        echo_tolerance_ms=config.echo_tolerance_ms,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base,
        backoff_max=config.backoff_max,
        retry_cooldown=config.retry_cooldown,
    )


def create_controller(
    config: ConfigManager, on_warning: Optional[Callable[[str], None]] = None
) -> AppController:
    roster = default_roster()
    store = AssignmentStore(FileLocalStore(config.storage_dir), roster)
    controller = AppController(
        store,
        roster=roster,
        strict_rotation=config.strict_rotation,
        on_warning=on_warning,
    )
    controller.load()
    return controller


def create_sync_client(
    config: ConfigManager,
    controller: AppController,
    remote: Optional[RemoteStore] = None,
    chooser=None,
) -> SyncClient:
    """Sync client bound to the controller's record"""
    record_id = config.record_id
    if record_id is None:
        try:
            record_id = controller.store.record_id()
        except StorageError as e:
            log_error(f"Could not read saved record id: {e}", component="app")

    def remember(new_record_id: str) -> None:
        try:
            controller.store.remember_record_id(new_record_id)
        except StorageError as e:
            log_error(f"Could not save record id {new_record_id}: {e}", component="app")

    client = SyncClient(
        remote=remote or create_remote_store(config),
        origin_id=controller.origin_id,
        local_record=controller.current_record,
        adopt=controller.apply_remote,
        record_id=record_id,
        roster=controller.roster,
        resolver=create_resolver(config.conflict_strategy, chooser, controller.clock),
        settings=sync_settings_from(config),
        tracker=SyncTracker(poll_interval=config.poll_interval),
        clock=controller.clock,
        on_record_id=remember,
    )
    controller.attach_sync(client)
    return client


class SyncRunner:
    """Owns the asyncio loop thread that the sync client lives on"""

    def __init__(self, controller: AppController, sync_client: Optional[SyncClient] = None):
        self.controller = controller
        self.sync_client = sync_client
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None
        self.is_running = False

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self.is_running = True
        if self.sync_client:
            self.run(self.sync_client.start())
        log_info("Sync runner started", component="app")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the loop thread and wait for its result"""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def call(self, fn: Callable, *args, timeout: Optional[float] = None) -> Any:
        """Run a plain function on the loop thread and wait for its result"""

        async def invoke():
            return fn(*args)

        return self.run(invoke(), timeout)

    def stop(self) -> None:
        if not self.is_running:
            return
        try:
            if self.sync_client:
                self.run(self.sync_client.stop(), timeout=5.0)
        finally:
            self.loop.call_soon_threadsafe(self.loop.stop)
            if self._thread:
                self._thread.join(timeout=2.0)
            self.loop.close()
            self.is_running = False
        log_info("Sync runner stopped", component="app")
