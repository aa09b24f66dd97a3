"""Application layer for SevaSync"""

from .controller import AppController
from .runner import (
    SyncRunner,
    create_controller,
    create_remote_store,
    create_sync_client,
    sync_settings_from,
)

__all__ = [
    "AppController",
    "SyncRunner",
    "create_controller",
    "create_remote_store",
    "create_sync_client",
    "sync_settings_from",
]
