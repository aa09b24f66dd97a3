"""Networking package for SevaSync"""

from .remote import (
    NetworkError, RemoteStoreError, RecordNotFoundError,
    RemoteStore, MemoryRemoteStore, FileRemoteStore, HttpRemoteStore,
)
from .conflict import ConflictResolver, LastWriteWins, ManualResolution, create_resolver
from .sync_client import SyncClient, SyncSettings, SyncState, ConnectionState
from .server import RecordServer

__all__ = [
    # Remote record stores
    'NetworkError',
    'RemoteStoreError',
    'RecordNotFoundError',
    'RemoteStore',
    'MemoryRemoteStore',
    'FileRemoteStore',
    'HttpRemoteStore',

    # Reconciliation
    'ConflictResolver',
    'LastWriteWins',
    'ManualResolution',
    'create_resolver',
    'SyncClient',
    'SyncSettings',
    'SyncState',
    'ConnectionState',

    # Record host
    'RecordServer',
]
