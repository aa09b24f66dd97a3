#!/usr/bin/env python3
"""
Local key-value storage for SevaSync
Private to one device; survives restarts
"""

import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional


class StorageError(Exception):
    """Raised when local storage cannot be read or written"""

    pass


class LocalStore:
    """Synchronous durable key-value store"""

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError("Subclasses must implement get")

    def set(self, key: str, value: bytes) -> None:
        raise NotImplementedError("Subclasses must implement set")

    def remove(self, key: str) -> None:
        raise NotImplementedError("Subclasses must implement remove")


class MemoryLocalStore(LocalStore):
    """Non-durable store for tests and throwaway sessions"""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileLocalStore(LocalStore):
    """One file per key in a directory, replaced atomically on write"""

    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not read {path}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.directory, prefix=f".{key}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "wb") as f:
                        f.write(value)
                    os.replace(tmp_name, path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as e:
                raise StorageError(f"Could not write {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Could not remove {path}: {e}") from e
