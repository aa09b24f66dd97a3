#!/usr/bin/env python3
"""
Remote record stores for SevaSync
A remote store holds the shared assignment record every device polls.
All backends expose the same async interface so the sync loop never
cares how the record travels.
"""

import asyncio
import copy
import json
import os
import re
import tempfile
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Dict, Optional

from sevasync.core.identity import generate_record_id


class NetworkError(Exception):
    """Raised when network operations fail"""

    pass


class RemoteStoreError(NetworkError):
    """Raised when the remote store cannot be reached or answers badly"""

    pass


class RecordNotFoundError(RemoteStoreError):
    """Raised when the shared record does not exist (404)"""

    pass


class RemoteStore:
    """Shared key-value record store - to be implemented by subclasses"""

    async def read(self, record_id: str) -> Dict[str, Any]:
        raise NotImplementedError("Subclasses must implement read")

    async def write(self, record_id: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError("Subclasses must implement write")

    async def create(self, payload: Dict[str, Any]) -> str:
        raise NotImplementedError("Subclasses must implement create")

    async def create_if_absent(self, record_id: str, payload: Dict[str, Any]) -> bool:
        """Create the record only if nobody did first; True if we created it"""
        raise NotImplementedError("Subclasses must implement create_if_absent")

    async def close(self) -> None:
        pass


class MemoryRemoteStore(RemoteStore):
    """In-process store, shared by clients living in one process"""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    async def read(self, record_id: str) -> Dict[str, Any]:
        if record_id not in self._records:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return copy.deepcopy(self._records[record_id])

    async def write(self, record_id: str, payload: Dict[str, Any]) -> None:
        # Whole-record replace, readers never see a partial update
        self._records[record_id] = copy.deepcopy(payload)

    async def create(self, payload: Dict[str, Any]) -> str:
        record_id = generate_record_id()
        self._records[record_id] = copy.deepcopy(payload)
        return record_id

    async def create_if_absent(self, record_id: str, payload: Dict[str, Any]) -> bool:
        if record_id in self._records:
            return False
        self._records[record_id] = copy.deepcopy(payload)
        return True


_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def _check_record_id(record_id: str) -> str:
    if not record_id or not _SAFE_ID.match(record_id):
        raise RemoteStoreError(f"Invalid record id: {record_id!r}")
    return record_id


class FileRemoteStore(RemoteStore):
    """Records as JSON files in a shared directory (network mount, synced folder)"""

    def __init__(self, directory: str):
        self.directory = Path(directory).expanduser()

    def _path(self, record_id: str) -> Path:
        return self.directory / f"{_check_record_id(record_id)}.json"

    def _write_temp(self, payload: Dict[str, Any]) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        return tmp_name

    def _read_sync(self, record_id: str) -> Dict[str, Any]:
        path = self._path(record_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except FileNotFoundError:
            raise RecordNotFoundError(f"Record {record_id} not found")
        except (OSError, json.JSONDecodeError) as e:
            raise RemoteStoreError(f"Could not read record {record_id}: {e}")
        if not isinstance(payload, dict):
            raise RemoteStoreError(f"Record {record_id} is not a JSON object")
        return payload

    def _write_sync(self, record_id: str, payload: Dict[str, Any]) -> None:
        path = self._path(record_id)
        try:
            tmp_name = self._write_temp(payload)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            raise RemoteStoreError(f"Could not write record {record_id}: {e}")

    def _create_if_absent_sync(self, record_id: str, payload: Dict[str, Any]) -> bool:
        path = self._path(record_id)
        try:
            tmp_name = self._write_temp(payload)
        except (OSError, TypeError, ValueError) as e:
            raise RemoteStoreError(f"Could not create record {record_id}: {e}")
        try:
            # link() fails if the target exists, so only one creator wins
            os.link(tmp_name, path)
            return True
        except FileExistsError:
            return False
        except OSError as e:
            raise RemoteStoreError(f"Could not create record {record_id}: {e}")
        finally:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass

    async def read(self, record_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, record_id)

    async def write(self, record_id: str, payload: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, record_id, payload)

    async def create(self, payload: Dict[str, Any]) -> str:
        while True:
            record_id = generate_record_id()
            if await self.create_if_absent(record_id, payload):
                return record_id

    async def create_if_absent(self, record_id: str, payload: Dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._create_if_absent_sync, record_id, payload)


class HttpRemoteStore(RemoteStore):
    """Records on a RecordServer (or any host speaking the same routes)"""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            f"{self.base_url}{path}", data=body, method=method
        )
        req.add_header("Accept", "application/json")
        if body is not None:
            req.add_header("Content-Type", "application/json")
        for key, value in (headers or {}).items():
            req.add_header(key, value)

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
                return resp.status, raw
        except urllib.error.HTTPError as e:
            return e.code, e.read()
        except (urllib.error.URLError, OSError) as e:
            raise RemoteStoreError(f"{method} {path} failed: {e}")

    @staticmethod
    def _decode(raw: bytes, what: str) -> Dict[str, Any]:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RemoteStoreError(f"Malformed response for {what}: {e}")
        if not isinstance(payload, dict):
            raise RemoteStoreError(f"Malformed response for {what}: not an object")
        return payload

    def _read_sync(self, record_id: str) -> Dict[str, Any]:
        path = f"/records/{_check_record_id(record_id)}"
        status, raw = self._request("GET", path)
        if status == 404:
            raise RecordNotFoundError(f"Record {record_id} not found")
        if status != 200:
            raise RemoteStoreError(f"GET {path} returned HTTP {status}")
        return self._decode(raw, path)

    def _write_sync(self, record_id: str, payload: Dict[str, Any]) -> None:
        path = f"/records/{_check_record_id(record_id)}"
        status, _ = self._request("PUT", path, payload)
        if status not in (200, 201, 204):
            raise RemoteStoreError(f"PUT {path} returned HTTP {status}")

    def _create_sync(self, payload: Dict[str, Any]) -> str:
        status, raw = self._request("POST", "/records", payload)
        if status not in (200, 201):
            raise RemoteStoreError(f"POST /records returned HTTP {status}")
        record_id = self._decode(raw, "/records").get("id")
        if not isinstance(record_id, str):
            raise RemoteStoreError("POST /records did not return an id")
        return record_id

    def _create_if_absent_sync(self, record_id: str, payload: Dict[str, Any]) -> bool:
        path = f"/records/{_check_record_id(record_id)}"
        status, _ = self._request("PUT", path, payload, {"If-None-Match": "*"})
        if status == 412:
            return False
        if status in (200, 201, 204):
            return True
        raise RemoteStoreError(f"Conditional PUT {path} returned HTTP {status}")

    async def read(self, record_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, record_id)

    async def write(self, record_id: str, payload: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_sync, record_id, payload)

    async def create(self, payload: Dict[str, Any]) -> str:
        return await asyncio.to_thread(self._create_sync, payload)

    async def create_if_absent(self, record_id: str, payload: Dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._create_if_absent_sync, record_id, payload)
