#!/usr/bin/env python3
"""
Record host for SevaSync
A tiny HTTP server holding shared assignment records. Any device can run
it; the others point HttpRemoteStore at it.

Routes:
  GET  /health            - liveness
  GET  /records/<id>      - read a record (404 if missing)
  PUT  /records/<id>      - replace a record; with If-None-Match: * only
                            creates (201) or refuses (412)
  POST /records           - create a record under a new id (201 {"id": ...})
"""

import json
import os
import re
import tempfile
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from sevasync.core.identity import generate_record_id
from sevasync.core.logger import log_info, log_warning, log_error


_RECORD_PATH = re.compile(r"^/records/([A-Za-z0-9_-]+)$")
MAX_BODY_BYTES = 1024 * 1024


class RecordTable:
    """Records held in memory, optionally mirrored to a directory"""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir).expanduser() if data_dir else None
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        if self.data_dir:
            self._load_existing()

    def _load_existing(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for path in self.data_dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    payload = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                log_warning(f"Skipping unreadable record {path}: {e}", component="server")
                continue
            if isinstance(payload, dict):
                self._records[path.stem] = payload
        log_info(f"Loaded {len(self._records)} records from {self.data_dir}", component="server")

    def _mirror(self, record_id: str, payload: Dict[str, Any]) -> None:
        if not self.data_dir:
            return
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, self.data_dir / f"{record_id}.json")
        except OSError as e:
            log_error(f"Could not mirror record {record_id}: {e}", component="server")

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._records.get(record_id)

    def put(self, record_id: str, payload: Dict[str, Any], only_if_absent: bool = False) -> bool:
        with self._lock:
            if only_if_absent and record_id in self._records:
                return False
            self._records[record_id] = payload
            self._mirror(record_id, payload)
            return True

    def create(self, payload: Dict[str, Any]) -> str:
        with self._lock:
            record_id = generate_record_id()
            while record_id in self._records:
                record_id = generate_record_id()
            self._records[record_id] = payload
            self._mirror(record_id, payload)
            return record_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class RecordRequestHandler(BaseHTTPRequestHandler):
    """Routes requests onto the server's RecordTable"""

    server_version = "SevaSyncRecordHost/1.0"

    @property
    def table(self) -> RecordTable:
        return self.server.table

    def log_message(self, format: str, *args: Any) -> None:
        log_info(f"{self.address_string()} {format % args}", component="server")

    def _send_json(self, payload: Dict[str, Any], status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, status: int, message: str) -> None:
        self._send_json({"ok": False, "error": message}, status=status)

    def _parse_json_body(self) -> Optional[Dict[str, Any]]:
        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return None
        if length <= 0 or length > MAX_BODY_BYTES:
            return None
        raw = self.rfile.read(length)
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path == "/health":
            self._send_json({"ok": True, "records": len(self.table)})
            return

        match = _RECORD_PATH.match(parsed.path)
        if not match:
            self._send_error(HTTPStatus.NOT_FOUND, "not found")
            return

        payload = self.table.get(match.group(1))
        if payload is None:
            self._send_error(HTTPStatus.NOT_FOUND, "record not found")
            return
        self._send_json(payload)

    def do_PUT(self) -> None:
        match = _RECORD_PATH.match(urlparse(self.path).path)
        if not match:
            self._send_error(HTTPStatus.NOT_FOUND, "not found")
            return

        payload = self._parse_json_body()
        if payload is None:
            self._send_error(HTTPStatus.BAD_REQUEST, "JSON object body required")
            return

        record_id = match.group(1)
        if self.headers.get("If-None-Match", "").strip() == "*":
            if not self.table.put(record_id, payload, only_if_absent=True):
                self._send_error(HTTPStatus.PRECONDITION_FAILED, "record exists")
                return
            self._send_json({"ok": True, "id": record_id}, status=HTTPStatus.CREATED)
            return

        self.table.put(record_id, payload)
        self._send_json({"ok": True, "id": record_id})

    def do_POST(self) -> None:
        if urlparse(self.path).path != "/records":
            self._send_error(HTTPStatus.NOT_FOUND, "not found")
            return

        payload = self._parse_json_body()
        if payload is None:
            self._send_error(HTTPStatus.BAD_REQUEST, "JSON object body required")
            return

        record_id = self.table.create(payload)
        self._send_json({"ok": True, "id": record_id}, status=HTTPStatus.CREATED)


class RecordServer:
    """Runs the record host in a background thread"""

    def __init__(self, host: str = "0.0.0.0", port: int = 8765, data_dir: Optional[str] = None):
        self.host = host
        self.port = port
        self.table = RecordTable(data_dir)
        self.httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> str:
        host, port = self.httpd.server_address[:2] if self.httpd else (self.host, self.port)
        if host in ("0.0.0.0", ""):
            host = "127.0.0.1"
        return f"http://{host}:{port}"

    def _bind(self) -> ThreadingHTTPServer:
        httpd = ThreadingHTTPServer((self.host, self.port), RecordRequestHandler)
        httpd.daemon_threads = True
        httpd.table = self.table
        return httpd

    def start(self) -> None:
        if self.httpd:
            return
        self.httpd = self._bind()
        self._thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self._thread.start()
        log_info(f"Record host listening on {self.address}", component="server")

    def serve_forever(self) -> None:
        """Run in the calling thread until interrupted"""
        if not self.httpd:
            self.httpd = self._bind()
        log_info(f"Record host listening on {self.address}", component="server")
        self.httpd.serve_forever()

    def stop(self) -> None:
        if not self.httpd:
            return
        if self._thread:
            self.httpd.shutdown()
            self._thread.join(timeout=2.0)
            self._thread = None
        self.httpd.server_close()
        self.httpd = None
        log_info("Record host stopped", component="server")
