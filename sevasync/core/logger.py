#!/usr/bin/env python3
"""
Centralized lightweight logger for SevaSync.
Writes to a plain text file so headless sync runs and the interactive
console share one log without extra setup.
"""

import os
import sys
import tempfile
import time
from typing import Dict, Optional


LOG_DIR = tempfile.gettempdir()
SYSTEM_LOG_NAME = "sevasync_system.log"

# Global logging control - set by main application
_ENABLE_SYSTEM_LOGGING = False


def _system_log_path() -> str:
    return os.path.join(LOG_DIR, SYSTEM_LOG_NAME)


def _ensure_log_dir() -> None:
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
    except OSError:
        # Unwritable log dir falls through to the stdout path in _write
        pass


def _should_log(level: str) -> bool:
    """Check if we should log based on current settings"""
    # Always log errors
    if level == "ERROR":
        return True

    return _ENABLE_SYSTEM_LOGGING


def _write(level: str, message: str, component: Optional[str] = None) -> None:
    if not _should_log(level):
        return

    _ensure_log_dir()
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    pid = os.getpid()
    if component is None:
        component = os.path.basename(sys.argv[0]) or "unknown"
    line = f"[{timestamp}] [{level}] [{component}] (pid={pid}) {message}\n"
    try:
        with open(_system_log_path(), "a", encoding="utf-8") as f:
            f.write(line)
    except OSError:
        # As a last resort, print only errors
        if level == "ERROR":
            print(line, end="", file=sys.stderr)


def log_debug(message: str, component: Optional[str] = None) -> None:
    _write("DEBUG", message, component)


def log_info(message: str, component: Optional[str] = None) -> None:
    _write("INFO", message, component)


def log_warning(message: str, component: Optional[str] = None) -> None:
    _write("WARN", message, component)


def log_error(message: str, component: Optional[str] = None) -> None:
    _write("ERROR", message, component)


def enable_system_logging(enabled: bool = True) -> None:
    """Enable or disable system logging globally"""
    global _ENABLE_SYSTEM_LOGGING
    _ENABLE_SYSTEM_LOGGING = enabled


def set_log_dir(path: str) -> None:
    """Redirect the system log to another directory"""
    global LOG_DIR
    LOG_DIR = path


def log_file_paths() -> Dict[str, str]:
    """Return paths to the logs for user convenience."""
    return {
        "system": _system_log_path(),
    }
