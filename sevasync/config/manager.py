#!/usr/bin/env python3
"""
Configuration Management for SevaSync
Loads settings from an INI file, creating a default one when missing
"""

import configparser
import os
from typing import Optional, Any

from sevasync.core.logger import log_info, log_warning, log_error


SECTION = "SEVASYNC"

DEFAULTS = {
    "device_name": "seva-device",
    "debug": "false",
    "enable_system_logging": "false",
    # Local storage
    "storage_dir": "~/.sevasync",
    # Shared record
    "remote_backend": "memory",  # memory, file or http
    "remote_url": "http://127.0.0.1:8765",
    "remote_dir": "~/.sevasync/shared",
    "record_id": "",
    "request_timeout": "10.0",
    # Sync timing
    "poll_interval": "5.0",  # seconds between polls
    "echo_tolerance_ms": "2000",
    "max_retries": "5",
    "backoff_base": "1.0",
    "backoff_max": "30.0",
    "retry_cooldown": "60.0",
    # Behaviour
    "strict_rotation": "false",
    "conflict_strategy": "lww",  # lww or manual
    # Record host
    "server_host": "0.0.0.0",
    "server_port": "8765",
    "server_data_dir": "",
}


class ConfigurationError(Exception):
    """Raised when configuration loading fails"""

    pass


class ConfigManager:
    """Central configuration manager for SevaSync"""

    def __init__(self, config_file: Optional[str] = None, create_missing: bool = True):
        self.config = configparser.ConfigParser()
        self.config_file = config_file
        self.create_missing = create_missing
        self.load_configuration()

    def load_configuration(self) -> None:
        """Load configuration from file, or fall back to defaults"""
        self.config[SECTION] = dict(DEFAULTS)

        if self.config_file and os.path.exists(self.config_file):
            try:
                self.config.read(self.config_file, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}")
            log_info(f"Loaded config from: {self.config_file}", component="config")
            return

        log_warning("No config file found. Using default config.", component="config")
        if self.config_file and self.create_missing:
            self._write_default_config()

    def _write_default_config(self) -> None:
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                self.config.write(f)
            log_info(f"Created default config file: {self.config_file}", component="config")
        except OSError as e:
            log_error(f"Could not write default config file: {e}", component="config")

    def set(self, key: str, value: Any) -> None:
        """Override a value for this run (command line flags)"""
        self.config.set(SECTION, key, str(value))

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(SECTION, key, fallback=default)

    def getboolean(self, key: str, default: bool = False) -> bool:
        try:
            return self.config.getboolean(SECTION, key, fallback=default)
        except ValueError:
            log_warning(f"Invalid boolean for {key}, using {default}", component="config")
            return default

    def getint(self, key: str, default: int = 0) -> int:
        try:
            return self.config.getint(SECTION, key, fallback=default)
        except ValueError:
            log_warning(f"Invalid integer for {key}, using {default}", component="config")
            return default

    def getfloat(self, key: str, default: float = 0.0) -> float:
        try:
            return self.config.getfloat(SECTION, key, fallback=default)
        except ValueError:
            log_warning(f"Invalid number for {key}, using {default}", component="config")
            return default

    @property
    def debug_mode(self) -> bool:
        return self.getboolean("debug", False)

    @property
    def enable_system_logging(self) -> bool:
        return self.getboolean("enable_system_logging", False)

    @property
    def device_name(self) -> str:
        return self.get("device_name", "seva-device")

    @property
    def storage_dir(self) -> str:
        return os.path.expanduser(self.get("storage_dir", "~/.sevasync"))

    @property
    def remote_backend(self) -> str:
        backend = self.get("remote_backend", "memory").strip().lower()
        if backend not in ("memory", "file", "http"):
            raise ConfigurationError(f"Unknown remote_backend: {backend}")
        return backend

    @property
    def remote_url(self) -> str:
        return self.get("remote_url", "http://127.0.0.1:8765")

    @property
    def remote_dir(self) -> str:
        return os.path.expanduser(self.get("remote_dir", "~/.sevasync/shared"))

    @property
    def record_id(self) -> Optional[str]:
        """Shared record (room) id; None lets the first client create one"""
        return self.get("record_id", "").strip() or None

    @property
    def request_timeout(self) -> float:
        return self.getfloat("request_timeout", 10.0)

    @property
    def poll_interval(self) -> float:
        """Seconds between polls, clamped to a sane range"""
        return max(0.5, min(self.getfloat("poll_interval", 5.0), 300.0))

    @property
    def echo_tolerance_ms(self) -> int:
        return max(0, self.getint("echo_tolerance_ms", 2000))

    @property
    def max_retries(self) -> int:
        return max(1, self.getint("max_retries", 5))

    @property
    def backoff_base(self) -> float:
        return max(0.1, self.getfloat("backoff_base", 1.0))

    @property
    def backoff_max(self) -> float:
        return max(self.backoff_base, self.getfloat("backoff_max", 30.0))

    @property
    def retry_cooldown(self) -> float:
        return max(1.0, self.getfloat("retry_cooldown", 60.0))

    @property
    def strict_rotation(self) -> bool:
        return self.getboolean("strict_rotation", False)

    @property
    def conflict_strategy(self) -> str:
        strategy = self.get("conflict_strategy", "lww").strip().lower()
        if strategy not in ("lww", "manual"):
            raise ConfigurationError(f"Unknown conflict_strategy: {strategy}")
        return strategy

    @property
    def server_host(self) -> str:
        return self.get("server_host", "0.0.0.0")

    @property
    def server_port(self) -> int:
        return self.getint("server_port", 8765)

    @property
    def server_data_dir(self) -> Optional[str]:
        path = self.get("server_data_dir", "").strip()
        return os.path.expanduser(path) if path else None
