#!/usr/bin/env python3
"""Shared fixtures for the SevaSync tests"""

import pytest

from sevasync.core import logger
from sevasync.core.tasks import build_roster, default_roster
from sevasync.networking import RemoteStoreError, MemoryRemoteStore


class FakeClock:
    """Clock the tests move by hand"""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def now_millis(self) -> int:
        return self.now

    def advance(self, millis: int) -> int:
        self.now += millis
        return self.now


class FlakyRemoteStore(MemoryRemoteStore):
    """Memory store whose calls fail while ``failing`` is set"""

    def __init__(self):
        super().__init__()
        self.failing = False
        self.writes = []

    def _check(self):
        if self.failing:
            raise RemoteStoreError("connection refused")

    async def read(self, record_id):
        self._check()
        return await super().read(record_id)

    async def write(self, record_id, payload):
        self._check()
        self.writes.append(payload)
        await super().write(record_id, payload)

    async def create(self, payload):
        self._check()
        return await super().create(payload)

    async def create_if_absent(self, record_id, payload):
        self._check()
        return await super().create_if_absent(record_id, payload)


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    previous = logger.LOG_DIR
    logger.set_log_dir(str(tmp_path / "logs"))
    yield
    logger.set_log_dir(previous)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def small_roster():
    return build_roster(["A", "B", "Grocery", "Yard"], [2, 1, 2, 1])


@pytest.fixture
def roster():
    return default_roster()


@pytest.fixture
def flaky_remote():
    return FlakyRemoteStore()
