#!/usr/bin/env python3
"""
Sync bookkeeping for SevaSync
Tracks how well this device is keeping up with the shared record
"""

import time
from collections import deque
from typing import Any, Dict, Optional


class SyncTracker:
    """Tracks sync activity and health"""

    def __init__(self, max_samples: int = 50, poll_interval: float = 5.0):
        self.max_samples = max_samples
        self.poll_interval = poll_interval
        self.events = deque(maxlen=max_samples)
        self.last_sync_time = 0.0
        self.last_failure: Optional[str] = None
        self.counters = {
            "pushes": 0,
            "polls": 0,
            "adopted": 0,
            "echoes_suppressed": 0,
            "conflicts": 0,
            "failures": 0,
        }

    def _record(self, kind: str, detail: str = "") -> None:
        self.events.append({"kind": kind, "detail": detail, "timestamp": time.time()})

    def record_push(self, updated_at_millis: int) -> None:
        self.counters["pushes"] += 1
        self.last_sync_time = time.time()
        self._record("push", str(updated_at_millis))

    def record_poll(self) -> None:
        self.counters["polls"] += 1
        self.last_sync_time = time.time()
        self._record("poll")

    def record_adopted(self, origin_id: str, updated_at_millis: int) -> None:
        self.counters["adopted"] += 1
        self._record("adopted", f"{origin_id}@{updated_at_millis}")

    def record_echo(self) -> None:
        self.counters["echoes_suppressed"] += 1
        self._record("echo")

    def record_conflict(self, detail: str) -> None:
        self.counters["conflicts"] += 1
        self._record("conflict", detail)

    def record_failure(self, error: str) -> None:
        self.counters["failures"] += 1
        self.last_failure = error
        self._record("failure", error)

    def get_sync_quality(self) -> str:
        """Rough health label based on time since the last successful call"""
        if not self.last_sync_time:
            return "No sync data"

        time_since_sync = time.time() - self.last_sync_time
        if time_since_sync > self.poll_interval * 6:
            return "Sync lost"
        elif time_since_sync > self.poll_interval * 2:
            return "Sync degraded"
        return "Good"

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self.counters)
        stats.update(
            {
                "last_sync": self.last_sync_time,
                "last_failure": self.last_failure,
                "sync_quality": self.get_sync_quality(),
                "recent_events": list(self.events)[-5:],
            }
        )
        return stats
