#!/usr/bin/env python3
"""Clock and random identifiers used by sync"""

import secrets
import string
import time


_ALPHABET = string.ascii_lowercase + string.digits


class SystemClock:
    """Wall clock in integer milliseconds"""

    def now_millis(self) -> int:
        return int(time.time() * 1000)


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_origin_id(clock: SystemClock = None) -> str:
    """Per-device id, e.g. viewer_1718000000000_k3j9x0a2b"""
    clock = clock or SystemClock()
    return f"viewer_{clock.now_millis()}_{_random_suffix(9)}"


def generate_record_id() -> str:
    """Identifier for a new shared record (a "room")"""
    return secrets.token_hex(8)
