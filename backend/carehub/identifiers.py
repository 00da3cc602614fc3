from __future__ import annotations

import os
import time
import uuid


SHORT_ID_LENGTH = 8


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    Used as the column default for every primary key, so it must be
    callable with zero arguments.

    UUIDv7 layout:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def short_id(value: str) -> str:
    """
    Display fallback for a person with no profile name.

    UUIDv7 ids share their leading timestamp bytes, so the random tail is used.
    """
    compact = (value or "").replace("-", "")
    return compact[-SHORT_ID_LENGTH:]
