from __future__ import annotations

import hashlib

DEFAULT_WORLD_SALT = "tokengrid"
_UNIT_SCALE = float(2**64)


def luck(key: str, *, salt: str = DEFAULT_WORLD_SALT) -> float:
    """Deterministic value in [0, 1) derived from (salt, key)."""
    digest = hashlib.sha256(f"{salt}:{key}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False) / _UNIT_SCALE
