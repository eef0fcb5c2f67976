from __future__ import annotations

import hashlib
import json
from typing import Any

from tokengrid.sim.state import GameState

SAVE_HASH_FIELDS = ("schema_version", "player_cell", "held_token", "overlay", "movement_mode")


def _digest(payload: dict[str, Any]) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def state_hash(state: GameState) -> str:
    return _digest(state.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    return _digest({name: payload[name] for name in SAVE_HASH_FIELDS})
