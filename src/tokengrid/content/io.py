from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any
from urllib.parse import quote

from tokengrid.content.schema import validate_save_payload
from tokengrid.sim.hash import save_hash
from tokengrid.sim.state import GameState
from tokengrid.sim.surfaces import StorageBackend

SCHEMA_VERSION = 1
SAVE_STORAGE_KEY = "tokengrid.save"
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")


def _build_save_payload(state: GameState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        **state.to_dict(),
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def encode_game_state(state: GameState) -> str:
    payload = _build_save_payload(state)
    validate_save_payload(payload)
    return _canonical_json(payload)


def decode_game_state(text: str) -> GameState:
    if not isinstance(text, str):
        raise ValueError("save record must be a string")
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise ValueError(f"save record is not valid JSON: {exc}") from exc
    validate_save_payload(payload)

    expected_hash = payload["save_hash"]
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise ValueError(
            f"save_hash mismatch while loading save (stored={expected_hash}, recomputed={actual_hash})"
        )
    return GameState.from_dict(payload)


def save_game_state(storage: StorageBackend, state: GameState, *, key: str = SAVE_STORAGE_KEY) -> str:
    serialized = encode_game_state(state)
    storage.set(key, serialized)
    return serialized


def load_game_state(
    storage: StorageBackend,
    *,
    key: str = SAVE_STORAGE_KEY,
    on_discard: Callable[[str], None] | None = None,
) -> GameState | None:
    """Stored state, or None when absent. A corrupt record is removed from storage."""
    try:
        serialized = storage.get(key)
        if serialized is None:
            return None
        return decode_game_state(serialized)
    except ValueError as exc:
        # UnicodeDecodeError from a file backend is a ValueError too.
        storage.remove(key)
        if on_discard is not None:
            on_discard(str(exc))
        return None


def _write_atomic_text(path: str | Path, serialized: str) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


class JsonFileStorage(StorageBackend):
    """One file per key under ``directory``; writes are atomic replaces."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        if not isinstance(key, str) or not key:
            raise ValueError("storage key must be a non-empty string")
        return self.directory / f"{quote(key, safe='.-_')}.json"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError("storage values must be strings")
        _write_atomic_text(self.path_for(key), value)

    def remove(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
