from __future__ import annotations

from typing import Any

from tokengrid.sim.cells import parse_cell_key
from tokengrid.sim.movement import MOVEMENT_MODES

SUPPORTED_SCHEMA_VERSIONS = {1}
REQUIRED_SAVE_FIELDS = ("schema_version", "player_cell", "held_token", "overlay", "movement_mode", "save_hash")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_player_cell(player_cell: Any) -> None:
    if not isinstance(player_cell, dict):
        raise ValueError("save payload field player_cell must be an object")
    if set(player_cell.keys()) != {"i", "j"}:
        raise ValueError("save payload field player_cell must contain exactly i and j")
    for axis in ("i", "j"):
        if not _is_int(player_cell[axis]):
            raise ValueError(f"save payload field player_cell.{axis} must be an integer")


def _validate_overlay(overlay: Any) -> None:
    if not isinstance(overlay, list):
        raise ValueError("save payload field overlay must be a list")
    seen: set[str] = set()
    for index, entry in enumerate(overlay):
        if not isinstance(entry, list) or len(entry) != 2:
            raise ValueError(f"overlay[{index}] must be a [key, value] pair")
        key, value = entry
        parse_cell_key(key)
        if key in seen:
            raise ValueError(f"overlay[{index}] duplicates cell key {key}")
        seen.add(key)
        if not _is_int(value) or value < 0:
            raise ValueError(f"overlay[{index}] value must be a non-negative integer")


def validate_save_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")

    missing = [name for name in REQUIRED_SAVE_FIELDS if name not in payload]
    if missing:
        raise ValueError(f"save payload missing fields: {missing}")

    schema_version = payload["schema_version"]
    if not _is_int(schema_version):
        raise ValueError("save payload must contain integer field: schema_version")
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"unsupported schema_version: {schema_version}")

    save_digest = payload["save_hash"]
    if not isinstance(save_digest, str) or not save_digest:
        raise ValueError("save payload must contain string field: save_hash")

    _validate_player_cell(payload["player_cell"])

    held_token = payload["held_token"]
    if held_token is not None and (not _is_int(held_token) or held_token <= 0):
        raise ValueError("save payload field held_token must be a positive integer or null")

    _validate_overlay(payload["overlay"])

    if payload["movement_mode"] not in MOVEMENT_MODES:
        raise ValueError(f"unsupported movement_mode: {payload['movement_mode']}")
