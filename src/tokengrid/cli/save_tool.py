from __future__ import annotations

import argparse
import json
from typing import Sequence

from tokengrid.content.io import SAVE_STORAGE_KEY, JsonFileStorage, decode_game_state
from tokengrid.sim.hash import state_hash

OVERLAY_PRINT_LIMIT = 20


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokengrid-save",
        description="Inspect or clear the stored tokengrid game record.",
    )
    parser.add_argument("save_dir", help="Directory holding the stored game record")
    parser.add_argument("--key", default=SAVE_STORAGE_KEY, help="Storage key of the record")
    parser.add_argument("--print-overlay", action="store_true", help="Print overlay entries (first 20)")
    parser.add_argument("--clear", action="store_true", help="Remove the stored record")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    storage = JsonFileStorage(args.save_dir)

    if args.clear:
        storage.remove(args.key)
        print(f"ok cleared path={storage.path_for(args.key)}")
        return 0

    serialized = storage.get(args.key)
    if serialized is None:
        print(f"none path={storage.path_for(args.key)}")
        return 1

    try:
        state = decode_game_state(serialized)
    except ValueError as exc:
        print(f"error: {exc}")
        return 1

    payload = json.loads(serialized)
    print(
        "header "
        f"schema_version={payload.get('schema_version')} "
        f"player=({state.player.i},{state.player.j}) "
        f"held={state.held_token} "
        f"movement_mode={state.movement_mode} "
        f"overlay={len(state.overlay)}"
    )
    print("integrity=OK")
    print(f"save_hash={payload['save_hash']} state_hash={state_hash(state)}")

    if args.print_overlay:
        entries = state.overlay.entries()
        if not entries:
            print("overlay none")
        for key, value in entries[:OVERLAY_PRINT_LIMIT]:
            print(f"overlay {key}={value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
