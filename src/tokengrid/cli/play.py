from __future__ import annotations

import argparse
from typing import Sequence

from tokengrid.cli.pygame_viewer import _env_flag_enabled, run_pygame_viewer
from tokengrid.sim.movement import MOVEMENT_MODES

DEFAULT_SAVE_DIR = "saves"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m tokengrid.cli.play", description="Canonical tokengrid launcher.")
    parser.add_argument("--save-dir", default=DEFAULT_SAVE_DIR, help="Directory holding the stored game record.")
    parser.add_argument("--salt", default=None, help="World salt used for procedural tokens.")
    parser.add_argument("--movement-mode", choices=MOVEMENT_MODES, default=None, help="Movement mode at startup.")
    parser.add_argument("--position-file", default=None, help="Position feed for geolocation mode.")
    parser.add_argument("--new-game", action="store_true", help="Start over, discarding the stored game.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    headless = args.headless or _env_flag_enabled("TOKENGRID_HEADLESS")
    return run_pygame_viewer(
        args.save_dir,
        salt=args.salt,
        movement_mode=args.movement_mode,
        position_file=args.position_file,
        new_game=args.new_game,
        headless=headless,
    )


if __name__ == "__main__":
    raise SystemExit(main())
