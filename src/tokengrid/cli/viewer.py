from __future__ import annotations

from tokengrid.content.io import JsonFileStorage
from tokengrid.sim.cells import CellCoord
from tokengrid.sim.core import Game
from tokengrid.sim.interactions import EMPTY_OUTCOME, MERGED_OUTCOME, MISMATCH_OUTCOME, OUT_OF_RANGE_OUTCOME, PICKED_UP_OUTCOME
from tokengrid.sim.movement import ButtonMovementSource
from tokengrid.sim.state import GameConfig
from tokengrid.sim.surfaces import DisplaySurface, StatusView
from tokengrid.sim.viewport import CellView

DEFAULT_SAVE_DIR = "saves"
SHORT_DIRECTIONS = {"n": "north", "s": "south", "e": "east", "w": "west"}
OUTCOME_MESSAGES = {
    PICKED_UP_OUTCOME: "picked up token {held}",
    MERGED_OUTCOME: "merged into {cell}",
    MISMATCH_OUTCOME: "cannot merge {held} into {cell}",
    EMPTY_OUTCOME: "nothing to pick up",
    OUT_OF_RANGE_OUTCOME: "out of reach",
}


class AsciiDisplay(DisplaySurface):
    """Terminal projection of the last drawn window; north is up."""

    def __init__(self) -> None:
        self.camera: tuple[float, float] | None = None
        self.cells: list[CellView] = []
        self.status: StatusView | None = None
        self.messages: list[str] = []

    def set_camera(self, lat: float, lng: float) -> None:
        self.camera = (lat, lng)

    def draw_cell_window(self, cells: list[CellView]) -> None:
        self.cells = list(cells)

    def render_status(self, status: StatusView) -> None:
        self.status = status

    def notify_solved(self, value: int) -> None:
        self.messages.append(f"solved! reached token {value}")

    def render(self) -> str:
        lines: list[str] = []
        if self.status is not None:
            lines.append(self.status.text())
        if self.camera is not None:
            lines.append(f"camera=({self.camera[0]:.6f},{self.camera[1]:.6f})")
        if not self.cells:
            return "\n".join(lines + ["<nothing drawn>"])

        player = self.status.player if self.status is not None else None
        by_row: dict[int, list[CellView]] = {}
        for view in self.cells:
            by_row.setdefault(view.coord.i, []).append(view)
        for i in sorted(by_row, reverse=True):
            row = sorted(by_row[i], key=lambda view: view.coord.j)
            lines.append(f"i={i:>4} " + "".join(self._glyph(view, player) for view in row))
        return "\n".join(lines)

    @staticmethod
    def _glyph(view: CellView, player: CellCoord | None) -> str:
        if view.coord == player:
            return "  @"
        if view.token is not None:
            return f"{view.token:>3}"
        return "  :" if view.is_reachable else "  ."


def format_outcome(outcome: object) -> str:
    template = OUTCOME_MESSAGES.get(getattr(outcome, "outcome", ""), "ignored")
    return template.format(held=getattr(outcome, "held_token", None), cell=getattr(outcome, "cell_token", None))


def run_demo(save_dir: str = DEFAULT_SAVE_DIR, salt: str | None = None) -> None:
    config = GameConfig() if salt is None else GameConfig(salt=salt)
    display = AsciiDisplay()
    game = Game(config=config, display=display, storage=JsonFileStorage(save_dir))
    restored = game.start(on_discard=lambda reason: print(f"[tokengrid.viewer] discarded corrupt save: {reason}"))
    print(f"[tokengrid.viewer] {'restored' if restored else 'new game'} save_dir={save_dir}")

    print("tokengrid demo. Commands: show | n | s | e | w | move <di> <dj> | tap <i> <j> | reset | quit")
    buttons = ButtonMovementSource()
    game.attach_movement_source(buttons)
    print(display.render())

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        if raw == "show":
            print(display.render())
            continue
        if raw in SHORT_DIRECTIONS:
            buttons.press(SHORT_DIRECTIONS[raw])
            print(display.render())
            continue
        if raw == "reset":
            game.reset()
            print(display.render())
            continue

        parts = raw.split()
        try:
            if len(parts) == 3 and parts[0] == "move":
                game.movement_delta(int(parts[1]), int(parts[2]))
                print(display.render())
                continue
            if len(parts) == 3 and parts[0] == "tap":
                outcome = game.cell_interact(int(parts[1]), int(parts[2]))
                print(format_outcome(outcome))
                while display.messages:
                    print(display.messages.pop(0))
                print(display.render())
                continue
        except ValueError as exc:
            print(f"error: {exc}")
            continue

        print("unknown command")


if __name__ == "__main__":
    run_demo()
