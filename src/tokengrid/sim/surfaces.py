from __future__ import annotations

from dataclasses import dataclass, field

from tokengrid.sim.cells import CellCoord
from tokengrid.sim.viewport import CellView


@dataclass(frozen=True)
class StatusView:
    held_token: int | None
    player: CellCoord
    movement_mode: str
    solved: bool = False

    def text(self) -> str:
        held = "nothing" if self.held_token is None else f"token {self.held_token}"
        line = f"Holding {held} | cell ({self.player.i},{self.player.j}) | movement: {self.movement_mode}"
        if self.solved:
            line += " | solved!"
        return line


class DisplaySurface:
    """Display collaborator; the core only calls these hooks."""

    def set_camera(self, lat: float, lng: float) -> None:
        """Centre the map on (lat, lng)."""

    def draw_cell_window(self, cells: list[CellView]) -> None:
        """Replace every drawn cell with ``cells``."""

    def render_status(self, status: StatusView) -> None:
        """Show the status line."""

    def notify_solved(self, value: int) -> None:
        """Called once per merge that reaches the winning value."""


@dataclass
class RecordingDisplay(DisplaySurface):
    """Keeps every call; used by headless runs and tests."""

    camera_calls: list[tuple[float, float]] = field(default_factory=list)
    windows: list[list[CellView]] = field(default_factory=list)
    statuses: list[StatusView] = field(default_factory=list)
    solved_values: list[int] = field(default_factory=list)

    def set_camera(self, lat: float, lng: float) -> None:
        self.camera_calls.append((lat, lng))

    def draw_cell_window(self, cells: list[CellView]) -> None:
        self.windows.append(list(cells))

    def render_status(self, status: StatusView) -> None:
        self.statuses.append(status)

    def notify_solved(self, value: int) -> None:
        self.solved_values.append(value)

    def last_window(self) -> list[CellView]:
        return self.windows[-1] if self.windows else []


class StorageBackend:
    """String key/value persistence collaborator."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(StorageBackend):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError("storage values must be strings")
        self.values[key] = value
        self.write_count += 1

    def remove(self, key: str) -> None:
        self.values.pop(key, None)

