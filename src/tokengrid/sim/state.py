from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tokengrid.sim.cells import ORIGIN_CELL, CellCoord
from tokengrid.sim.generation import TokenGenerator
from tokengrid.sim.movement import BUTTONS_MOVEMENT_MODE, CELL_DEGREES, MOVEMENT_MODES, ORIGIN_LATLNG, MapProjection
from tokengrid.sim.overlay import OverlayStore
from tokengrid.sim.rng import DEFAULT_WORLD_SALT
from tokengrid.sim.viewport import DRAW_RADIUS, INTERACT_RADIUS, RangePolicy

WIN_TOKEN_VALUE = 32


def validate_held_token(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError("held_token must be a positive integer or None")
    return value


def validate_movement_mode(value: object) -> str:
    if value not in MOVEMENT_MODES:
        raise ValueError(f"unsupported movement_mode: {value}")
    return str(value)


@dataclass
class GameState:
    """Everything a save record captures; the world salt lives in GameConfig."""

    player: CellCoord = ORIGIN_CELL
    held_token: int | None = None
    overlay: OverlayStore = field(default_factory=OverlayStore)
    movement_mode: str = BUTTONS_MOVEMENT_MODE

    def __post_init__(self) -> None:
        if not isinstance(self.player, CellCoord):
            raise ValueError("player must be a CellCoord")
        validate_held_token(self.held_token)
        validate_movement_mode(self.movement_mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_cell": self.player.to_dict(),
            "held_token": self.held_token,
            "overlay": [[key, value] for key, value in self.overlay.entries()],
            "movement_mode": self.movement_mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        return cls(
            player=CellCoord.from_dict(data["player_cell"]),
            held_token=validate_held_token(data["held_token"]),
            overlay=OverlayStore((key, value) for key, value in data["overlay"]),
            movement_mode=validate_movement_mode(data["movement_mode"]),
        )

    def copy(self) -> "GameState":
        return GameState(
            player=self.player,
            held_token=self.held_token,
            overlay=self.overlay.copy(),
            movement_mode=self.movement_mode,
        )


@dataclass(frozen=True)
class GameConfig:
    salt: str = DEFAULT_WORLD_SALT
    draw_radius: int = DRAW_RADIUS
    interact_radius: int = INTERACT_RADIUS
    win_token_value: int = WIN_TOKEN_VALUE
    origin_lat: float = ORIGIN_LATLNG[0]
    origin_lng: float = ORIGIN_LATLNG[1]
    cell_degrees: float = CELL_DEGREES

    def __post_init__(self) -> None:
        if not isinstance(self.win_token_value, int) or self.win_token_value <= 1:
            raise ValueError("win_token_value must be an integer > 1")
        self.generator()
        self.range_policy()
        self.projection()

    def generator(self) -> TokenGenerator:
        return TokenGenerator(salt=self.salt)

    def range_policy(self) -> RangePolicy:
        return RangePolicy(draw_radius=self.draw_radius, interact_radius=self.interact_radius)

    def projection(self) -> MapProjection:
        return MapProjection(origin_lat=self.origin_lat, origin_lng=self.origin_lng, cell_degrees=self.cell_degrees)
