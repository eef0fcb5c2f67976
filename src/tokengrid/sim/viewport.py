from __future__ import annotations

from dataclasses import dataclass

from tokengrid.sim.cells import CellCoord, chebyshev_distance
from tokengrid.sim.grid import GridQuery
from tokengrid.sim.movement import LatLngBounds, MapProjection

DRAW_RADIUS = 10
INTERACT_RADIUS = 3


@dataclass(frozen=True)
class RangePolicy:
    """Square (Chebyshev) windows around the player for drawing and reach."""

    draw_radius: int = DRAW_RADIUS
    interact_radius: int = INTERACT_RADIUS

    def __post_init__(self) -> None:
        if not isinstance(self.draw_radius, int) or self.draw_radius < 0:
            raise ValueError("draw_radius must be a non-negative integer")
        if not isinstance(self.interact_radius, int) or self.interact_radius < 0:
            raise ValueError("interact_radius must be a non-negative integer")

    def in_draw_range(self, player: CellCoord, cell: CellCoord) -> bool:
        return chebyshev_distance(player, cell) <= self.draw_radius

    def in_interact_range(self, player: CellCoord, cell: CellCoord) -> bool:
        return chebyshev_distance(player, cell) <= self.interact_radius

    def window_cells(self, player: CellCoord) -> list[CellCoord]:
        radius = self.draw_radius
        return [
            CellCoord(player.i + di, player.j + dj)
            for di in range(-radius, radius + 1)
            for dj in range(-radius, radius + 1)
        ]


@dataclass(frozen=True)
class CellView:
    coord: CellCoord
    bounds: LatLngBounds
    is_reachable: bool
    token: int | None


def build_cell_window(
    grid: GridQuery,
    policy: RangePolicy,
    projection: MapProjection,
    player: CellCoord,
) -> list[CellView]:
    views: list[CellView] = []
    for coord in policy.window_cells(player):
        token = grid.token_at(coord)
        views.append(
            CellView(
                coord=coord,
                bounds=projection.cell_bounds(coord),
                is_reachable=policy.in_interact_range(player, coord),
                token=token if token > 0 else None,
            )
        )
    return views
