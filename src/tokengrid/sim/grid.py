from __future__ import annotations

from tokengrid.sim.cells import CellCoord
from tokengrid.sim.generation import TokenGenerator
from tokengrid.sim.overlay import OverlayStore


class GridQuery:
    """Two-tier token lookup: overlay entry if present, procedural base otherwise."""

    def __init__(self, generator: TokenGenerator, overlay: OverlayStore) -> None:
        self.generator = generator
        self.overlay = overlay

    def base_token(self, i: int, j: int) -> int:
        return self.generator.base_token(i, j)

    def effective_token(self, i: int, j: int) -> int:
        override = self.overlay.get(i, j)
        if override is not None:
            return override
        return self.generator.base_token(i, j)

    def token_at(self, coord: CellCoord) -> int:
        return self.effective_token(coord.i, coord.j)

    def is_overridden(self, coord: CellCoord) -> bool:
        return coord in self.overlay
