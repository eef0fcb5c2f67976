from __future__ import annotations

from collections.abc import Callable, Iterable

from tokengrid.sim.cells import CellCoord, cell_key, parse_cell_key
from tokengrid.sim.generation import TokenGenerator

OverlayListener = Callable[[CellCoord, int], None]


def _require_token_value(value: object, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    if value < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return value


class OverlayStore:
    """Sparse record of cells whose token differs from the procedural base.

    A cell with no entry has its base value. Entries equal to the base value are
    allowed; they are only removed by an explicit ``prune_matching_base`` call.
    """

    def __init__(self, entries: Iterable[tuple[str, int]] = ()) -> None:
        self._tokens: dict[str, int] = {}
        self._listeners: list[OverlayListener] = []
        for key, value in entries:
            coord = parse_cell_key(key)
            self._tokens[coord.key] = _require_token_value(value, field_name=f"overlay[{key}]")

    def get(self, i: int, j: int) -> int | None:
        return self._tokens.get(cell_key(i, j))

    def set(self, i: int, j: int, value: int) -> None:
        token = _require_token_value(value, field_name="overlay value")
        self._tokens[cell_key(i, j)] = token
        coord = CellCoord(i, j)
        for listener in list(self._listeners):
            listener(coord, token)

    def add_listener(self, listener: OverlayListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OverlayListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def entries(self) -> list[tuple[str, int]]:
        return sorted(self._tokens.items(), key=lambda item: parse_cell_key(item[0]))

    def prune_matching_base(self, generator: TokenGenerator) -> int:
        """Drop entries equal to their base value; returns the number removed."""
        redundant = [
            key
            for key, value in self._tokens.items()
            if value == generator.base_token(*_key_to_pair(key))
        ]
        for key in redundant:
            del self._tokens[key]
        return len(redundant)

    def copy(self) -> "OverlayStore":
        return OverlayStore(self._tokens.items())

    def __contains__(self, coord: object) -> bool:
        if not isinstance(coord, CellCoord):
            return False
        return coord.key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OverlayStore):
            return NotImplemented
        return self._tokens == other._tokens

    def __repr__(self) -> str:
        return f"OverlayStore({self.entries()!r})"


def _key_to_pair(key: str) -> tuple[int, int]:
    coord = parse_cell_key(key)
    return coord.i, coord.j
