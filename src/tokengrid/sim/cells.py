from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

CELL_KEY_PATTERN = re.compile(r"^(0|-?[1-9][0-9]*),(0|-?[1-9][0-9]*)$")


def cell_key(i: int, j: int) -> str:
    """Canonical storage key for cell (i, j)."""
    for name, value in (("i", i), ("j", j)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"cell.{name} must be an integer")
    return f"{i},{j}"


def parse_cell_key(key: str) -> "CellCoord":
    if not isinstance(key, str):
        raise ValueError("cell key must be a string")
    match = CELL_KEY_PATTERN.match(key)
    if match is None:
        raise ValueError(f"invalid cell key: {key!r}")
    return CellCoord(i=int(match.group(1)), j=int(match.group(2)))


@dataclass(frozen=True, order=True)
class CellCoord:
    """Integer grid cell (i, j); i grows north, j grows east."""

    i: int
    j: int

    def __post_init__(self) -> None:
        if isinstance(self.i, bool) or not isinstance(self.i, int):
            raise ValueError("cell.i must be an integer")
        if isinstance(self.j, bool) or not isinstance(self.j, int):
            raise ValueError("cell.j must be an integer")

    @property
    def key(self) -> str:
        return cell_key(self.i, self.j)

    def offset(self, di: int, dj: int) -> "CellCoord":
        return CellCoord(i=self.i + di, j=self.j + dj)

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CellCoord":
        return cls(i=data["i"], j=data["j"])


ORIGIN_CELL = CellCoord(0, 0)


def chebyshev_distance(a: CellCoord, b: CellCoord) -> int:
    return max(abs(a.i - b.i), abs(a.j - b.j))
