from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from tokengrid.sim.cells import CellCoord

ORIGIN_LATLNG = (36.997936938057016, -122.05703507501151)
CELL_DEGREES = 1e-4

BUTTONS_MOVEMENT_MODE = "buttons"
GEOLOCATION_MOVEMENT_MODE = "geolocation"
MOVEMENT_MODES = (BUTTONS_MOVEMENT_MODE, GEOLOCATION_MOVEMENT_MODE)

DIRECTION_DELTAS: dict[str, tuple[int, int]] = {
    "north": (1, 0),
    "south": (-1, 0),
    "east": (0, 1),
    "west": (0, -1),
}

LatLng = tuple[float, float]
LatLngBounds = tuple[LatLng, LatLng]
DeltaHandler = Callable[[int, int], None]


class PositionUnavailableError(RuntimeError):
    """Raised by a position provider that cannot deliver fixes."""


@dataclass(frozen=True)
class MapProjection:
    """Maps grid cells onto latitude/longitude rectangles."""

    origin_lat: float = ORIGIN_LATLNG[0]
    origin_lng: float = ORIGIN_LATLNG[1]
    cell_degrees: float = CELL_DEGREES

    def __post_init__(self) -> None:
        if not isinstance(self.cell_degrees, (int, float)) or self.cell_degrees <= 0:
            raise ValueError("cell_degrees must be > 0")

    def cell_to_latlng(self, coord: CellCoord) -> LatLng:
        """South-west corner of the cell; also the camera target for the player."""
        return (
            self.origin_lat + coord.i * self.cell_degrees,
            self.origin_lng + coord.j * self.cell_degrees,
        )

    def cell_bounds(self, coord: CellCoord) -> LatLngBounds:
        return (
            self.cell_to_latlng(coord),
            self.cell_to_latlng(coord.offset(1, 1)),
        )

    def latlng_to_cell_offset(self, lat: float, lng: float) -> tuple[float, float]:
        return (
            (lat - self.origin_lat) / self.cell_degrees,
            (lng - self.origin_lng) / self.cell_degrees,
        )


def round_to_nearest_cell(value: float) -> int:
    """Round half up, matching the browser's Math.round on both signs."""
    return int(math.floor(value + 0.5))


def quantize_displacement(d_lat: float, d_lng: float, cell_degrees: float = CELL_DEGREES) -> tuple[int, int]:
    return (
        round_to_nearest_cell(d_lat / cell_degrees),
        round_to_nearest_cell(d_lng / cell_degrees),
    )


class MovementSource:
    """Producer of whole-cell movement deltas.

    Every variant funnels into the same ``(di, dj)`` handler contract; the game
    driver never sees where a step came from.
    """

    mode: str

    def __init__(self) -> None:
        self._handlers: list[DeltaHandler] = []

    def on_delta(self, handler: DeltaHandler) -> None:
        self._handlers.append(handler)

    def start(self) -> None:
        """Begin producing deltas. May raise PositionUnavailableError."""

    def stop(self) -> None:
        """Stop producing deltas."""

    def poll(self) -> int:
        """Drain pending input; returns the number of deltas emitted."""
        return 0

    def _emit(self, di: int, dj: int) -> bool:
        if di == 0 and dj == 0:
            return False
        for handler in list(self._handlers):
            handler(di, dj)
        return True


class ButtonMovementSource(MovementSource):
    mode = BUTTONS_MOVEMENT_MODE

    def press(self, direction: str) -> None:
        if direction not in DIRECTION_DELTAS:
            raise ValueError(f"unknown direction: {direction}")
        di, dj = DIRECTION_DELTAS[direction]
        self._emit(di, dj)


class PositionProvider:
    """Source of absolute (lat, lng) fixes."""

    def start(self) -> None:
        """Acquire the underlying device; raise PositionUnavailableError on failure."""

    def poll(self) -> list[LatLng]:
        return []

    def stop(self) -> None:
        """Release the underlying device."""


class StaticPositionProvider(PositionProvider):
    """Replays a fixed sequence of fixes, one batch per poll."""

    def __init__(self, fixes: list[LatLng] | None = None, *, available: bool = True) -> None:
        self._fixes = list(fixes or [])
        self._available = available

    def push(self, lat: float, lng: float) -> None:
        self._fixes.append((lat, lng))

    def start(self) -> None:
        if not self._available:
            raise PositionUnavailableError("position source unavailable")

    def poll(self) -> list[LatLng]:
        fixes, self._fixes = self._fixes, []
        return fixes


class FilePositionProvider(PositionProvider):
    """Follows a text file of ``lat,lng`` lines appended by an external tracker."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._offset = 0

    def start(self) -> None:
        if not self.path.is_file():
            raise PositionUnavailableError(f"position file not found: {self.path}")
        self._offset = 0

    def poll(self) -> list[LatLng]:
        if not self.path.is_file():
            return []
        with self.path.open("rb") as handle:
            handle.seek(self._offset)
            chunk = handle.read()
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        # Partial trailing line stays unread until its newline arrives.
        self._offset += end + 1
        fixes: list[LatLng] = []
        for line in chunk[:end].decode("utf-8", errors="replace").splitlines():
            parts = line.strip().split(",")
            if len(parts) != 2:
                continue
            try:
                fixes.append((float(parts[0]), float(parts[1])))
            except ValueError:
                continue
        return fixes


class PositionMovementSource(MovementSource):
    """Turns absolute position fixes into quantized whole-cell deltas.

    The first fix anchors the source. Each later fix is measured from the anchor;
    when the rounded displacement is non-zero it is emitted and the anchor moves
    by exactly that many cells, so sub-cell remainders carry over.
    """

    mode = GEOLOCATION_MOVEMENT_MODE

    def __init__(self, provider: PositionProvider, projection: MapProjection | None = None) -> None:
        super().__init__()
        self.provider = provider
        self.projection = projection or MapProjection()
        self._anchor: LatLng | None = None

    def start(self) -> None:
        self.provider.start()
        self._anchor = None

    def stop(self) -> None:
        self.provider.stop()

    def poll(self) -> int:
        emitted = 0
        for lat, lng in self.provider.poll():
            if self.on_position(lat, lng):
                emitted += 1
        return emitted

    def on_position(self, lat: float, lng: float) -> bool:
        if self._anchor is None:
            self._anchor = (lat, lng)
            return False
        cell_degrees = self.projection.cell_degrees
        di, dj = quantize_displacement(lat - self._anchor[0], lng - self._anchor[1], cell_degrees)
        if di == 0 and dj == 0:
            return False
        self._anchor = (self._anchor[0] + di * cell_degrees, self._anchor[1] + dj * cell_degrees)
        return self._emit(di, dj)


def select_movement_source(
    mode: str,
    *,
    provider: PositionProvider | None = None,
    projection: MapProjection | None = None,
    on_fallback: Callable[[str], None] | None = None,
) -> MovementSource:
    """Start the source for ``mode``; fall back to buttons when positions are unavailable."""
    if mode not in MOVEMENT_MODES:
        raise ValueError(f"unsupported movement_mode: {mode}")
    if mode == GEOLOCATION_MOVEMENT_MODE:
        if provider is None:
            reason = "no position provider configured"
        else:
            source = PositionMovementSource(provider, projection)
            try:
                source.start()
            except PositionUnavailableError as exc:
                reason = str(exc)
            else:
                return source
        if on_fallback is not None:
            on_fallback(reason)
    source = ButtonMovementSource()
    source.start()
    return source
