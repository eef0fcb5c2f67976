from pathlib import Path

import pytest

from tokengrid.sim.cells import CellCoord
from tokengrid.sim.movement import (
    BUTTONS_MOVEMENT_MODE,
    CELL_DEGREES,
    GEOLOCATION_MOVEMENT_MODE,
    ORIGIN_LATLNG,
    ButtonMovementSource,
    FilePositionProvider,
    MapProjection,
    PositionMovementSource,
    StaticPositionProvider,
    quantize_displacement,
    round_to_nearest_cell,
    select_movement_source,
)


def _collect(source) -> list[tuple[int, int]]:
    deltas: list[tuple[int, int]] = []
    source.on_delta(lambda di, dj: deltas.append((di, dj)))
    return deltas


def test_projection_places_cells_on_the_origin_grid() -> None:
    projection = MapProjection()

    assert projection.cell_to_latlng(CellCoord(0, 0)) == ORIGIN_LATLNG
    lat, lng = projection.cell_to_latlng(CellCoord(3, -2))
    assert lat == pytest.approx(ORIGIN_LATLNG[0] + 3 * CELL_DEGREES)
    assert lng == pytest.approx(ORIGIN_LATLNG[1] - 2 * CELL_DEGREES)

    (south, west), (north, east) = projection.cell_bounds(CellCoord(1, 1))
    assert north - south == pytest.approx(CELL_DEGREES)
    assert east - west == pytest.approx(CELL_DEGREES)


def test_projection_offsets_invert_cell_positions() -> None:
    projection = MapProjection()
    lat, lng = projection.cell_to_latlng(CellCoord(-5, 9))

    offset_i, offset_j = projection.latlng_to_cell_offset(lat, lng)

    assert offset_i == pytest.approx(-5)
    assert offset_j == pytest.approx(9)


@pytest.mark.parametrize(
    "value,expected",
    [(0.0, 0), (0.49, 0), (0.5, 1), (1.49, 1), (2.5, 3), (-0.4, 0), (-0.5, 0), (-0.51, -1), (-2.5, -2)],
)
def test_round_to_nearest_cell_rounds_half_up(value: float, expected: int) -> None:
    assert round_to_nearest_cell(value) == expected


def test_quantize_displacement_is_independent_per_axis() -> None:
    assert quantize_displacement(0.3 * CELL_DEGREES, 0.2 * CELL_DEGREES) == (0, 0)
    assert quantize_displacement(1.6 * CELL_DEGREES, -0.2 * CELL_DEGREES) == (2, 0)
    assert quantize_displacement(-0.7 * CELL_DEGREES, 2.2 * CELL_DEGREES) == (-1, 2)


def test_button_source_emits_unit_steps() -> None:
    source = ButtonMovementSource()
    deltas = _collect(source)

    for direction in ("north", "east", "south", "west"):
        source.press(direction)

    assert deltas == [(1, 0), (0, 1), (-1, 0), (0, -1)]
    assert source.mode == BUTTONS_MOVEMENT_MODE


def test_button_source_rejects_unknown_direction() -> None:
    with pytest.raises(ValueError, match="unknown direction"):
        ButtonMovementSource().press("up")


def test_position_source_quantizes_and_carries_sub_cell_remainder() -> None:
    lat0, lng0 = ORIGIN_LATLNG
    provider = StaticPositionProvider()
    source = PositionMovementSource(provider)
    deltas = _collect(source)
    source.start()

    provider.push(lat0, lng0)
    provider.push(lat0 + 0.3 * CELL_DEGREES, lng0)
    provider.push(lat0 + 0.6 * CELL_DEGREES, lng0 - 0.2 * CELL_DEGREES)
    provider.push(lat0 + 1.2 * CELL_DEGREES, lng0 - 1.7 * CELL_DEGREES)
    emitted = source.poll()

    assert emitted == 2
    assert deltas == [(1, 0), (0, -2)]


def test_position_source_sub_cell_jitter_emits_nothing() -> None:
    lat0, lng0 = ORIGIN_LATLNG
    source = PositionMovementSource(StaticPositionProvider())
    deltas = _collect(source)

    assert source.on_position(lat0, lng0) is False
    assert source.on_position(lat0 + 0.4 * CELL_DEGREES, lng0 - 0.4 * CELL_DEGREES) is False
    assert source.on_position(lat0 - 0.3 * CELL_DEGREES, lng0 + 0.1 * CELL_DEGREES) is False
    assert deltas == []


def test_selection_prefers_geolocation_when_available() -> None:
    source = select_movement_source(GEOLOCATION_MOVEMENT_MODE, provider=StaticPositionProvider())

    assert isinstance(source, PositionMovementSource)
    assert source.mode == GEOLOCATION_MOVEMENT_MODE


def test_selection_falls_back_to_buttons_when_position_unavailable() -> None:
    reasons: list[str] = []

    source = select_movement_source(
        GEOLOCATION_MOVEMENT_MODE,
        provider=StaticPositionProvider(available=False),
        on_fallback=reasons.append,
    )
    missing = select_movement_source(GEOLOCATION_MOVEMENT_MODE, on_fallback=reasons.append)

    assert isinstance(source, ButtonMovementSource)
    assert isinstance(missing, ButtonMovementSource)
    assert reasons == ["position source unavailable", "no position provider configured"]


def test_selection_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError, match="unsupported movement_mode"):
        select_movement_source("teleport")


def test_file_position_provider_reads_complete_lines_only(tmp_path: Path) -> None:
    feed = tmp_path / "positions.txt"
    feed.write_text("36.99,-122.05\nbad line\n36.98,", encoding="utf-8")
    provider = FilePositionProvider(feed)
    provider.start()

    first = provider.poll()
    with feed.open("a", encoding="utf-8") as handle:
        handle.write("-122.04\n")
    second = provider.poll()
    third = provider.poll()

    assert first == [(36.99, -122.05)]
    assert second == [(36.98, -122.04)]
    assert third == []


def test_file_position_provider_missing_file_is_unavailable(tmp_path: Path) -> None:
    reasons: list[str] = []

    source = select_movement_source(
        GEOLOCATION_MOVEMENT_MODE,
        provider=FilePositionProvider(tmp_path / "absent.txt"),
        on_fallback=reasons.append,
    )

    assert isinstance(source, ButtonMovementSource)
    assert reasons and reasons[0].startswith("position file not found")
