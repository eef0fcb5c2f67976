import pytest

from tokengrid.content.io import SAVE_STORAGE_KEY, JsonFileStorage, decode_game_state, encode_game_state
from tokengrid.sim.cells import CellCoord
from tokengrid.sim.core import MAX_EVENT_TRACE, Game, GameInput
from tokengrid.sim.interactions import MERGED_OUTCOME, OUT_OF_RANGE_OUTCOME, PICKED_UP_OUTCOME
from tokengrid.sim.movement import (
    CELL_DEGREES,
    GEOLOCATION_MOVEMENT_MODE,
    ORIGIN_LATLNG,
    ButtonMovementSource,
    PositionMovementSource,
    StaticPositionProvider,
)
from tokengrid.sim.overlay import OverlayStore
from tokengrid.sim.state import GameConfig, GameState
from tokengrid.sim.surfaces import MemoryStorage, RecordingDisplay


def _build_game(salt: str = "tokengrid", storage: MemoryStorage | None = None) -> tuple[Game, RecordingDisplay, MemoryStorage]:
    display = RecordingDisplay()
    storage = storage if storage is not None else MemoryStorage()
    game = Game(config=GameConfig(salt=salt), display=display, storage=storage)
    return game, display, storage


def _stored_state(storage: MemoryStorage) -> GameState:
    return decode_game_state(storage.values[SAVE_STORAGE_KEY])


def test_start_without_save_draws_origin_window() -> None:
    game, display, storage = _build_game()

    restored = game.start()

    assert restored is False
    assert display.camera_calls == [ORIGIN_LATLNG]
    assert len(display.last_window()) == 441
    assert display.statuses[-1].held_token is None
    assert display.statuses[-1].player == CellCoord(0, 0)
    assert storage.write_count == 0


def test_move_pans_camera_redraws_and_persists() -> None:
    game, display, storage = _build_game()
    game.start()

    moved = game.movement_delta(2, -3)

    assert moved is True
    assert game.state.player == CellCoord(2, -3)
    assert display.camera_calls[-1] == game.projection.cell_to_latlng(CellCoord(2, -3))
    assert len(display.windows) == 2
    assert storage.write_count == 1
    assert _stored_state(storage).player == CellCoord(2, -3)


def test_zero_delta_is_a_no_op() -> None:
    game, display, storage = _build_game()
    game.start()

    moved = game.movement_delta(0, 0)

    assert moved is False
    assert len(display.camera_calls) == 1
    assert len(display.windows) == 1
    assert storage.write_count == 0


def test_movement_delta_rejects_non_integer_steps() -> None:
    game, _, _ = _build_game()

    with pytest.raises(ValueError, match="movement delta di must be an integer"):
        game.movement_delta(0.5, 0)


def test_button_source_drives_the_player() -> None:
    game, _, storage = _build_game()
    game.start()
    buttons = ButtonMovementSource()
    game.attach_movement_source(buttons)

    buttons.press("north")
    buttons.press("east")
    buttons.press("east")

    assert game.state.player == CellCoord(1, 2)
    assert storage.write_count == 3


def test_sub_cell_position_jitter_neither_pans_nor_persists() -> None:
    game, display, storage = _build_game()
    game.start()
    provider = StaticPositionProvider()
    source = PositionMovementSource(provider, game.projection)
    game.attach_movement_source(source)
    source.start()
    lat0, lng0 = ORIGIN_LATLNG

    provider.push(lat0, lng0)
    provider.push(lat0 + 0.3 * CELL_DEGREES, lng0 - 0.2 * CELL_DEGREES)
    source.poll()

    assert game.state.player == CellCoord(0, 0)
    assert len(display.camera_calls) == 1
    assert storage.write_count == 0

    provider.push(lat0 + 0.7 * CELL_DEGREES, lng0 + 1.6 * CELL_DEGREES)
    source.poll()

    assert game.state.player == CellCoord(1, 2)
    assert storage.write_count == 1


def test_fixture_world_pickup_then_merge_persists_each_step() -> None:
    game, display, storage = _build_game(salt="fixture-7")
    game.start()

    pickup = game.cell_interact(0, 1)

    assert pickup.outcome == PICKED_UP_OUTCOME
    assert game.state.held_token == 1
    assert game.effective_token(0, 1) == 0
    assert storage.write_count == 1
    views = {view.coord: view for view in display.last_window()}
    assert views[CellCoord(0, 1)].token is None
    assert display.statuses[-1].held_token == 1

    merge = game.cell_interact(0, 2)

    assert merge.outcome == MERGED_OUTCOME
    assert game.effective_token(0, 2) == 2
    assert game.state.held_token is None
    assert storage.write_count == 2
    stored = _stored_state(storage)
    assert stored.overlay.entries() == [("0,1", 0), ("0,2", 2)]
    assert stored.held_token is None
    assert display.solved_values == []


def test_out_of_range_interaction_does_not_redraw_or_persist() -> None:
    game, display, storage = _build_game()
    game.start()

    outcome = game.cell_interact(0, 4)

    assert outcome.outcome == OUT_OF_RANGE_OUTCOME
    assert len(display.windows) == 1
    assert storage.write_count == 0
    assert game.get_event_trace() == []


def test_winning_merge_notifies_once_and_play_continues() -> None:
    display = RecordingDisplay()
    storage = MemoryStorage()
    state = GameState(overlay=OverlayStore([("0,1", 16), ("1,1", 16), ("2,2", 32)]))
    game = Game(display=display, storage=storage, state=state)

    game.cell_interact(0, 1)
    winning = game.cell_interact(1, 1)

    assert winning.solved is True
    assert display.solved_values == [32]
    assert game.status().solved is True
    assert "solved!" in display.statuses[-1].text()

    game.cell_interact(1, 1)
    second = game.cell_interact(2, 2)

    assert second.outcome == MERGED_OUTCOME
    assert game.effective_token(2, 2) == 64
    assert display.solved_values == [32, 64]


def test_input_raised_from_display_callback_is_queued_until_current_one_finishes() -> None:
    storage = MemoryStorage()

    class ReentrantDisplay(RecordingDisplay):
        def __init__(self) -> None:
            super().__init__()
            self.game: Game | None = None
            self.nested_results: list[object] = []

        def set_camera(self, lat: float, lng: float) -> None:
            super().set_camera(lat, lng)
            if self.game is not None and not self.nested_results:
                self.nested_results.append(self.game.movement_delta(0, 1))

    display = ReentrantDisplay()
    game = Game(display=display, storage=storage)
    game.start()
    display.game = game

    result = game.movement_delta(1, 0)

    assert result is True
    assert display.nested_results == [None]
    assert game.state.player == CellCoord(1, 1)
    assert display.camera_calls[-1] == game.projection.cell_to_latlng(CellCoord(1, 1))
    assert storage.write_count == 2
    assert _stored_state(storage).player == CellCoord(1, 1)


def test_movement_mode_change_is_persisted() -> None:
    game, display, storage = _build_game()
    game.start()

    changed = game.set_movement_mode(GEOLOCATION_MOVEMENT_MODE)
    unchanged = game.set_movement_mode(GEOLOCATION_MOVEMENT_MODE)

    assert changed is True
    assert unchanged is False
    assert storage.write_count == 1
    assert _stored_state(storage).movement_mode == GEOLOCATION_MOVEMENT_MODE
    assert display.statuses[-1].movement_mode == GEOLOCATION_MOVEMENT_MODE


def test_set_movement_mode_rejects_unknown_mode() -> None:
    game, _, _ = _build_game()

    with pytest.raises(ValueError, match="unsupported movement_mode"):
        game.set_movement_mode("teleport")


def test_restart_restores_saved_game() -> None:
    game, _, storage = _build_game()
    game.start()
    game.movement_delta(0, 1)
    game.cell_interact(0, 1)

    restarted, display, _ = _build_game(storage=storage)
    restored = restarted.start()

    assert restored is True
    assert restarted.state == game.state
    assert display.camera_calls == [game.projection.cell_to_latlng(CellCoord(0, 1))]


def test_start_discards_corrupt_save() -> None:
    storage = MemoryStorage({SAVE_STORAGE_KEY: "{not json"})
    discarded: list[str] = []
    game, _, _ = _build_game(storage=storage)

    restored = game.start(on_discard=discarded.append)

    assert restored is False
    assert SAVE_STORAGE_KEY not in storage.values
    assert len(discarded) == 1
    assert "not valid JSON" in discarded[0]
    assert game.state == GameState()


def test_reset_clears_storage_and_returns_to_origin() -> None:
    storage = MemoryStorage()
    saved = GameState(player=CellCoord(5, 5), held_token=2, overlay=OverlayStore([("5,6", 0)]))
    storage.set(SAVE_STORAGE_KEY, encode_game_state(saved))
    game, display, _ = _build_game(storage=storage)
    game.start()

    game.reset()

    assert SAVE_STORAGE_KEY not in storage.values
    assert game.state == GameState()
    assert display.camera_calls[-1] == ORIGIN_LATLNG
    assert game.solved is False


def test_event_trace_records_state_changes_and_is_bounded() -> None:
    game, _, _ = _build_game()
    game.start()

    game.movement_delta(1, 0)
    game.movement_delta(-1, 0)
    game.cell_interact(0, 1)
    game.set_movement_mode(GEOLOCATION_MOVEMENT_MODE)

    trace = game.get_event_trace()
    assert [entry["event_type"] for entry in trace] == ["moved", "moved", "picked_up", "set_movement_mode"]
    assert trace[2]["params"]["cell"] == {"i": 0, "j": 1}

    trace[0]["event_type"] = "edited"
    assert game.get_event_trace()[0]["event_type"] == "moved"

    for step in range(MAX_EVENT_TRACE + 10):
        game.movement_delta(1 if step % 2 == 0 else -1, 0)

    assert len(game.get_event_trace()) == MAX_EVENT_TRACE


def test_game_input_rejects_unknown_type() -> None:
    with pytest.raises(ValueError, match="unsupported input_type"):
        GameInput("teleport")


def test_start_recovers_from_undecodable_save_file(tmp_path) -> None:
    storage = JsonFileStorage(tmp_path)
    path = storage.path_for(SAVE_STORAGE_KEY)
    path.write_bytes(b"\xff\xfe{garbage")
    game = Game(display=RecordingDisplay(), storage=storage)

    restored = game.start()

    assert restored is False
    assert game.state == GameState()
    assert not path.exists()


def test_inputs_queued_behind_a_failing_input_are_dropped() -> None:
    class FailingDisplay(RecordingDisplay):
        def __init__(self) -> None:
            super().__init__()
            self.game: Game | None = None

        def draw_cell_window(self, cells) -> None:
            super().draw_cell_window(cells)
            if self.game is not None:
                game, self.game = self.game, None
                game.movement_delta(1, 0)
                raise RuntimeError("display went away")

    display = FailingDisplay()
    game = Game(display=display, storage=MemoryStorage())
    game.start()
    display.game = game

    with pytest.raises(RuntimeError, match="display went away"):
        game.cell_interact(0, 1)
    outcome = game.cell_interact(5, 5)

    assert outcome.outcome == OUT_OF_RANGE_OUTCOME
    assert game.state.player == CellCoord(0, 0)
