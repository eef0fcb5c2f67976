from __future__ import annotations

import copy
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tokengrid.content.io import SAVE_STORAGE_KEY, load_game_state, save_game_state
from tokengrid.sim.cells import CellCoord
from tokengrid.sim.grid import GridQuery
from tokengrid.sim.interactions import InteractionOutcome, InteractionStateMachine
from tokengrid.sim.movement import MovementSource, MapProjection
from tokengrid.sim.state import GameConfig, GameState, validate_movement_mode
from tokengrid.sim.surfaces import DisplaySurface, MemoryStorage, StatusView, StorageBackend
from tokengrid.sim.viewport import CellView, build_cell_window

MOVE_INPUT_TYPE = "movement_delta"
INTERACT_INPUT_TYPE = "cell_interact"
SET_MOVEMENT_MODE_INPUT_TYPE = "set_movement_mode"
RESET_INPUT_TYPE = "reset"
INPUT_TYPES = {MOVE_INPUT_TYPE, INTERACT_INPUT_TYPE, SET_MOVEMENT_MODE_INPUT_TYPE, RESET_INPUT_TYPE}

MOVED_EVENT_TYPE = "moved"
SOLVED_EVENT_TYPE = "solved"
MAX_EVENT_TRACE = 256


@dataclass
class GameInput:
    input_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.input_type not in INPUT_TYPES:
            raise ValueError(f"unsupported input_type: {self.input_type}")
        if not isinstance(self.params, dict):
            raise ValueError("params must be a dict")

    def to_dict(self) -> dict[str, Any]:
        return {"input_type": self.input_type, "params": dict(self.params)}


class PlayerController:
    """Owns the player's cell; the camera follows the cell's corner."""

    def __init__(self, projection: MapProjection) -> None:
        self.projection = projection

    def move(self, state: GameState, di: int, dj: int) -> bool:
        for name, value in (("di", di), ("dj", dj)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"movement delta {name} must be an integer")
        if di == 0 and dj == 0:
            return False
        state.player = state.player.offset(di, dj)
        return True

    def camera_target(self, state: GameState) -> tuple[float, float]:
        return self.projection.cell_to_latlng(state.player)


class Game:
    """Single owner of the GameState; every input runs to completion in FIFO order.

    An input raised while another is being handled (for example from inside a
    display callback) is queued and handled after the current one has redrawn
    and persisted.
    """

    def __init__(
        self,
        *,
        config: GameConfig | None = None,
        display: DisplaySurface | None = None,
        storage: StorageBackend | None = None,
        state: GameState | None = None,
        storage_key: str = SAVE_STORAGE_KEY,
    ) -> None:
        self.config = config or GameConfig()
        self.generator = self.config.generator()
        self.policy = self.config.range_policy()
        self.projection = self.config.projection()
        self.display = display or DisplaySurface()
        self.storage = storage or MemoryStorage()
        self.storage_key = storage_key
        self.controller = PlayerController(self.projection)
        self.interactions = InteractionStateMachine(
            self.generator,
            self.policy,
            win_token_value=self.config.win_token_value,
        )
        self.state = GameState()
        self.solved = False
        self.event_trace: list[dict[str, Any]] = []
        self._queue: deque[GameInput] = deque()
        self._draining = False
        self._dirty = False
        self._adopt_state(state if state is not None else GameState())

    def start(self, *, on_discard: Callable[[str], None] | None = None) -> bool:
        """Restore the stored game if any, then draw. Returns True when a save was restored."""
        restored = load_game_state(self.storage, key=self.storage_key, on_discard=on_discard)
        self._adopt_state(restored if restored is not None else GameState())
        self._dirty = False
        self._refresh_camera()
        self.redraw()
        return restored is not None

    def grid(self) -> GridQuery:
        return GridQuery(self.generator, self.state.overlay)

    def effective_token(self, i: int, j: int) -> int:
        return self.grid().effective_token(i, j)

    def cell_window(self) -> list[CellView]:
        return build_cell_window(self.grid(), self.policy, self.projection, self.state.player)

    def status(self) -> StatusView:
        return StatusView(
            held_token=self.state.held_token,
            player=self.state.player,
            movement_mode=self.state.movement_mode,
            solved=self.solved,
        )

    def redraw(self) -> None:
        self.display.draw_cell_window(self.cell_window())
        self.display.render_status(self.status())

    def save(self) -> str:
        serialized = save_game_state(self.storage, self.state, key=self.storage_key)
        self._dirty = False
        return serialized

    def attach_movement_source(self, source: MovementSource) -> None:
        source.on_delta(self.movement_delta)

    def movement_delta(self, di: int, dj: int) -> bool | None:
        return self.dispatch(GameInput(MOVE_INPUT_TYPE, {"di": di, "dj": dj}))

    def cell_interact(self, i: int, j: int) -> InteractionOutcome | None:
        return self.dispatch(GameInput(INTERACT_INPUT_TYPE, {"i": i, "j": j}))

    def set_movement_mode(self, mode: str) -> bool | None:
        validate_movement_mode(mode)
        return self.dispatch(GameInput(SET_MOVEMENT_MODE_INPUT_TYPE, {"mode": mode}))

    def reset(self) -> None:
        self.dispatch(GameInput(RESET_INPUT_TYPE))

    def dispatch(self, game_input: GameInput) -> Any:
        """Handle ``game_input``; returns its result, or None when it was queued behind another."""
        self._queue.append(game_input)
        if self._draining:
            return None
        self._draining = True
        result: Any = None
        first = True
        try:
            while self._queue:
                current = self._queue.popleft()
                handled = self._handle(current)
                if first:
                    result = handled
                    first = False
        except Exception:
            # Inputs queued behind a failed one are dropped with it.
            self._queue.clear()
            raise
        finally:
            self._draining = False
        return result

    def get_event_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.event_trace)

    def _handle(self, game_input: GameInput) -> Any:
        params = game_input.params
        if game_input.input_type == MOVE_INPUT_TYPE:
            return self._handle_move(params["di"], params["dj"])
        if game_input.input_type == INTERACT_INPUT_TYPE:
            return self._handle_interact(params["i"], params["j"])
        if game_input.input_type == SET_MOVEMENT_MODE_INPUT_TYPE:
            return self._handle_set_movement_mode(params["mode"])
        return self._handle_reset()

    def _handle_move(self, di: int, dj: int) -> bool:
        if not self.controller.move(self.state, di, dj):
            return False
        self._dirty = True
        self._record_event(MOVED_EVENT_TYPE, {"di": di, "dj": dj, "player_cell": self.state.player.to_dict()})
        self._refresh_camera()
        self.redraw()
        self._flush()
        return True

    def _handle_interact(self, i: int, j: int) -> InteractionOutcome:
        outcome = self.interactions.interact(self.state, i, j)
        if not outcome.changed:
            return outcome
        self._record_event(
            outcome.outcome,
            {
                "cell": outcome.coord.to_dict(),
                "cell_token": outcome.cell_token,
                "held_token": outcome.held_token,
            },
        )
        if outcome.solved:
            self.solved = True
            self._record_event(SOLVED_EVENT_TYPE, {"cell": outcome.coord.to_dict(), "value": outcome.cell_token})
        self.redraw()
        self._flush()
        if outcome.solved:
            self.display.notify_solved(outcome.cell_token)
        return outcome

    def _handle_set_movement_mode(self, mode: str) -> bool:
        if mode == self.state.movement_mode:
            return False
        self.state.movement_mode = mode
        self._dirty = True
        self._record_event(SET_MOVEMENT_MODE_INPUT_TYPE, {"mode": mode})
        self.display.render_status(self.status())
        self._flush()
        return True

    def _handle_reset(self) -> None:
        self.storage.remove(self.storage_key)
        self._adopt_state(GameState())
        self.solved = False
        self._dirty = False
        self._record_event(RESET_INPUT_TYPE, {})
        self._refresh_camera()
        self.redraw()

    def _adopt_state(self, state: GameState) -> None:
        self.state.overlay.remove_listener(self._on_overlay_change)
        self.state = state
        self.state.overlay.add_listener(self._on_overlay_change)

    def _on_overlay_change(self, coord: CellCoord, value: int) -> None:
        self._dirty = True

    def _flush(self) -> None:
        if self._dirty:
            self.save()

    def _refresh_camera(self) -> None:
        lat, lng = self.controller.camera_target(self.state)
        self.display.set_camera(lat, lng)

    def _record_event(self, event_type: str, params: dict[str, Any]) -> None:
        self.event_trace.append({"event_type": event_type, "params": params})
        if len(self.event_trace) > MAX_EVENT_TRACE:
            del self.event_trace[: len(self.event_trace) - MAX_EVENT_TRACE]
