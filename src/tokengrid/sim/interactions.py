from __future__ import annotations

from dataclasses import dataclass

from tokengrid.sim.cells import CellCoord
from tokengrid.sim.generation import TokenGenerator
from tokengrid.sim.grid import GridQuery
from tokengrid.sim.state import WIN_TOKEN_VALUE, GameState
from tokengrid.sim.viewport import RangePolicy

PICKED_UP_OUTCOME = "picked_up"
MERGED_OUTCOME = "merged"
OUT_OF_RANGE_OUTCOME = "out_of_range"
EMPTY_OUTCOME = "empty"
MISMATCH_OUTCOME = "mismatch"
MUTATING_OUTCOMES = {PICKED_UP_OUTCOME, MERGED_OUTCOME}


@dataclass(frozen=True)
class InteractionOutcome:
    outcome: str
    coord: CellCoord
    cell_token: int
    held_token: int | None
    solved: bool = False

    @property
    def changed(self) -> bool:
        return self.outcome in MUTATING_OUTCOMES


class InteractionStateMachine:
    """Pickup/merge rules over a borrowed GameState.

    States are ``empty-handed`` (``held_token is None``) and ``holding(v)``.
    A holding player can only merge into a cell showing the same value; there
    is no way to drop a token into an empty cell.
    """

    def __init__(
        self,
        generator: TokenGenerator,
        policy: RangePolicy,
        *,
        win_token_value: int = WIN_TOKEN_VALUE,
    ) -> None:
        self.generator = generator
        self.policy = policy
        self.win_token_value = win_token_value

    def interact(self, state: GameState, i: int, j: int) -> InteractionOutcome:
        coord = CellCoord(i, j)
        grid = GridQuery(self.generator, state.overlay)
        token = grid.token_at(coord)

        if not self.policy.in_interact_range(state.player, coord):
            return InteractionOutcome(OUT_OF_RANGE_OUTCOME, coord, token, state.held_token)

        held = state.held_token
        if held is None:
            if token <= 0:
                return InteractionOutcome(EMPTY_OUTCOME, coord, token, None)
            state.overlay.set(i, j, 0)
            state.held_token = token
            return InteractionOutcome(PICKED_UP_OUTCOME, coord, 0, token)

        if token != held:
            return InteractionOutcome(MISMATCH_OUTCOME, coord, token, held)

        merged = held * 2
        state.overlay.set(i, j, merged)
        state.held_token = None
        return InteractionOutcome(
            MERGED_OUTCOME,
            coord,
            merged,
            None,
            solved=merged >= self.win_token_value,
        )
