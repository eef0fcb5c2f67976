from __future__ import annotations

from dataclasses import dataclass

from tokengrid.sim.rng import DEFAULT_WORLD_SALT, luck

BASE_TOKEN_PROBABILITY = 0.4
BASE_TOKEN_VALUE = 1
BASE_STREAM_NAME = "base"


def base_token(i: int, j: int, *, salt: str = DEFAULT_WORLD_SALT) -> int:
    """Procedural token for a cell that the player has never touched."""
    if luck(f"{i},{j},{BASE_STREAM_NAME}", salt=salt) < BASE_TOKEN_PROBABILITY:
        return BASE_TOKEN_VALUE
    return 0


@dataclass(frozen=True)
class TokenGenerator:
    """Base token lookup bound to one world salt. Nothing is materialized."""

    salt: str = DEFAULT_WORLD_SALT

    def __post_init__(self) -> None:
        if not isinstance(self.salt, str) or not self.salt:
            raise ValueError("salt must be a non-empty string")

    def base_token(self, i: int, j: int) -> int:
        return base_token(i, j, salt=self.salt)
