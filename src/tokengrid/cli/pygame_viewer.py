from __future__ import annotations

import argparse
import importlib.metadata
import math
import os
import platform
import sys
from typing import Any

from tokengrid.content.io import JsonFileStorage
from tokengrid.sim.cells import CellCoord
from tokengrid.sim.core import Game
from tokengrid.sim.hash import state_hash
from tokengrid.sim.interactions import MERGED_OUTCOME, PICKED_UP_OUTCOME
from tokengrid.sim.movement import (
    BUTTONS_MOVEMENT_MODE,
    GEOLOCATION_MOVEMENT_MODE,
    MOVEMENT_MODES,
    ButtonMovementSource,
    FilePositionProvider,
    MapProjection,
    MovementSource,
    select_movement_source,
)
from tokengrid.sim.state import GameConfig
from tokengrid.sim.surfaces import DisplaySurface, StatusView
from tokengrid.sim.viewport import CellView

CELL_PIXELS = 34
WINDOW_SIZE = (980, 820)
STATUS_HEIGHT = 76
VIEWPORT_MARGIN = 12
DEFAULT_SAVE_DIR = "saves"

BACKGROUND_COLOR = (17, 18, 25)
CELL_OUTLINE_COLOR = (70, 72, 84)
REACHABLE_FILL_COLOR = (44, 62, 52)
REACHABLE_OUTLINE_COLOR = (120, 200, 140)
PLAYER_COLOR = (255, 243, 130)
SOLVED_COLOR = (255, 200, 80)
TOKEN_COLORS: dict[int, tuple[int, int, int]] = {
    1: (90, 150, 220),
    2: (80, 180, 170),
    4: (120, 190, 90),
    8: (210, 180, 70),
    16: (230, 130, 60),
    32: (220, 80, 80),
}

KEY_DIRECTIONS = {
    "K_UP": "north",
    "K_w": "north",
    "K_DOWN": "south",
    "K_s": "south",
    "K_RIGHT": "east",
    "K_d": "east",
    "K_LEFT": "west",
    "K_a": "west",
}

pygame: Any | None = None


class PygameDisplay(DisplaySurface):
    """Keeps what the game asked to show; ``draw`` paints it each frame."""

    def __init__(self) -> None:
        self.camera: tuple[float, float] | None = None
        self.cells: list[CellView] = []
        self.status: StatusView | None = None
        self.solved_value: int | None = None
        self.message: str | None = None

    def set_camera(self, lat: float, lng: float) -> None:
        self.camera = (lat, lng)

    def draw_cell_window(self, cells: list[CellView]) -> None:
        self.cells = list(cells)

    def render_status(self, status: StatusView) -> None:
        self.status = status

    def notify_solved(self, value: int) -> None:
        self.solved_value = value
        print(f"[tokengrid.viewer] solved value={value}")

    def draw(self, screen: pygame.Surface, font: pygame.font.Font, small_font: pygame.font.Font, projection: MapProjection) -> None:
        screen.fill(BACKGROUND_COLOR)
        viewport = _viewport_rect()
        old_clip = screen.get_clip()
        screen.set_clip(viewport)
        if self.camera is not None:
            player = self.status.player if self.status is not None else None
            for view in self.cells:
                rect = _cell_rect(view, self.camera, projection, viewport.center)
                fill = TOKEN_COLORS.get(view.token, (160, 90, 200)) if view.token is not None else None
                if fill is None and view.is_reachable:
                    fill = REACHABLE_FILL_COLOR
                if fill is not None:
                    pygame.draw.rect(screen, fill, rect)
                outline = REACHABLE_OUTLINE_COLOR if view.is_reachable else CELL_OUTLINE_COLOR
                pygame.draw.rect(screen, outline, rect, 1)
                if view.token is not None:
                    label = small_font.render(str(view.token), True, (245, 245, 250))
                    screen.blit(label, label.get_rect(center=rect.center))
                if view.coord == player:
                    pygame.draw.circle(screen, PLAYER_COLOR, rect.center, CELL_PIXELS // 4)
                    pygame.draw.circle(screen, (15, 15, 15), rect.center, CELL_PIXELS // 4, 1)
        screen.set_clip(old_clip)
        pygame.draw.rect(screen, (64, 68, 84), viewport, 1)
        self._draw_status(screen, font)

    def _draw_status(self, screen: pygame.Surface, font: pygame.font.Font) -> None:
        lines = []
        if self.status is not None:
            lines.append(self.status.text())
        lines.append("click cell: pick up / merge | arrows/WASD move | M mode | N new game | ESC quit")
        if self.solved_value is not None:
            lines[0] = f"{lines[0]} | reached {self.solved_value}!"
        elif self.message:
            lines.append(self.message)
        y = WINDOW_SIZE[1] - STATUS_HEIGHT + 6
        for index, line in enumerate(lines):
            color = SOLVED_COLOR if index == 0 and self.solved_value is not None else (240, 240, 240)
            screen.blit(font.render(line, True, color), (VIEWPORT_MARGIN, y))
            y += 22


def _viewport_rect() -> pygame.Rect:
    return pygame.Rect(
        VIEWPORT_MARGIN,
        VIEWPORT_MARGIN,
        WINDOW_SIZE[0] - VIEWPORT_MARGIN * 2,
        WINDOW_SIZE[1] - STATUS_HEIGHT - VIEWPORT_MARGIN * 2,
    )


def _latlng_to_pixel(
    lat: float,
    lng: float,
    camera: tuple[float, float],
    projection: MapProjection,
    center: tuple[int, int],
) -> tuple[float, float]:
    """North is up: latitude grows towards smaller pixel y."""
    x = center[0] + (lng - camera[1]) / projection.cell_degrees * CELL_PIXELS
    y = center[1] - (lat - camera[0]) / projection.cell_degrees * CELL_PIXELS
    return (x, y)


def _cell_pixel_box(
    view: CellView,
    camera: tuple[float, float],
    projection: MapProjection,
    center: tuple[int, int],
) -> tuple[int, int, int, int]:
    (south, west), (north, east) = view.bounds
    left, top = _latlng_to_pixel(north, west, camera, projection, center)
    right, bottom = _latlng_to_pixel(south, east, camera, projection, center)
    return (round(left), round(top), round(right - left), round(bottom - top))


def _cell_rect(
    view: CellView,
    camera: tuple[float, float],
    projection: MapProjection,
    center: tuple[int, int],
) -> pygame.Rect:
    return pygame.Rect(*_cell_pixel_box(view, camera, projection, center))


def _pixel_to_cell(
    pixel_x: int,
    pixel_y: int,
    camera: tuple[float, float],
    projection: MapProjection,
    center: tuple[int, int],
) -> CellCoord:
    lat = camera[0] - (pixel_y - center[1]) / CELL_PIXELS * projection.cell_degrees
    lng = camera[1] + (pixel_x - center[0]) / CELL_PIXELS * projection.cell_degrees
    offset_i, offset_j = projection.latlng_to_cell_offset(lat, lng)
    return CellCoord(int(math.floor(offset_i)), int(math.floor(offset_j)))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tokengrid.cli.pygame_viewer",
        description="Run the tokengrid pygame viewer.",
    )
    parser.add_argument(
        "--save-dir",
        default=DEFAULT_SAVE_DIR,
        help="Directory holding the stored game record.",
    )
    parser.add_argument("--salt", default=None, help="World salt for procedural token generation.")
    parser.add_argument(
        "--movement-mode",
        choices=MOVEMENT_MODES,
        default=None,
        help="Override the stored movement mode at startup.",
    )
    parser.add_argument(
        "--position-file",
        default=None,
        help="Text file of appended 'lat,lng' lines used as the geolocation source.",
    )
    parser.add_argument(
        "--new-game",
        action="store_true",
        help="Discard the stored game and start from the default state.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[tokengrid.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER", "SDL_VIDEO_WINDOW_POS"):
        value = os.environ.get(name, "<unset>")
        print(f"[tokengrid.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_viewer_game(
    save_dir: str,
    *,
    display: DisplaySurface,
    salt: str | None = None,
    new_game: bool = False,
    movement_mode: str | None = None,
) -> Game:
    config = GameConfig() if salt is None else GameConfig(salt=salt)
    game = Game(config=config, display=display, storage=JsonFileStorage(save_dir))
    if new_game:
        game.reset()
    restored = game.start(
        on_discard=lambda reason: print(f"[tokengrid.viewer] discarded corrupt save: {reason}", file=sys.stderr)
    )
    if movement_mode is not None:
        game.set_movement_mode(movement_mode)
    print(
        "[tokengrid.viewer] "
        f"{'restored' if restored else 'new game'} "
        f"save_dir={save_dir} "
        f"player=({game.state.player.i},{game.state.player.j}) "
        f"held={game.state.held_token} "
        f"overlay={len(game.state.overlay)} "
        f"state_hash={state_hash(game.state)}"
    )
    return game


def _select_movement_source(game: Game, position_file: str | None) -> MovementSource:
    provider = FilePositionProvider(position_file) if position_file else None

    def fall_back(reason: str) -> None:
        print(f"[tokengrid.viewer] warning: geolocation unavailable ({reason}); using buttons.", file=sys.stderr)
        game.set_movement_mode(BUTTONS_MOVEMENT_MODE)

    source = select_movement_source(
        game.state.movement_mode,
        provider=provider,
        projection=game.projection,
        on_fallback=fall_back,
    )
    game.attach_movement_source(source)
    return source


def _describe_outcome(outcome: object) -> str | None:
    kind = getattr(outcome, "outcome", None)
    if kind == PICKED_UP_OUTCOME:
        return f"picked up {getattr(outcome, 'held_token', '?')}"
    if kind == MERGED_OUTCOME:
        return f"merged into {getattr(outcome, 'cell_token', '?')}"
    return None


def run_pygame_viewer(
    save_dir: str = DEFAULT_SAVE_DIR,
    *,
    salt: str | None = None,
    movement_mode: str | None = None,
    position_file: str | None = None,
    new_game: bool = False,
    headless: bool = False,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[tokengrid.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[tokengrid.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    display = PygameDisplay()
    try:
        game = _build_viewer_game(
            save_dir,
            display=display,
            salt=salt,
            new_game=new_game,
            movement_mode=movement_mode,
        )
    except Exception as exc:
        print(f"[tokengrid.viewer] failed to initialize game: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    source = _select_movement_source(game, position_file)

    try:
        pygame_module.display.set_caption("tokengrid")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[tokengrid.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or TOKENGRID_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[tokengrid.viewer] display initialized: {driver_name}, window size={WINDOW_SIZE}")

    font = pygame_module.font.SysFont("consolas", 18)
    small_font = pygame_module.font.SysFont("consolas", 14)

    if headless:
        display.draw(screen, font, small_font, game.projection)
        source.stop()
        pygame_module.quit()
        return 0

    key_directions = {getattr(pygame_module, name): direction for name, direction in KEY_DIRECTIONS.items()}
    viewport_rect = _viewport_rect()
    clock = pygame_module.time.Clock()
    running = True

    while running:
        clock.tick(30)
        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key in key_directions:
                if isinstance(source, ButtonMovementSource):
                    source.press(key_directions[event.key])
                else:
                    display.message = "movement follows geolocation; press M for buttons"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_m:
                next_mode = (
                    GEOLOCATION_MOVEMENT_MODE
                    if game.state.movement_mode == BUTTONS_MOVEMENT_MODE
                    else BUTTONS_MOVEMENT_MODE
                )
                source.stop()
                game.set_movement_mode(next_mode)
                source = _select_movement_source(game, position_file)
                display.message = f"movement mode: {game.state.movement_mode}"
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_n:
                game.reset()
                display.solved_value = None
                display.message = "new game"
                print(f"[tokengrid.viewer] reset save_dir={save_dir}")
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button == 1:
                if display.camera is not None and viewport_rect.collidepoint(event.pos):
                    cell = _pixel_to_cell(event.pos[0], event.pos[1], display.camera, game.projection, viewport_rect.center)
                    outcome = game.cell_interact(cell.i, cell.j)
                    display.message = _describe_outcome(outcome)

        source.poll()
        display.draw(screen, font, small_font, game.projection)
        pygame_module.display.flip()

    source.stop()
    print(f"[tokengrid.viewer] exit save_dir={save_dir} state_hash={state_hash(game.state)}")
    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("TOKENGRID_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            args.save_dir,
            salt=args.salt,
            movement_mode=args.movement_mode,
            position_file=args.position_file,
            new_game=args.new_game,
            headless=headless,
        )
    )


if __name__ == "__main__":
    main()
