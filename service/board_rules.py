"""Core 2048 board mechanics shared by the game server and tests."""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

SIZE = 4
WIN_TILE = 2048
TILE_VALUES: Tuple[int, int] = (2, 4)
TILE_PROBABILITIES: Tuple[float, float] = (0.9, 0.1)

DIRECTION_NAMES: Sequence[str] = ("UP", "RIGHT", "DOWN", "LEFT")

Cell = Tuple[int, int]

_default_rng = random.Random()


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


def as_direction(value: Union[Direction, str]) -> Direction:
    if isinstance(value, Direction):
        return value
    try:
        return Direction(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown direction: {value}") from None


@dataclass(eq=False)
class GameState:
    grid: np.ndarray
    score: int = 0
    game_over: bool = False
    won: bool = False

    def to_dict(self) -> Dict:
        return {
            "grid": self.grid.tolist(),
            "score": int(self.score),
            "gameOver": bool(self.game_over),
            "won": bool(self.won),
        }


def as_grid(grid: Sequence[Sequence[int]]) -> np.ndarray:
    """Validate a nested sequence and return it as a square int64 array."""
    try:
        arr = np.array(grid)
    except (TypeError, OverflowError) as exc:
        raise ValueError(f"Grid is not numeric: {exc}") from None
    if arr.dtype.kind not in "iu":
        raise ValueError(f"Grid cells must be integers, received {arr.dtype}")
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1] or arr.shape[0] < 2:
        raise ValueError(f"Expected a square grid, received shape {arr.shape}")
    if (arr < 0).any():
        raise ValueError("Grid cells must be non-negative")
    if arr.dtype.kind == "u" and (arr > np.iinfo(np.int64).max).any():
        raise ValueError("Grid cells are too large")
    arr = arr.astype(np.int64)
    tiles = arr[arr != 0]
    if ((tiles < 2) | ((tiles & (tiles - 1)) != 0)).any():
        raise ValueError("Grid tiles must be powers of two >= 2")
    return arr


# Board / spawner


def empty_cells(grid: np.ndarray) -> List[Cell]:
    rows, cols = np.nonzero(np.asarray(grid) == 0)
    return [(int(r), int(c)) for r, c in zip(rows, cols)]


def add_random_tile(grid: np.ndarray, rng=None) -> Optional[Cell]:
    """Place a 2 (90%) or 4 (10%) on a uniformly chosen empty cell.

    Mutates ``grid`` in place. A full grid is left alone and ``None`` is
    returned; otherwise the chosen coordinate is returned.

    ``rng`` needs ``randrange(n)`` and ``random()``; a ``random.Random``
    instance works.
    """
    if rng is None:
        rng = _default_rng
    cells = empty_cells(grid)
    if not cells:
        return None
    row, col = cells[rng.randrange(len(cells))]
    grid[row, col] = TILE_VALUES[0] if rng.random() < TILE_PROBABILITIES[0] else TILE_VALUES[1]
    return row, col


def init_game(rng=None, size: int = SIZE) -> GameState:
    board = np.zeros((size, size), dtype=np.int64)
    add_random_tile(board, rng)
    add_random_tile(board, rng)
    return GameState(grid=board)


# Orientation normalizer


def rotate(grid: np.ndarray) -> np.ndarray:
    """Quarter turn clockwise: ``out[c][n - 1 - r] == grid[r][c]``."""
    return np.rot90(grid, -1)


def reverse(grid: np.ndarray) -> np.ndarray:
    return np.fliplr(grid)


def _identity(grid: np.ndarray) -> np.ndarray:
    return grid


def _rotate_back(grid: np.ndarray) -> np.ndarray:
    return rotate(rotate(rotate(grid)))


# Every direction is resolved as a left slide. The first transform brings the
# target edge to the left, the second undoes it.
Transform = Callable[[np.ndarray], np.ndarray]
ORIENTATIONS: Dict[Direction, Tuple[Transform, Transform]] = {
    Direction.LEFT: (_identity, _identity),
    Direction.RIGHT: (reverse, reverse),
    Direction.UP: (_rotate_back, rotate),
    Direction.DOWN: (rotate, _rotate_back),
}


# Row reducer


def compress(row: Iterable[int]) -> List[int]:
    line = list(row)
    filtered = [v for v in line if v != 0]
    return filtered + [0] * (len(line) - len(filtered))


def merge(row: List[int]) -> Tuple[List[int], int]:
    merged = list(row)
    score_delta = 0
    for idx in range(len(merged) - 1):
        if merged[idx] != 0 and merged[idx] == merged[idx + 1]:
            merged[idx] *= 2
            merged[idx + 1] = 0
            score_delta += merged[idx]
    return merged, score_delta


def reduce_row(row: Iterable[int]) -> Tuple[List[int], int, bool]:
    line = [int(v) for v in row]
    merged, score_delta = merge(compress(line))
    result = compress(merged)
    return result, score_delta, result != line


def _apply_left(board: np.ndarray) -> Tuple[np.ndarray, int, bool]:
    rows = []
    score_delta = 0
    changed_any = False
    for row in board:
        new_row, row_delta, changed = reduce_row(row)
        rows.append(new_row)
        score_delta += row_delta
        if changed:
            changed_any = True
    return np.array(rows, dtype=np.int64), score_delta, changed_any


def slide(grid: Sequence[Sequence[int]], direction: Union[Direction, str]) -> Tuple[np.ndarray, int, bool]:
    """Slide every line toward ``direction`` without spawning a tile.

    Returns the new grid, the score earned by merges and whether anything
    moved. The input is never modified.
    """
    arr = np.asarray(grid)
    before, after = ORIENTATIONS[as_direction(direction)]
    moved, score_delta, changed = _apply_left(before(arr))
    return np.ascontiguousarray(after(moved)), score_delta, changed


# Terminal evaluator


def can_move(grid: np.ndarray) -> bool:
    arr = np.asarray(grid)
    if (arr == 0).any():
        return True
    horizontal = (arr[:, :-1] == arr[:, 1:]) & (arr[:, :-1] != 0)
    vertical = (arr[:-1, :] == arr[1:, :]) & (arr[:-1, :] != 0)
    return bool(horizontal.any() or vertical.any())


def max_tile(grid: np.ndarray) -> int:
    return int(np.max(grid))


# Move orchestration


def move(state: GameState, direction: Union[Direction, str], rng=None) -> GameState:
    """Play one move and return the resulting state.

    A finished game, or a direction that would not change the board, hands
    back ``state`` itself. Otherwise a new state is returned with one tile
    spawned, the merge score added and the win / game over flags updated.
    """
    if state.game_over:
        return state

    next_grid, score_delta, changed = slide(state.grid, direction)
    if not changed:
        logger.debug("Rejected move %s: board unchanged", direction)
        return state

    next_grid = next_grid.astype(state.grid.dtype, copy=True)
    add_random_tile(next_grid, rng)

    won = state.won or bool((next_grid == WIN_TILE).any())
    if won and not state.won:
        logger.debug("Reached %d", max_tile(next_grid))

    game_over = not can_move(next_grid)
    if game_over:
        logger.debug("No moves left, final score %d", state.score + score_delta)

    return GameState(
        grid=next_grid,
        score=state.score + score_delta,
        game_over=game_over,
        won=won,
    )


# Accessors


def is_game_over(state: GameState) -> bool:
    return state.game_over


def has_won(state: GameState) -> bool:
    return state.won


def score(state: GameState) -> int:
    return state.score


def grid(state: GameState) -> np.ndarray:
    return state.grid.copy()


# Previews


def simulate_move(grid: Sequence[Sequence[int]], direction: Union[Direction, str]) -> Tuple[np.ndarray, bool]:
    next_board, _, changed = slide(as_grid(grid), direction)
    return next_board, changed


def valid_moves(grid: Sequence[Sequence[int]]) -> List[str]:
    arr = as_grid(grid)
    allowed: List[str] = []
    for direction in DIRECTION_NAMES:
        _, _, changed = slide(arr, direction)
        if changed:
            allowed.append(direction)
    return allowed


__all__ = [
    "SIZE",
    "WIN_TILE",
    "TILE_VALUES",
    "TILE_PROBABILITIES",
    "DIRECTION_NAMES",
    "Direction",
    "GameState",
    "ORIENTATIONS",
    "add_random_tile",
    "as_direction",
    "as_grid",
    "can_move",
    "compress",
    "empty_cells",
    "grid",
    "has_won",
    "init_game",
    "is_game_over",
    "max_tile",
    "merge",
    "move",
    "reduce_row",
    "reverse",
    "rotate",
    "score",
    "simulate_move",
    "slide",
    "valid_moves",
]
