"""
Cellular automaton board and rule engine.

The board is a width x height grid of alive/dead cells addressed by (x, y).
Cells outside the board read as None, never as dead, so callers can tell the
edge of the world apart from an empty cell.
"""

from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from config import RULE_BIRTH, RULE_SURVIVE

Position = Tuple[int, int]

# Moore neighborhood without the center cell
NEIGHBOR_KERNEL = np.array([
    [1, 1, 1],
    [1, 0, 1],
    [1, 1, 1],
], dtype=np.int8)


class TileState(Enum):
    ALIVE = "alive"
    DEAD = "dead"

    @classmethod
    def from_bool(cls, alive: bool) -> "TileState":
        return cls.ALIVE if alive else cls.DEAD


class Rule:
    """Birth/survive neighbor counts, Conway's B3/S23 by default."""

    def __init__(self, birth: Sequence[int] = RULE_BIRTH, survive: Sequence[int] = RULE_SURVIVE):
        self.birth = tuple(sorted(set(birth)))
        self.survive = tuple(sorted(set(survive)))

    def __eq__(self, other):
        return isinstance(other, Rule) and (self.birth, self.survive) == (other.birth, other.survive)

    def __repr__(self):
        return f"Rule(B{''.join(map(str, self.birth))}/S{''.join(map(str, self.survive))})"


class Board:
    """Grid of cell states. Stored row-major as cells[y, x]."""

    def __init__(self, width: int, height: int, cells: Optional[np.ndarray] = None):
        if width < 0 or height < 0:
            raise ValueError(f"Board dimensions must be non-negative, got {width}x{height}")
        self.width = width
        self.height = height
        if cells is None:
            cells = np.zeros((height, width), dtype=bool)
        elif cells.shape != (height, width):
            raise ValueError(f"Cell array shape {cells.shape} does not match {width}x{height}")
        self.cells = cells.astype(bool, copy=False)

    @classmethod
    def new_random(cls, width: int, height: int, alive_cells: int,
                   rng: np.random.Generator, block_size: int = 1) -> "Board":
        """
        Seed a board with randomly placed alive cells.

        With block_size > 1 cells are spawned as aligned block_size x block_size
        squares and alive_cells rounds down to whole blocks.
        """
        if block_size < 1:
            raise ValueError(f"Block size must be positive, got {block_size}")

        board = cls(width, height)
        blocks_x = width // block_size
        blocks_y = height // block_size
        block_count = alive_cells // (block_size * block_size)

        if block_count > blocks_x * blocks_y:
            raise ValueError(
                f"Board size {width}x{height} too small for {alive_cells} alive cells "
                f"in blocks of {block_size}"
            )

        chosen = rng.choice(blocks_x * blocks_y, size=block_count, replace=False)
        for block_index in chosen:
            bx = int(block_index) % blocks_x * block_size
            by = int(block_index) // blocks_x * block_size
            board.cells[by:by + block_size, bx:bx + block_size] = True

        return board

    def in_bounds(self, position: Position) -> bool:
        x, y = position
        return 0 <= x < self.width and 0 <= y < self.height

    def read(self, position: Position) -> Optional[TileState]:
        if not self.in_bounds(position):
            return None
        x, y = position
        return TileState.from_bool(bool(self.cells[y, x]))

    def write(self, position: Position, state: TileState):
        if not self.in_bounds(position):
            raise IndexError(f"Position {position} outside {self.width}x{self.height} board")
        x, y = position
        self.cells[y, x] = state is TileState.ALIVE

    def count(self, state: TileState) -> int:
        alive = int(np.count_nonzero(self.cells))
        return alive if state is TileState.ALIVE else self.cells.size - alive

    def positions(self) -> Iterator[Position]:
        for x in range(self.width):
            for y in range(self.height):
                yield (x, y)

    def clear(self):
        self.cells[:, :] = False

    def resize(self, width: int, height: int):
        """Resize in place, keeping the overlapping top-left region."""
        cells = np.zeros((height, width), dtype=bool)
        keep_h = min(height, self.height)
        keep_w = min(width, self.width)
        cells[:keep_h, :keep_w] = self.cells[:keep_h, :keep_w]
        self.width = width
        self.height = height
        self.cells = cells

    def clone(self) -> "Board":
        return Board(self.width, self.height, self.cells.copy())

    def __eq__(self, other):
        return (isinstance(other, Board)
                and (self.width, self.height) == (other.width, other.height)
                and np.array_equal(self.cells, other.cells))

    def __repr__(self):
        return f"Board({self.width}x{self.height}, alive={self.count(TileState.ALIVE)})"


class Game:
    """A board plus the rule that advances it."""

    def __init__(self, board: Board, rule: Optional[Rule] = None):
        self.board = board
        self.rule = rule or Rule()

    @classmethod
    def new_random(cls, width: int, height: int, alive_cells: int,
                   rng: np.random.Generator, block_size: int = 1,
                   rule: Optional[Rule] = None) -> "Game":
        return cls(Board.new_random(width, height, alive_cells, rng, block_size), rule)

    @property
    def width(self) -> int:
        return self.board.width

    @property
    def height(self) -> int:
        return self.board.height

    def neighbor_counts(self) -> np.ndarray:
        """Alive neighbor count per cell; cells past the border count as dead."""
        return ndimage.convolve(self.board.cells.astype(np.int8), NEIGHBOR_KERNEL,
                                mode="constant", cval=0)

    def tick(self):
        """Advance one automaton generation in place."""
        if self.board.cells.size == 0:
            return
        counts = self.neighbor_counts()
        alive = self.board.cells
        born = ~alive & np.isin(counts, self.rule.birth)
        survived = alive & np.isin(counts, self.rule.survive)
        self.board.cells = born | survived

    def read(self, position: Position) -> Optional[TileState]:
        return self.board.read(position)

    def write(self, position: Position, state: TileState):
        self.board.write(position, state)

    def count(self, state: TileState) -> int:
        return self.board.count(state)

    def is_extinct(self) -> bool:
        """Check if all life has died."""
        return self.board.count(TileState.ALIVE) == 0

    def clone(self) -> "Game":
        return Game(self.board.clone(), self.rule)

    def __eq__(self, other):
        return isinstance(other, Game) and self.board == other.board and self.rule == other.rule
