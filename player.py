"""
Network player: picks one board cell per step and decides its new state.

Every board position is scored by running its kernel (the square
neighborhood around it) through the network. The first output is the
position's score, the second how much the network wants the cell alive.
The best-scoring position wins and its state output is thresholded:
<= -0.5 kills the cell, >= 0.5 revives it, anything between is no move.
"""

import math
from dataclasses import asdict, dataclass, fields
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch
from numpy.lib.stride_tricks import sliding_window_view

from board import Game, Position, TileState
from config import (BATCHED_PLAYER, DEVICE, KERNEL_ALIVE_VALUE, KERNEL_DEAD_VALUE,
                    KERNEL_DIAMETER, KERNEL_OUTSIDE_VALUE, SHUFFLE_POSITIONS,
                    STATE_ALIVE_THRESHOLD, STATE_DEAD_THRESHOLD, USE_KERNEL_CACHE)
from harness import NetworkHarness
from network import MissingOutputError, Network


@dataclass(frozen=True)
class PlayerConfig:
    kernel_diameter: int = KERNEL_DIAMETER

    # Reuse network responses for identical kernels. Trades memory for speed
    # on bigger boards and kernels.
    use_kernel_cache: bool = USE_KERNEL_CACHE

    # Score all positions in one tensor pass instead of one harness call each.
    batched: bool = BATCHED_PLAYER

    # Randomize evaluation order so equal scores don't always favor the same
    # corner of the board.
    shuffle_positions: bool = SHUFFLE_POSITIONS

    @property
    def input_height(self) -> int:
        return self.kernel_diameter ** 2

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PlayerConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def encode_tile(tile: Optional[TileState]) -> float:
    if tile is TileState.ALIVE:
        return KERNEL_ALIVE_VALUE
    if tile is TileState.DEAD:
        return KERNEL_DEAD_VALUE
    return KERNEL_OUTSIDE_VALUE


def kernel_offsets(diameter: int) -> range:
    """Offsets along one axis; always `diameter` long, centered for odd sizes."""
    radius = diameter // 2
    return range(-radius, diameter - radius)


@dataclass(frozen=True)
class Kernel:
    """Tiles around a position, x-major. None marks cells outside the board."""

    tiles: Tuple[Optional[TileState], ...]

    @classmethod
    def around(cls, game: Game, center: Position, diameter: int) -> "Kernel":
        cx, cy = center
        offsets = kernel_offsets(diameter)
        return cls(tuple(game.read((cx + dx, cy + dy)) for dx in offsets for dy in offsets))

    def encoded(self) -> Tuple[float, ...]:
        return tuple(encode_tile(tile) for tile in self.tiles)

    @staticmethod
    def input_providers(diameter: int) -> list:
        def tile_provider(index):
            def provide(kernel: "Kernel") -> float:
                return encode_tile(kernel.tiles[index])
            return provide

        return [tile_provider(index) for index in range(diameter ** 2)]


def encode_board(game: Game, diameter: int) -> np.ndarray:
    """
    Encoded kernels for every position at once.

    Returns:
        [width * height, diameter ** 2] array, rows in Board.positions() order,
        columns in Kernel tile order
    """
    radius = diameter // 2
    encoded = np.where(game.board.cells, KERNEL_ALIVE_VALUE, KERNEL_DEAD_VALUE)
    padded = np.pad(encoded, ((radius, diameter - 1 - radius), (radius, diameter - 1 - radius)),
                    mode="constant", constant_values=KERNEL_OUTSIDE_VALUE)
    windows = sliding_window_view(padded, (diameter, diameter))  # [y, x, wy, wx]
    return windows.transpose(1, 0, 3, 2).reshape(game.width * game.height, diameter * diameter)


@dataclass(frozen=True)
class KernelOutput:
    # Preference for picking this position.
    score: float

    # How much the network wants the cell alive.
    state: float


@dataclass(frozen=True)
class Move:
    position: Position
    old_state: TileState
    new_state: TileState


def wanted_state(state: float) -> Optional[TileState]:
    if state <= STATE_DEAD_THRESHOLD:
        return TileState.DEAD
    if state >= STATE_ALIVE_THRESHOLD:
        return TileState.ALIVE
    return None


class NetworkPlayer:
    def __init__(self, config: PlayerConfig, network: Network,
                 rng: Optional[np.random.Generator] = None):
        if config.shuffle_positions and rng is None:
            raise ValueError("Shuffling positions needs a random generator")
        self.config = config
        self.rng = rng
        self.network_harness = NetworkHarness(network, Kernel.input_providers(config.kernel_diameter))
        self.network_harness.check_arity()
        self.kernel_cache: Optional[Dict[Tuple[float, ...], KernelOutput]] = (
            {} if config.use_kernel_cache else None
        )

    @property
    def network(self) -> Network:
        return self.network_harness.network

    def play_step(self, game: Game) -> Optional[Move]:
        """Apply the network's chosen change to the board, returning it if anything changed."""
        chosen = self.choose(game)
        if chosen is None:
            return None

        position, output = chosen
        new_state = wanted_state(output.state)
        old_state = game.read(position)
        if new_state is None or new_state is old_state:
            return None

        game.write(position, new_state)
        return Move(position, old_state, new_state)

    def choose(self, game: Game) -> Optional[Tuple[Position, KernelOutput]]:
        """Highest-scoring position; NaN scores never win."""
        positions = list(game.board.positions())
        if not positions:
            return None
        outputs = self.compute_all(game, positions)

        order = range(len(positions))
        if self.config.shuffle_positions:
            order = self.rng.permutation(len(positions))

        best = None
        for i in order:
            output = outputs[i]
            if math.isnan(output.score):
                continue
            if best is None or output.score > best[1].score:
                best = (positions[i], output)
        return best

    def compute_all(self, game: Game, positions: Sequence[Position]) -> List[KernelOutput]:
        if self.config.batched:
            return self._compute_batch(game)
        return [self.compute_position(game, position) for position in positions]

    def compute_position(self, game: Game, position: Position) -> KernelOutput:
        kernel = Kernel.around(game, position, self.config.kernel_diameter)

        if self.kernel_cache is not None:
            cached = self.kernel_cache.get(kernel.encoded())
            if cached is not None:
                return cached

        output = self._to_output(self.network_harness.compute(kernel))
        if self.kernel_cache is not None:
            self.kernel_cache[kernel.encoded()] = output
        return output

    def _compute_batch(self, game: Game) -> List[KernelOutput]:
        rows = encode_board(game, self.config.kernel_diameter)
        if self.kernel_cache is None:
            return self._run_rows(rows)

        keys = [tuple(row.tolist()) for row in rows]
        missing = list(dict.fromkeys(key for key in keys if key not in self.kernel_cache))
        if missing:
            for key, output in zip(missing, self._run_rows(np.array(missing, dtype=np.float64))):
                self.kernel_cache[key] = output
        return [self.kernel_cache[key] for key in keys]

    def _run_rows(self, rows: np.ndarray) -> List[KernelOutput]:
        if len(rows) == 0:
            return []
        inputs = torch.as_tensor(np.ascontiguousarray(rows), dtype=torch.float64, device=DEVICE)
        results = self.network.compute_batch(inputs).cpu()
        if results.shape[1] < 2:
            raise MissingOutputError("Not enough outputs in kernel network")
        return [KernelOutput(float(score), float(state)) for score, state in results[:, :2].tolist()]

    @staticmethod
    def _to_output(values) -> KernelOutput:
        try:
            score = next(values)
            state = next(values)
        except StopIteration:
            raise MissingOutputError("Not enough outputs in kernel network") from None
        return KernelOutput(score, state)
