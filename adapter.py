"""
Scoring episodes: how a network's play is turned into a fitness number.

A factory samples one fresh random board per call. The resulting episode is
shared read-only by every contender of a trainer round; each run plays on
its own clone of the board.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Optional

import numpy as np

from board import Game, Rule, TileState
from config import (ALIVE_CELLS, BLOCK_SIZE, BOARD_HEIGHT, BOARD_WIDTH, DISABLE_NATURE, EVIL,
                    MAX_ROUNDS, REWARD_POLICY, ROUNDS_PENALTY_DIVISOR, SKIPPED_TURNS_DIVISOR,
                    ConfigError, require_positive)
from network import Network
from player import NetworkPlayer, PlayerConfig


class RewardPolicy(str, Enum):
    # Network outcome minus the unguided reference outcome, minus penalties.
    BASELINE = "baseline"
    # Network outcome only.
    PLAIN = "plain"


@dataclass(frozen=True)
class GameAdapterConfig:
    width: int = BOARD_WIDTH
    height: int = BOARD_HEIGHT

    # Alive cells spawned at the start of a game, rounded down to whole blocks.
    alive_cells: int = ALIVE_CELLS

    # Side of the square clusters cells are spawned in; 1 spawns scattered cells.
    block_size: int = BLOCK_SIZE

    # Rounds per game. A game stops early once every cell is dead.
    max_rounds: int = MAX_ROUNDS

    # Leave only the network to change the board.
    disable_nature: bool = DISABLE_NATURE

    # Reward cells killed when True, cells brought to life when False.
    evil: bool = EVIL

    reward: RewardPolicy = RewardPolicy(REWARD_POLICY)

    def validate(self) -> "GameAdapterConfig":
        require_positive(self, "width", "height", "block_size", "max_rounds")
        if self.alive_cells < 0:
            raise ConfigError(f"GameAdapterConfig.alive_cells must not be negative, got {self.alive_cells}")
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reward"] = self.reward.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GameAdapterConfig":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "reward" in values:
            values["reward"] = RewardPolicy(values["reward"])
        return cls(**values)


class Episode(ABC):
    @abstractmethod
    def run(self, network: Network, rng: Optional[np.random.Generator] = None) -> int:
        """Play one episode with network and return its fitness."""


class EpisodeFactory(ABC):
    @abstractmethod
    def create_episode(self, rng: np.random.Generator) -> Episode:
        """Sample a fresh episode."""


class GameEpisode(Episode):
    def __init__(self, config: GameAdapterConfig, player_config: PlayerConfig, game: Game):
        self.config = config
        self.player_config = player_config
        self.game_template = game
        self.reference_score = self.get_reference_score()

    def cells_turned(self, initial_alive: int, final_alive: int) -> int:
        if self.config.evil:
            return initial_alive - final_alive
        return final_alive - initial_alive

    def get_reference_score(self) -> int:
        """Outcome of letting the automaton run on its own for max_rounds."""
        if self.config.disable_nature:
            return 0

        game = self.game_template.clone()
        initial_alive = game.count(TileState.ALIVE)
        for _ in range(self.config.max_rounds):
            game.tick()
        return self.cells_turned(initial_alive, game.count(TileState.ALIVE))

    def get_network_score(self, network: Network, rng: Optional[np.random.Generator]):
        """Returns (cells turned, punishment) for one playthrough."""
        game = self.game_template.clone()
        player = NetworkPlayer(self.player_config, network, rng)

        initial_alive = game.count(TileState.ALIVE)
        skipped_turns = 0
        rounds_taken = 0
        while True:
            rounds_taken += 1

            if player.play_step(game) is None:
                skipped_turns += 1

            if not self.config.disable_nature:
                game.tick()

            alive = game.count(TileState.ALIVE)
            if rounds_taken >= self.config.max_rounds or alive == 0:
                break

        taken_rounds_punishment = (self.config.max_rounds - rounds_taken) // ROUNDS_PENALTY_DIVISOR
        skipped_turns_punishment = skipped_turns // SKIPPED_TURNS_DIVISOR
        return self.cells_turned(initial_alive, alive), taken_rounds_punishment + skipped_turns_punishment

    def run(self, network: Network, rng: Optional[np.random.Generator] = None) -> int:
        network_score, punishment = self.get_network_score(network, rng)
        if self.config.reward is RewardPolicy.PLAIN:
            return network_score
        # Penalties are kept out of the comparison with the reference outcome.
        return network_score - self.reference_score - punishment


class GameEpisodeFactory(EpisodeFactory):
    def __init__(self, config: GameAdapterConfig, player_config: PlayerConfig, rule: Optional[Rule] = None):
        self.config = config.validate()
        self.player_config = player_config
        self.rule = rule or Rule()

    def create_episode(self, rng: np.random.Generator) -> GameEpisode:
        game = Game.new_random(self.config.width, self.config.height, self.config.alive_cells,
                               rng, self.config.block_size, self.rule)
        return GameEpisode(self.config, self.player_config, game)
