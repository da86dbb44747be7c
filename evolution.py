"""
Life Killer - evolutionary trainer for cellular automaton players

A generation clones the current best network into a population of mutated
contenders (plus the untouched original), plays every contender against the
same freshly sampled episodes, and keeps the best average performer:
- Fair rounds: all contenders face the same board in a round
- Fresh rounds: every round samples a new board to avoid overfitting
- No regression: ties go to the original, which is always enumerated last
- Parallel: each round fans out to a thread pool and waits for every contender
"""

import queue
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, fields
from typing import Callable, List, Optional, Tuple

import numpy as np

from adapter import EpisodeFactory
from config import (GENERATION_CONTENDERS, GENERATION_ITERATIONS, GENERATION_MUTATIONS,
                    GENERATION_MUTATIONS_JITTER, SCORE_SCALE, SCORE_WINDOW, WORKERS,
                    ConfigError, require_positive)
from mutation import mutate_many, mutation_count
from network import Network


# =============================================================================
# ASYNC NETWORK SAVER
# =============================================================================
class AsyncNetworkSaver:
    """Asynchronous saver to avoid blocking the training loop on disk writes."""

    def __init__(self):
        self.save_queue = queue.Queue(maxsize=2)  # Limit queue size to avoid memory issues
        self.worker_thread = threading.Thread(target=self._save_worker, daemon=True)
        self.worker_thread.start()
        self.saving = False

    def _save_worker(self):
        """Background worker that processes save requests."""
        while True:
            network_save, filepath = self.save_queue.get()
            if network_save is None:  # Sentinel to stop thread
                self.save_queue.task_done()
                break
            try:
                self.saving = True
                network_save.save(filepath)
                print(f"[SAVED] {filepath} ({network_save.network.edge_count()} edges)")
            except Exception as e:
                print(f"[ERROR] Failed to save network: {e}")
            finally:
                self.saving = False
                self.save_queue.task_done()

    def save_async(self, network_save, filepath, block=False) -> bool:
        """
        Queue a save.

        Returns False if the queue is full and the save was skipped. With
        block=True waits for room instead, so the save is never skipped.
        """
        if block:
            self.save_queue.put((network_save, filepath))
            return True
        try:
            self.save_queue.put_nowait((network_save, filepath))
        except queue.Full:
            print("[SKIP] Save queue full, skipping this save")
            return False
        return True

    def is_saving(self):
        """Check if a save operation is in progress."""
        return self.saving or not self.save_queue.empty()

    def flush(self):
        """Block until every queued save is written."""
        self.save_queue.join()

    def shutdown(self):
        """Shutdown the saver thread gracefully."""
        self.save_queue.put((None, None))
        self.worker_thread.join(timeout=5.0)


# =============================================================================
# TRAINER CONFIGURATION
# =============================================================================
@dataclass(frozen=True)
class TrainerConfig:
    # Independently mutated networks per generation, including the original.
    generation_contenders: int = GENERATION_CONTENDERS

    # Batch mutations applied to each mutated contender.
    generation_mutations: int = GENERATION_MUTATIONS

    # Random +/- jitter on generation_mutations per contender.
    generation_mutations_jitter: int = GENERATION_MUTATIONS_JITTER

    # Episodes per generation to average scores from.
    generation_iterations: int = GENERATION_ITERATIONS

    # Threads playing contenders in parallel.
    workers: int = WORKERS

    def validate(self) -> "TrainerConfig":
        require_positive(self, "generation_contenders", "generation_mutations",
                         "generation_iterations", "workers")
        if self.generation_mutations_jitter < 0:
            raise ConfigError(
                f"TrainerConfig.generation_mutations_jitter must not be negative, "
                f"got {self.generation_mutations_jitter}"
            )
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TrainerConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


# =============================================================================
# SCORING
# =============================================================================
@dataclass
class Contender:
    network: Network
    scores: List[int] = field(default_factory=list)


def aggregate_scores(scores: List[int], scale: int = SCORE_SCALE) -> int:
    """Scaled integer mean, truncated toward zero."""
    if not scores:
        raise ValueError("Can't aggregate an empty score list")
    total = sum(scores) * scale
    quotient = abs(total) // len(scores)
    return quotient if total >= 0 else -quotient


def select_winner(scored: List[Tuple[Network, int]]) -> Tuple[Network, int]:
    """Highest score wins; among equals the last enumerated one does."""
    if not scored:
        raise ValueError("Can't select a winner from an empty population")
    best = scored[0]
    for candidate in scored[1:]:
        if candidate[1] >= best[1]:
            best = candidate
    return best


# =============================================================================
# TRAINER
# =============================================================================
class Trainer:
    """Runs generations of mutate, evaluate, select."""

    def __init__(self, config: TrainerConfig, episode_factory: EpisodeFactory,
                 rng: Optional[np.random.Generator] = None):
        self.config = config.validate()
        self.episode_factory = episode_factory
        self.rng = rng if rng is not None else np.random.default_rng()

    def build_population(self, network: Network) -> List[Contender]:
        """Mutated clones first, the untouched original last."""
        contenders = []
        for _ in range(self.config.generation_contenders - 1):
            clone = network.clone()
            count = mutation_count(self.config.generation_mutations,
                                   self.config.generation_mutations_jitter, self.rng)
            mutate_many(clone, count, self.rng)
            contenders.append(Contender(clone))
        contenders.append(Contender(network))
        return contenders

    def evaluate(self, contenders: List[Contender], pool: ThreadPoolExecutor):
        """
        Play every round's episode with every contender, appending their scores.

        Each run gets its own copy of the contender's network, since playing
        rewrites the network's input layer.
        """
        if not contenders:
            raise ValueError("Can't evaluate an empty population")

        for _ in range(self.config.generation_iterations):
            episode = self.episode_factory.create_episode(self.rng)
            worker_rngs = self.rng.spawn(len(contenders))
            futures = [pool.submit(episode.run, contender.network.clone(), worker_rng)
                       for contender, worker_rng in zip(contenders, worker_rngs)]
            # Barrier: the next round starts only after every contender finished this one.
            for contender, future in zip(contenders, futures):
                contender.scores.append(int(future.result()))

    def train_generation(self, network: Network) -> Tuple[Network, int]:
        """
        A generation is one set of mutated networks based on the previous
        network, of which the best average performer is kept.

        Returns:
            (winning network, its aggregated score)
        """
        contenders = self.build_population(network)
        with ThreadPoolExecutor(max_workers=min(self.config.workers, len(contenders))) as pool:
            self.evaluate(contenders, pool)

        scored = [(contender.network, aggregate_scores(contender.scores)) for contender in contenders]
        return select_winner(scored)

    def run(self, network: Network,
            on_generation: Optional[Callable[[int, Network, int], None]] = None,
            max_generations: Optional[int] = None) -> Network:
        """Train until max_generations (forever when None), reporting each generation."""
        generation = 0
        while max_generations is None or generation < max_generations:
            network, score = self.train_generation(network)
            if on_generation is not None:
                on_generation(generation, network, score)
            generation += 1
        return network


# =============================================================================
# SCORE TRACKING
# =============================================================================
class ScoreWindow:
    """Rolling window over the most recent generation scores."""

    def __init__(self, length: int = SCORE_WINDOW):
        self.length = length
        self.values = deque(maxlen=length)

    def update(self, value: int):
        self.values.append(value)

    def value(self) -> Optional[int]:
        return self.values[-1] if self.values else None

    def average(self) -> float:
        if not self.values:
            return 0.0
        return sum(self.values) / len(self.values)

    def min(self) -> Optional[int]:
        return min(self.values) if self.values else None

    def max(self) -> Optional[int]:
        return max(self.values) if self.values else None

    def ready(self) -> bool:
        return len(self.values) >= self.length

    def copy(self) -> "ScoreWindow":
        window = ScoreWindow(self.length)
        window.values.extend(self.values)
        return window
