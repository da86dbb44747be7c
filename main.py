"""
Life Killer - train networks that steer Conway's Game of Life

Commands:
- train: evolve a network (new or loaded) generation after generation
- new:   write a fresh, edgeless network save
- dump:  write a readable JSON dump of a save's network
- play:  open the interactive board viewer with a saved network
"""

import argparse
import json
import os
import sys
import time
from datetime import datetime

import numpy as np
import torch

import config
from adapter import GameAdapterConfig, GameEpisodeFactory, RewardPolicy
from config import (ACTIVATOR, COMBINATOR, HIDDEN_LAYER_COUNT, HIDDEN_LAYER_HEIGHT,
                    IMPROVEMENT_MARGIN, KERNEL_DIAMETER, NOTIFY_INTERVAL_SECONDS,
                    OUTPUT_LAYER_HEIGHT, SAVE_DIR, SAVE_INTERVAL_SECONDS, SCORE_WINDOW,
                    ConfigError)
from evolution import AsyncNetworkSaver, ScoreWindow, Trainer, TrainerConfig
from network import Activator, Combinator, Network, NetworkConfig
from player import PlayerConfig
from savedata import NetworkSave, SaveDataError


# =============================================================================
# NETWORK AND CONFIG LOADING
# =============================================================================
def new_network_save(args) -> NetworkSave:
    """Build an edgeless network sized for the requested kernel."""
    player_config = PlayerConfig(kernel_diameter=args.kernel)
    network = Network.new(
        NetworkConfig(Activator(args.activator), Combinator(args.combinator)),
        player_config.input_height,
        args.hidden_layers,
        args.hidden_height,
        OUTPUT_LAYER_HEIGHT,
    )
    return NetworkSave(network, player_config)


def load_training_config(path):
    """Read {"trainer_config": {...}, "adapter_config": {...}} from JSON."""
    if path is None:
        return TrainerConfig(), GameAdapterConfig()
    with open(path) as f:
        data = json.load(f)
    return (TrainerConfig.from_dict(data.get("trainer_config", {})),
            GameAdapterConfig.from_dict(data.get("adapter_config", {})))


def apply_overrides(record, overrides: dict):
    """Replace the dataclass fields given on the command line."""
    values = record.to_dict()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return type(record).from_dict(values)


# =============================================================================
# TRAINING
# =============================================================================
def print_system_info(trainer_config: TrainerConfig, adapter_config: GameAdapterConfig,
                      network_save: NetworkSave):
    """Print training configuration."""
    print("=" * 60)
    print("Life Killer - Evolutionary Trainer")
    print("=" * 60)
    print(f"\n[Runtime]")
    print(f"  torch {torch.__version__}, numpy {np.__version__}")
    print(f"\n[Network]")
    print(f"  {network_save.network!r}")
    print(f"  Kernel: {network_save.player_config.kernel_diameter}x{network_save.player_config.kernel_diameter}")
    print(f"  Batched: {network_save.player_config.batched}, cache: {network_save.player_config.use_kernel_cache}")
    print(f"\n[Generations]")
    print(f"  Contenders: {trainer_config.generation_contenders}")
    print(f"  Mutations: {trainer_config.generation_mutations} +/- {trainer_config.generation_mutations_jitter}")
    print(f"  Iterations: {trainer_config.generation_iterations}")
    print(f"  Workers: {trainer_config.workers}")
    print(f"\n[Episodes]")
    print(f"  Board: {adapter_config.width}x{adapter_config.height}, "
          f"{adapter_config.alive_cells} cells in blocks of {adapter_config.block_size}")
    print(f"  Max rounds: {adapter_config.max_rounds}")
    print(f"  Nature disabled: {adapter_config.disable_nature}")
    print(f"  Reward: {adapter_config.reward.value} ({'kill' if adapter_config.evil else 'grow'})")
    print("=" * 60 + "\n")


def format_change(new, old, fmt):
    if new is None:
        return fmt.format(0)
    arrow = " " if old is None or new == old else ("+" if new > old else "-")
    return fmt.format(new) + arrow


def plot_history(history, filepath):
    """Save the score history as a chart."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    generations = [h[0] for h in history]
    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(generations, [h[1] for h in history], linewidth=0.8, alpha=0.5, label="Generation score")
    ax.plot(generations, [h[2] for h in history], linewidth=2, label="Rolling average")
    ax.set_xlabel("Generation", fontsize=9)
    ax.set_ylabel(f"Score (x{config.SCORE_SCALE})", fontsize=9)
    ax.grid(True, alpha=0.3)
    ax.legend()
    fig.tight_layout()
    fig.savefig(filepath)
    plt.close(fig)
    print(f"Score history plotted to {filepath}")


def run_training(run_id: str, trainer: Trainer, network_save: NetworkSave,
                 max_generations=None, plot_path=None, save_dir=SAVE_DIR):
    saver = AsyncNetworkSaver()
    score = ScoreWindow(SCORE_WINDOW)
    history = []
    state = {
        "last_save_avg": None,
        "last_save_time": time.time(),
        "last_notif_time": time.time(),
        "last_notif_generation": 0,
        "last_notif_score": score.copy(),
    }

    def save(network, generation, avg_score, block=False):
        path = os.path.join(save_dir, f"{run_id}_gen{generation}.json")
        snapshot = NetworkSave(network.clone(), network_save.player_config, generation, int(avg_score))
        saver.save_async(snapshot, path, block)
        state["last_save_avg"] = avg_score
        state["last_save_time"] = time.time()

    def on_generation(generation, network, new_score):
        network_save.network = network
        score.update(new_score)
        avg_score = score.average()
        history.append((generation, new_score, avg_score))

        if state["last_save_avg"] is None and score.ready():
            state["last_save_avg"] = avg_score

        improved = (state["last_save_avg"] is not None
                    and avg_score >= state["last_save_avg"] + IMPROVEMENT_MARGIN)

        now = time.time()
        if improved or now - state["last_notif_time"] >= NOTIFY_INTERVAL_SECONDS:
            elapsed = now - state["last_notif_time"]
            gens_per_sec = (generation - state["last_notif_generation"]) / elapsed if elapsed > 0 else 0
            last = state["last_notif_score"]
            prefix = "IMPROVED" if improved else " " * len("IMPROVED")
            print(f"{prefix} gen {generation:7d}: "
                  f"{format_change(score.value(), last.value(), '{:5d}')} | "
                  f"{format_change(score.min(), last.min(), '{:5d}')} < "
                  f"{format_change(avg_score, last.average(), '{:8.2f}')} < "
                  f"{format_change(score.max(), last.max(), '{:5d}')} | "
                  f"{gens_per_sec:4.2f} gen/s | {network.edge_count()} edges")
            state["last_notif_time"] = now
            state["last_notif_generation"] = generation
            state["last_notif_score"] = score.copy()

        if improved or now - state["last_save_time"] > SAVE_INTERVAL_SECONDS:
            save(network, generation, avg_score)

    try:
        trainer.run(network_save.network, on_generation, max_generations)
    except KeyboardInterrupt:
        print("\nTraining interrupted")
    finally:
        if history:
            save(network_save.network, history[-1][0], score.average(), block=True)
        saver.flush()
        saver.shutdown()
        if plot_path and history:
            plot_history(history, plot_path)


# =============================================================================
# COMMANDS
# =============================================================================
def cmd_train(args) -> int:
    try:
        network_save = NetworkSave.load(args.network) if args.network else new_network_save(args)
        trainer_config, adapter_config = load_training_config(args.config)
    except (SaveDataError, OSError, json.JSONDecodeError) as e:
        print(f"[ERROR] {e}")
        return 1

    trainer_config = apply_overrides(trainer_config, {
        "generation_contenders": args.contenders,
        "generation_mutations": args.mutations,
        "generation_mutations_jitter": args.jitter,
        "generation_iterations": args.iterations,
        "workers": args.workers,
    })
    adapter_config = apply_overrides(adapter_config, {
        "width": args.width,
        "height": args.height,
        "alive_cells": args.alive_cells,
        "block_size": args.block_size,
        "max_rounds": args.max_rounds,
        "disable_nature": True if args.disable_nature else None,
        "evil": False if args.grow else None,
        "reward": args.reward,
    })

    try:
        factory = GameEpisodeFactory(adapter_config, network_save.player_config)
        trainer = Trainer(trainer_config, factory, np.random.default_rng(args.seed))
    except ConfigError as e:
        print(f"[ERROR] {e}")
        return 1

    run_id = args.run_id if args.run_id and args.run_id != "-" else datetime.now().strftime("%Y%m%d")
    print_system_info(trainer_config, adapter_config, network_save)
    run_training(run_id, trainer, network_save, args.generations, args.plot, args.save_dir)
    return 0


def cmd_new(args) -> int:
    network_save = new_network_save(args)
    network_save.save(args.output)
    print(f"New network written to {args.output}: {network_save.network!r}")
    return 0


def cmd_dump(args) -> int:
    try:
        network_save = NetworkSave.load(args.save)
    except SaveDataError as e:
        print(f"[ERROR] {e}")
        return 1
    dump_path = args.save + ".netdump.json"
    with open(dump_path, "w") as f:
        json.dump(network_save.network.describe(), f, indent=2)
    print(f"Network dumped to {dump_path}")
    return 0


def cmd_play(args) -> int:
    from pygame_renderer import PyGameRenderer

    try:
        network_save = NetworkSave.load(args.save) if args.save else None
    except SaveDataError as e:
        print(f"[ERROR] {e}")
        return 1
    PyGameRenderer(args.width or config.BOARD_WIDTH, args.height or config.BOARD_HEIGHT,
                   network_save, np.random.default_rng(args.seed)).run()
    return 0


def add_network_arguments(parser):
    parser.add_argument('--kernel', '-k', type=int, default=KERNEL_DIAMETER,
                        help=f'Kernel diameter (default: {KERNEL_DIAMETER})')
    parser.add_argument('--hidden-layers', type=int, default=HIDDEN_LAYER_COUNT,
                        help=f'Hidden layer count (default: {HIDDEN_LAYER_COUNT})')
    parser.add_argument('--hidden-height', type=int, default=HIDDEN_LAYER_HEIGHT,
                        help=f'Nodes per hidden layer (default: {HIDDEN_LAYER_HEIGHT})')
    parser.add_argument('--activator', choices=[a.value for a in Activator], default=ACTIVATOR)
    parser.add_argument('--combinator', choices=[c.value for c in Combinator], default=COMBINATOR)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Life Killer - evolve Game of Life players')
    commands = parser.add_subparsers(dest='command', required=True)

    train = commands.add_parser('train', help='Train a network')
    train.add_argument('run_id', nargs='?', default=None,
                       help='Run name used in save file names ("-" for today\'s date)')
    train.add_argument('--network', '-n', type=str, default=None,
                       help='Network save to continue training (default: new network)')
    train.add_argument('--config', '-c', type=str, default=None,
                       help='JSON file with trainer_config and adapter_config')
    train.add_argument('--generations', '-g', type=int, default=None,
                       help='Stop after N generations (default: run forever)')
    train.add_argument('--seed', type=int, default=None, help='Random seed')
    train.add_argument('--plot', type=str, default=None,
                       help='Plot the score history to this file when training stops')
    train.add_argument('--save-dir', type=str, default=SAVE_DIR,
                       help=f'Directory for network saves (default: {SAVE_DIR})')
    train.add_argument('--contenders', type=int)
    train.add_argument('--mutations', type=int)
    train.add_argument('--jitter', type=int)
    train.add_argument('--iterations', type=int)
    train.add_argument('--workers', type=int)
    train.add_argument('--width', type=int)
    train.add_argument('--height', type=int)
    train.add_argument('--alive-cells', type=int)
    train.add_argument('--block-size', type=int)
    train.add_argument('--max-rounds', type=int)
    train.add_argument('--disable-nature', action='store_true')
    train.add_argument('--grow', action='store_true', help='Reward growth instead of extinction')
    train.add_argument('--reward', choices=[r.value for r in RewardPolicy])
    add_network_arguments(train)
    train.set_defaults(func=cmd_train)

    new = commands.add_parser('new', help='Write a fresh network save')
    new.add_argument('output', type=str)
    add_network_arguments(new)
    new.set_defaults(func=cmd_new)

    dump = commands.add_parser('dump', help='Dump a network save as readable JSON')
    dump.add_argument('save', type=str)
    dump.set_defaults(func=cmd_dump)

    play = commands.add_parser('play', help='Watch a network play in a window')
    play.add_argument('save', nargs='?', default=None)
    play.add_argument('--width', type=int, default=None)
    play.add_argument('--height', type=int, default=None)
    play.add_argument('--seed', type=int, default=None)
    play.set_defaults(func=cmd_play)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
