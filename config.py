"""
Configuration file for the Life Killer trainer.

All training parameters can be adjusted here.
"""

import os


class ConfigError(ValueError):
    """A configuration record holds an unusable value."""


def require_positive(record, *names):
    """Raise ConfigError for the first named field that isn't positive."""
    for name in names:
        value = getattr(record, name)
        if value <= 0:
            raise ConfigError(f"{type(record).__name__}.{name} must be positive, got {value}")


# ==============================================================================
# BOARD AND RULE
# ==============================================================================

BOARD_WIDTH = 12               # Board width used by training episodes
BOARD_HEIGHT = 12              # Board height used by training episodes
ALIVE_CELLS = 72               # Alive cells seeded at the start of an episode
BLOCK_SIZE = 1                 # Seed cells as NxN blocks (1 = scattered cells)
RULE_BIRTH = (3,)              # Neighbor counts that bring a dead cell to life
RULE_SURVIVE = (2, 3)          # Neighbor counts that keep an alive cell alive

# ==============================================================================
# EPISODES AND REWARD
# ==============================================================================

MAX_ROUNDS = 20                # Rounds per episode (ends early on extinction)
DISABLE_NATURE = False         # Only the network changes the board when True
EVIL = True                    # Reward killing cells (False = reward growth)
REWARD_POLICY = "baseline"     # "baseline" or "plain"

ROUNDS_PENALTY_DIVISOR = 2     # Unused rounds are punished at 1/N per round
SKIPPED_TURNS_DIVISOR = 5      # Skipped turns are punished at 1/N per turn

# ==============================================================================
# NEURAL NETWORK ARCHITECTURE
# ==============================================================================

KERNEL_DIAMETER = 5            # Side of the square neighborhood fed to the net
HIDDEN_LAYER_COUNT = 3         # Hidden compute layers
HIDDEN_LAYER_HEIGHT = 15       # Nodes per hidden layer
OUTPUT_LAYER_HEIGHT = 2        # Outputs: score, state
ACTIVATOR = "tanh"             # "binary", "relu" or "tanh"
COMBINATOR = "add"             # "add" or "mul"

# Kernel tile encoding
KERNEL_ALIVE_VALUE = 1.0
KERNEL_DEAD_VALUE = -1.0
KERNEL_OUTSIDE_VALUE = -0.0    # Zero magnitude: no directional signal

# Thresholds applied to the "state" output
STATE_DEAD_THRESHOLD = -0.5
STATE_ALIVE_THRESHOLD = 0.5

# Player
USE_KERNEL_CACHE = False       # Reuse outputs for identical kernels
BATCHED_PLAYER = True          # Evaluate every board position in one tensor pass
SHUFFLE_POSITIONS = True       # Randomize evaluation order each step
DEVICE = "cpu"                 # Torch device for batched evaluation

# ==============================================================================
# EVOLUTION AND MUTATION
# ==============================================================================

GENERATION_CONTENDERS = 8      # Networks per generation (including the original)
GENERATION_MUTATIONS = 3       # Batch mutations applied to each contender
GENERATION_MUTATIONS_JITTER = 1  # +/- random jitter on the mutation count
GENERATION_ITERATIONS = 50     # Episodes per generation to average scores from
WORKERS = os.cpu_count() or 1  # Thread pool size for contender evaluation

# Mutation priority orderings and their relative weights
MUTATION_ORDER_WEIGHTS = (7, 1, 2)
WEIGHT_ADJUSTMENT_FLOOR = 0.01  # Minimum jitter magnitude for a weight
NEW_WEIGHT_RANGE = 2.0          # New edges draw weights from [-N, N]

# Score aggregation
SCORE_SCALE = 10               # Multiplier before integer averaging

# ==============================================================================
# NETWORK PERSISTENCE
# ==============================================================================

SAVE_DIR = "networks"
SAVE_INTERVAL_SECONDS = 60     # Save at least this often while training
IMPROVEMENT_MARGIN = 10.0      # Average score gain that counts as improvement
SCORE_WINDOW = 50              # Generations in the rolling score window

# ==============================================================================
# VISUALIZATION
# ==============================================================================

NOTIFY_INTERVAL_SECONDS = 1.0  # Minimum time between status lines
RENDER_TICK_MS = 500           # Renderer auto-tick interval

# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================

def print_config():
    """Print current configuration."""
    print("\n" + "="*70)
    print("CONFIGURATION SUMMARY")
    print("="*70)

    print(f"\n[Board]")
    print(f"  Board size: {BOARD_WIDTH}x{BOARD_HEIGHT}")
    print(f"  Seeded cells: {ALIVE_CELLS} (block size {BLOCK_SIZE})")
    print(f"  Rule: B{''.join(map(str, RULE_BIRTH))}/S{''.join(map(str, RULE_SURVIVE))}")

    print(f"\n[Episodes]")
    print(f"  Max rounds: {MAX_ROUNDS}")
    print(f"  Nature disabled: {DISABLE_NATURE}")
    print(f"  Reward: {REWARD_POLICY} ({'kill' if EVIL else 'grow'})")

    print(f"\n[Neural Network]")
    print(f"  Kernel: {KERNEL_DIAMETER}x{KERNEL_DIAMETER}")
    print(f"  Hidden layers: {HIDDEN_LAYER_COUNT}x{HIDDEN_LAYER_HEIGHT}")
    print(f"  Outputs: {OUTPUT_LAYER_HEIGHT}")
    print(f"  Functions: {ACTIVATOR} / {COMBINATOR}")

    print(f"\n[Evolution]")
    print(f"  Contenders: {GENERATION_CONTENDERS}")
    print(f"  Mutations: {GENERATION_MUTATIONS} +/- {GENERATION_MUTATIONS_JITTER}")
    print(f"  Iterations: {GENERATION_ITERATIONS}")
    print(f"  Workers: {WORKERS}")

    print(f"\n[Auto-save]")
    print(f"  Directory: {SAVE_DIR}")
    print(f"  Interval: {SAVE_INTERVAL_SECONDS}s")

    print("="*70 + "\n")

if __name__ == "__main__":
    print_config()
