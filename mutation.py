"""
Elementary graph edits and the batch policy that applies them.

Each edit picks a random compute layer and node. An edit that can't apply
(no edges to reweight or remove, a duplicate source) returns None and is
simply skipped. Edits only touch edges, so node handles never change.
"""

from typing import Callable, List, Optional

import numpy as np

from config import MUTATION_ORDER_WEIGHTS, NEW_WEIGHT_RANGE, WEIGHT_ADJUSTMENT_FLOOR
from network import ComputeLayer, Edge, Network, Node, NodeKey


class Mutation:
    def apply(self):
        raise NotImplementedError


class WeightAdjustment(Mutation):
    def __init__(self, edge: Edge, adjustment: float):
        self.edge = edge
        self.adjustment = adjustment

    def apply(self):
        self.edge.weight += self.adjustment

    def __repr__(self):
        return f"WeightAdjustment({self.edge.source}, {self.adjustment:+.4f})"


class InputCreation(Mutation):
    def __init__(self, node: Node, source: NodeKey, weight: float):
        self.node = node
        self.source = source
        self.weight = weight

    def apply(self):
        self.node.inputs.append(Edge(self.source, self.weight))

    def __repr__(self):
        return f"InputCreation({self.source}, {self.weight:+.4f})"


class InputDeletion(Mutation):
    def __init__(self, node: Node, input_index: int):
        self.node = node
        self.input_index = input_index

    def apply(self):
        del self.node.inputs[self.input_index]

    def __repr__(self):
        return f"InputDeletion({self.input_index})"


MutationProvider = Callable[[Network, np.random.Generator], Optional[Mutation]]


def _choose_layer(network: Network, rng: np.random.Generator) -> Optional[int]:
    if not network.compute_layers:
        return None
    return int(rng.integers(len(network.compute_layers)))


def _choose_node(layer: ComputeLayer, rng: np.random.Generator) -> Optional[Node]:
    nodes = layer.nodes.values()
    if not nodes:
        return None
    return nodes[int(rng.integers(len(nodes)))]


def weight_adjustment(network: Network, rng: np.random.Generator) -> Optional[Mutation]:
    """Jitter one edge by up to half its weight (at least WEIGHT_ADJUSTMENT_FLOOR)."""
    layer_index = _choose_layer(network, rng)
    if layer_index is None:
        return None
    node = _choose_node(network.compute_layers[layer_index], rng)
    if node is None or not node.inputs:
        return None

    edge = node.inputs[int(rng.integers(len(node.inputs)))]
    magnitude = max(abs(edge.weight) / 2.0, WEIGHT_ADJUSTMENT_FLOOR)
    return WeightAdjustment(edge, float(rng.uniform(-magnitude, magnitude)))


def input_creation(network: Network, rng: np.random.Generator) -> Optional[Mutation]:
    """Connect a node to a random node of the layer right before it."""
    layer_index = _choose_layer(network, rng)
    if layer_index is None:
        return None

    # Compute layer i sits right after overall layer i.
    source_keys = network.layer(layer_index).output_keys()
    if not source_keys:
        return None
    source = source_keys[int(rng.integers(len(source_keys)))]

    node = _choose_node(network.compute_layers[layer_index], rng)
    if node is None or node.has_input_from(source):
        return None

    weight = float(rng.uniform(-NEW_WEIGHT_RANGE, NEW_WEIGHT_RANGE))
    return InputCreation(node, source, weight)


def input_deletion(network: Network, rng: np.random.Generator) -> Optional[Mutation]:
    layer_index = _choose_layer(network, rng)
    if layer_index is None:
        return None
    node = _choose_node(network.compute_layers[layer_index], rng)
    if node is None or not node.inputs:
        return None
    return InputDeletion(node, int(rng.integers(len(node.inputs))))


# Priority orderings tried by one batch, weighted by MUTATION_ORDER_WEIGHTS.
MUTATION_ORDERS = (
    (weight_adjustment, input_creation, input_deletion),
    (input_creation, weight_adjustment, input_deletion),
    (input_deletion, weight_adjustment, input_creation),
)


def choose_order(rng: np.random.Generator) -> tuple:
    weights = np.asarray(MUTATION_ORDER_WEIGHTS, dtype=np.float64)
    return MUTATION_ORDERS[int(rng.choice(len(MUTATION_ORDERS), p=weights / weights.sum()))]


def mutate(network: Network, rng: np.random.Generator) -> List[Mutation]:
    """Try every edit kind once in a weighted priority order, returning those applied."""
    applied = []
    for provider in choose_order(rng):
        mutation = provider(network, rng)
        if mutation is None:
            continue
        mutation.apply()
        applied.append(mutation)
    return applied


def mutation_count(base: int, jitter: int, rng: np.random.Generator) -> int:
    """base +/- a uniform jitter, never below one."""
    offset = int(rng.integers(-jitter, jitter + 1)) if jitter > 0 else 0
    return max(1, base + offset)


def mutate_many(network: Network, count: int, rng: np.random.Generator) -> List[Mutation]:
    applied = []
    for _ in range(count):
        applied.extend(mutate(network, rng))
    return applied
