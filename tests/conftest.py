"""
Shared fixtures for the Life Killer tests.
"""

import numpy as np
import pytest

from mutation import mutate_many
from network import Activator, Combinator, Edge, Network, NetworkConfig


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def tanh_add():
    return NetworkConfig(Activator.TANH, Combinator.ADD)


@pytest.fixture
def mutated_network(tanh_add):
    """3x3-kernel network with a few hundred random edits applied."""
    network = Network.new(tanh_add, 9, 2, 6, 2)
    mutate_many(network, 300, np.random.default_rng(7))
    return network


@pytest.fixture
def killer_network(tanh_add):
    """
    1x1-kernel network that scores alive cells highest and wants them dead.

    Alive encodes to 1.0: score tanh(1) > 0, state tanh(-2) < -0.5.
    Dead encodes to -1.0: score tanh(-1) < 0, state tanh(2) > 0.5.
    """
    network = Network.new(tanh_add, 1, 0, 0, 2)
    source = network.input_layer.output_keys()[0]
    score_node, state_node = network.output_layer.nodes.values()
    score_node.inputs.append(Edge(source, 1.0))
    state_node.inputs.append(Edge(source, -2.0))
    return network
