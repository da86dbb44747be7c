"""
Tests for the elementary graph edits and the batch mutation policy.
"""

import numpy as np
import pytest

from mutation import (MUTATION_ORDERS, InputCreation, InputDeletion, WeightAdjustment, choose_order,
                      input_creation, input_deletion, mutate, mutate_many, mutation_count,
                      weight_adjustment)
from network import Edge, Network


def single_node_network(config, input_height=1):
    """Inputs wired straight to one output node, so every edit targets it."""
    return Network.new(config, input_height, 0, 0, 1)


class TestElementaryEdits:
    def test_edgeless_network_only_accepts_creation(self, tanh_add, rng):
        network = Network.new(tanh_add, 4, 2, 3, 2)
        for _ in range(50):
            assert weight_adjustment(network, rng) is None
            assert input_deletion(network, rng) is None
        assert isinstance(input_creation(network, rng), InputCreation)

    def test_creation_connects_previous_layer(self, tanh_add, rng):
        network = single_node_network(tanh_add, 3)
        mutation = input_creation(network, rng)
        mutation.apply()
        node = network.output_layer.nodes.values()[0]
        assert len(node.inputs) == 1
        assert node.inputs[0].source in network.input_layer.nodes
        assert -2.0 <= node.inputs[0].weight <= 2.0

    def test_creation_refuses_duplicate_source(self, tanh_add, rng):
        network = single_node_network(tanh_add)
        source = network.input_layer.output_keys()[0]
        network.output_layer.nodes.values()[0].inputs.append(Edge(source, 0.5))
        for _ in range(50):
            assert input_creation(network, rng) is None

    def test_repeated_creation_never_duplicates(self, tanh_add):
        network = Network.new(tanh_add, 3, 1, 2, 2)
        rng = np.random.default_rng(3)
        for _ in range(500):
            mutation = input_creation(network, rng)
            if mutation is not None:
                mutation.apply()

        for layer in network.compute_layers:
            for node in layer.nodes.values():
                sources = [edge.source for edge in node.inputs]
                assert len(sources) == len(set(sources))
        # Every possible edge exists by now: 3*2 + 2*2.
        assert network.edge_count() == 10

    def test_adjustment_floor_on_zero_weight(self, tanh_add, rng):
        network = single_node_network(tanh_add)
        edge = Edge(network.input_layer.output_keys()[0], 0.0)
        network.output_layer.nodes.values()[0].inputs.append(edge)

        mutation = weight_adjustment(network, rng)
        assert isinstance(mutation, WeightAdjustment)
        assert abs(mutation.adjustment) <= 0.01
        mutation.apply()
        assert edge.weight == mutation.adjustment

    def test_adjustment_bounded_by_half_weight(self, tanh_add, rng):
        network = single_node_network(tanh_add)
        network.output_layer.nodes.values()[0].inputs.append(Edge(network.input_layer.output_keys()[0], -4.0))
        for _ in range(20):
            assert abs(weight_adjustment(network, rng).adjustment) <= 2.0

    def test_deletion_removes_an_edge(self, tanh_add, rng):
        network = single_node_network(tanh_add, 2)
        keys = network.input_layer.output_keys()
        node = network.output_layer.nodes.values()[0]
        node.inputs.extend([Edge(keys[0], 1.0), Edge(keys[1], -1.0)])

        mutation = input_deletion(network, rng)
        assert isinstance(mutation, InputDeletion)
        mutation.apply()
        assert len(node.inputs) == 1

    def test_node_handles_survive_edits(self, mutated_network):
        keys_before = [layer.output_keys() for layer in mutated_network.layers()]
        mutate_many(mutated_network, 100, np.random.default_rng(2))
        assert [layer.output_keys() for layer in mutated_network.layers()] == keys_before


class TestBatchPolicy:
    def test_choose_order_is_known(self, rng):
        seen = {choose_order(rng) for _ in range(200)}
        assert seen <= set(MUTATION_ORDERS)
        assert len(seen) == 3

    def test_order_weights(self):
        rng = np.random.default_rng(0)
        picks = [MUTATION_ORDERS.index(choose_order(rng)) for _ in range(5000)]
        counts = np.bincount(picks, minlength=3) / len(picks)
        assert counts.tolist() == pytest.approx([0.7, 0.1, 0.2], abs=0.03)

    def test_mutate_tries_each_edit_once(self, tanh_add):
        network = Network.new(tanh_add, 4, 1, 3, 2)
        applied = mutate(network, np.random.default_rng(4))
        assert len(applied) <= 3
        assert all(type(m) in (WeightAdjustment, InputCreation, InputDeletion) for m in applied)
        assert network.edge_count() <= 1

    def test_mutate_many_grows_network(self, tanh_add):
        network = Network.new(tanh_add, 9, 2, 5, 2)
        applied = mutate_many(network, 50, np.random.default_rng(5))
        assert applied
        assert network.edge_count() > 0

    def test_mutation_count_bounds(self, rng):
        counts = {mutation_count(3, 1, rng) for _ in range(300)}
        assert counts == {2, 3, 4}

    def test_mutation_count_never_below_one(self, rng):
        assert min(mutation_count(1, 5, rng) for _ in range(300)) == 1

    def test_mutation_count_without_jitter(self, rng):
        assert mutation_count(3, 0, rng) == 3
