"""
Tests for the layered network, its handle arena and its persistence.
"""

import numpy as np
import pytest
import torch

from mutation import mutate_many
from network import (Activator, Combinator, ComputeLayer, DanglingEdgeError, Edge, InputArityError,
                     InputLayer, Network, NetworkConfig, NetworkError, Node, NodeKey, SlotMap)


def assert_edges_resolve(network):
    previous = network.input_layer
    for layer in network.compute_layers:
        for node in layer.nodes.values():
            for edge in node.inputs:
                assert edge.source in previous.nodes
        previous = layer


class TestSlotMap:
    def test_insert_hands_out_distinct_keys(self):
        slots = SlotMap()
        a = slots.insert("a")
        b = slots.insert("b")
        assert a != b
        assert slots[a] == "a"
        assert slots[b] == "b"
        assert len(slots) == 2

    def test_removed_key_never_resolves_again(self):
        slots = SlotMap()
        old = slots.insert("old")
        slots.remove(old)
        new = slots.insert("new")

        assert new.index == old.index
        assert new.generation != old.generation
        assert old not in slots
        assert slots.get(old) is None
        with pytest.raises(KeyError):
            slots[old]

    def test_keys_in_slot_order(self):
        slots = SlotMap()
        keys = [slots.insert(i) for i in range(4)]
        slots.remove(keys[1])
        assert slots.keys() == [keys[0], keys[2], keys[3]]
        assert slots.values() == [0, 2, 3]

    def test_dump_load_keeps_generations(self):
        slots = SlotMap()
        first = slots.insert(1.5)
        slots.remove(first)
        second = slots.insert(2.5)

        loaded = SlotMap.load(slots.dump(float), float)
        assert loaded.keys() == [second]
        assert loaded[second] == 2.5
        assert first not in loaded

    def test_load_rejects_mismatched_entry(self):
        with pytest.raises(ValueError):
            SlotMap.load({"generations": [1], "entries": {(0, 2): 0.0}}, float)

    def test_contains_ignores_garbage(self):
        assert "nope" not in SlotMap()
        assert None not in SlotMap()


class TestFunctions:
    def test_activators(self):
        assert Activator.BINARY.activate(0.6) == 1.0
        assert Activator.BINARY.activate(0.5) == 0.0
        assert Activator.RELU.activate(-3.0) == 0.0
        assert Activator.RELU.activate(2.0) == 2.0
        assert Activator.TANH.activate(0.0) == 0.0

    def test_tensor_activators_match_scalar(self):
        values = [-2.0, -0.1, 0.0, 0.5, 0.51, 3.0]
        for activator in Activator:
            tensor = activator.activate_tensor(torch.tensor(values, dtype=torch.float64)).tolist()
            assert tensor == pytest.approx([activator.activate(v) for v in values])

    def test_combinator_identities(self):
        assert Combinator.ADD.identity == 0.0
        assert Combinator.MUL.identity == 1.0
        assert Combinator.ADD.combine(2.0, 3.0) == 5.0
        assert Combinator.MUL.combine(2.0, 3.0) == 6.0

    def test_config_round_trip(self):
        config = NetworkConfig(Activator.RELU, Combinator.MUL)
        assert NetworkConfig.from_dict(config.to_dict()) == config


class TestNode:
    def test_edgeless_node_is_identity(self, tanh_add):
        assert Node().compute(tanh_add, {}) == 0.0
        assert Node().compute(NetworkConfig(Activator.TANH, Combinator.MUL), {}) == 1.0

    def test_compute_folds_edges(self):
        config = NetworkConfig(Activator.RELU, Combinator.ADD)
        a, b = NodeKey(0, 1), NodeKey(1, 1)
        node = Node([Edge(a, 2.0), Edge(b, -1.0)])
        # relu(2 * 3) + relu(-1 * 4)
        assert node.compute(config, {a: 3.0, b: 4.0}) == 6.0

    def test_dangling_edge_raises(self, tanh_add):
        node = Node([Edge(NodeKey(99, 1), 1.0)])
        with pytest.raises(DanglingEdgeError):
            node.compute(tanh_add, {NodeKey(0, 1): 1.0})


class TestNetwork:
    def test_new_network_shape(self, tanh_add):
        network = Network.new(tanh_add, 9, 3, 15, 2)
        assert [layer.height for layer in network.layers()] == [9, 15, 15, 15, 2]
        assert network.edge_count() == 0
        assert network.layer(0) is network.input_layer
        assert network.layer(4) is network.output_layer
        assert network.layer(5) is None

    def test_needs_output_layer(self, tanh_add):
        with pytest.raises(NetworkError):
            Network(tanh_add, InputLayer(1), [])

    def test_zero_weights_give_neutral_outputs(self, tanh_add):
        network = Network.new(tanh_add, 3, 1, 2, 2)
        for previous, layer in zip(network.layers(), network.compute_layers):
            for node in layer.nodes.values():
                node.inputs.extend(Edge(key, 0.0) for key in previous.output_keys())
        network.input_layer.update([0.0, 0.0, 0.0])

        assert network.outputs() == [0.0, 0.0]
        batch = network.compute_batch(torch.zeros((4, 3), dtype=torch.float64))
        assert batch.tolist() == [[0.0, 0.0]] * 4

    def test_edgeless_mul_network_outputs_one(self):
        network = Network.new(NetworkConfig(Activator.TANH, Combinator.MUL), 2, 1, 3, 2)
        network.input_layer.update([0.3, -0.7])
        assert network.outputs() == [1.0, 1.0]

    def test_input_update_too_many_values(self, tanh_add):
        layer = InputLayer(2)
        with pytest.raises(InputArityError):
            layer.update([1.0, 2.0, 3.0])

    def test_compute_batch_checks_shape(self, tanh_add):
        network = Network.new(tanh_add, 3, 0, 0, 2)
        with pytest.raises(InputArityError):
            network.compute_batch(torch.zeros((1, 4)))

    def test_compute_batch_matches_compute(self, mutated_network, rng):
        inputs = rng.choice([-1.0, -0.0, 1.0], size=(6, 9))
        batch = mutated_network.compute_batch(torch.as_tensor(inputs)).tolist()
        for row, expected in zip(inputs, batch):
            mutated_network.input_layer.update(row)
            assert mutated_network.outputs() == pytest.approx(expected)

    def test_compute_batch_mul_matches_compute(self, rng):
        network = Network.new(NetworkConfig(Activator.RELU, Combinator.MUL), 4, 1, 3, 2)
        mutate_many(network, 80, rng)
        inputs = rng.uniform(-1.0, 1.0, size=(5, 4))
        batch = network.compute_batch(torch.as_tensor(inputs)).tolist()
        for row, expected in zip(inputs, batch):
            network.input_layer.update(row)
            assert network.outputs() == pytest.approx(expected)

    def test_validate_flags_dangling_edge(self, tanh_add):
        network = Network.new(tanh_add, 2, 1, 2, 2)
        # The hidden layer has no node 5.
        network.output_layer.nodes.values()[0].inputs.append(Edge(NodeKey(5, 1), 1.0))
        with pytest.raises(DanglingEdgeError):
            network.validate()

    def test_dense_flags_dangling_edge(self, tanh_add):
        layer = ComputeLayer(1)
        layer.nodes.values()[0].inputs.append(Edge(NodeKey(3, 1), 1.0))
        with pytest.raises(DanglingEdgeError):
            layer.dense([NodeKey(0, 1)])

    def test_edges_resolve_after_random_mutations(self, tanh_add):
        for seed in range(10):
            network = Network.new(tanh_add, 4, 2, 3, 2)
            mutate_many(network, 200, np.random.default_rng(seed))
            assert_edges_resolve(network)
            network.validate()

    def test_clone_is_deep(self, mutated_network):
        clone = mutated_network.clone()
        assert clone == mutated_network

        node = next(node for layer in clone.compute_layers for node in layer.nodes.values() if node.inputs)
        node.inputs[0].weight += 1.0
        assert clone != mutated_network


class TestPersistence:
    def test_bytes_round_trip_is_exact(self, mutated_network):
        loaded = Network.from_bytes(mutated_network.to_bytes())

        assert loaded == mutated_network
        assert loaded.config == mutated_network.config
        for ours, theirs in zip(mutated_network.compute_layers, loaded.compute_layers):
            assert ours.output_keys() == theirs.output_keys()
            for (key_a, node_a), (key_b, node_b) in zip(ours.nodes.items(), theirs.nodes.items()):
                assert key_a == key_b
                assert [e.source for e in node_a.inputs] == [e.source for e in node_b.inputs]
                assert [e.weight.hex() for e in node_a.inputs] == [e.weight.hex() for e in node_b.inputs]

    def test_round_trip_keeps_behavior(self, mutated_network, rng):
        inputs = torch.as_tensor(rng.choice([-1.0, 1.0], size=(3, 9)))
        loaded = Network.from_bytes(mutated_network.to_bytes())
        assert torch.equal(loaded.compute_batch(inputs), mutated_network.compute_batch(inputs))

    def test_unknown_format_rejected(self, mutated_network):
        state = mutated_network.to_state()
        state["format"] = 99
        with pytest.raises(ValueError):
            Network.from_state(state)

    def test_dangling_state_rejected(self, tanh_add):
        state = Network.new(tanh_add, 1, 0, 0, 1).to_state()
        state["compute_layers"][0]["entries"][(0, 1)] = [(7, 1, 0.5)]
        with pytest.raises(DanglingEdgeError):
            Network.from_state(state)

    def test_describe_uses_handles(self, killer_network):
        described = killer_network.describe()
        assert described["input_layer"] == ["0v1"]
        assert described["compute_layers"][0]["0v1"] == [{"source": "0v1", "weight": 1.0}]
