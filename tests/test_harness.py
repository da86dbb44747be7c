"""
Tests for NetworkHarness.
"""

import pytest

from harness import NetworkHarness
from network import Edge, InputArityError, Network


class TestNetworkHarness:
    def test_arity_mismatch_is_fatal(self, tanh_add):
        network = Network.new(tanh_add, 2, 0, 0, 1)
        harness = NetworkHarness(network).add_input(lambda state: 1.0)
        with pytest.raises(InputArityError):
            harness.compute(None)

    def test_too_many_providers(self, tanh_add):
        network = Network.new(tanh_add, 1, 0, 0, 1)
        harness = NetworkHarness(network, [lambda s: 0.0, lambda s: 0.0])
        with pytest.raises(InputArityError):
            harness.check_arity()

    def test_providers_feed_inputs_in_order(self, tanh_add):
        network = Network.new(tanh_add, 2, 0, 0, 2)
        first, second = network.input_layer.output_keys()
        out_a, out_b = network.output_layer.nodes.values()
        out_a.inputs.append(Edge(first, 1.0))
        out_b.inputs.append(Edge(second, 1.0))

        harness = NetworkHarness(network).add_inputs([lambda s: s["a"], lambda s: s["b"]])
        outputs = list(harness.compute({"a": 0.0, "b": 0.5}))

        assert outputs[0] == 0.0
        assert outputs[1] == pytest.approx(0.46211715726)

    def test_compute_refreshes_inputs(self, killer_network):
        harness = NetworkHarness(killer_network, [lambda s: s])
        high = next(harness.compute(1.0))
        low = next(harness.compute(-1.0))
        assert high == pytest.approx(-low)
        assert high > 0
