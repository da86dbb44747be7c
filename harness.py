"""
Feeds an arbitrary state into a network through input provider functions.

Providers are matched to input nodes in registration order. A harness keeps
a reference to its network and rewrites the input layer on every call, so one
harness (and its network) must never be shared between threads.
"""

from typing import Callable, Generic, Iterable, Iterator, List, TypeVar

from network import InputArityError, Network

S = TypeVar("S")

InputProvider = Callable[[S], float]


class NetworkHarness(Generic[S]):
    def __init__(self, network: Network, providers: Iterable[InputProvider] = ()):
        self.network = network
        self.input_providers: List[InputProvider] = list(providers)

    def add_input(self, provider: InputProvider) -> "NetworkHarness[S]":
        self.input_providers.append(provider)
        return self

    def add_inputs(self, providers: Iterable[InputProvider]) -> "NetworkHarness[S]":
        self.input_providers.extend(providers)
        return self

    def check_arity(self):
        height = self.network.input_layer.height
        if len(self.input_providers) != height:
            raise InputArityError(
                f"Harness has {len(self.input_providers)} input providers "
                f"but the network's input layer has {height} nodes"
            )

    def compute(self, state: S) -> Iterator[float]:
        """Refresh the input layer from state, then return the outputs in handle order."""
        self.check_arity()
        self.network.input_layer.update(provider(state) for provider in self.input_providers)
        return iter(self.network.outputs())
