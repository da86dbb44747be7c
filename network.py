"""
Sparse, strictly layered feed-forward network with stable node handles.

Nodes live in per-layer generational arenas (SlotMap), so a NodeKey stays
valid for a node's whole lifetime and across serialization, no matter how
the edge set changes around it. Only edges are ever added or removed during
evolution; layer heights are fixed when the network is built.

Node value = combinator-fold of activator(weight * source_value) over the
node's edges, or the combinator's identity when the node has no edges.
"""

import io
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import torch

from config import ACTIVATOR, COMBINATOR

FORMAT_VERSION = 1


class NetworkError(RuntimeError):
    """A network invariant was violated. Never recoverable."""


class DanglingEdgeError(NetworkError):
    """An edge names a source node that is not in the previous layer."""


class InputArityError(NetworkError):
    """Input values don't match the input layer height."""


class MissingOutputError(NetworkError):
    """The network produced fewer outputs than the caller needs."""


# =============================================================================
# GENERATIONAL ARENA
# =============================================================================

class NodeKey(NamedTuple):
    index: int
    generation: int

    def __str__(self):
        return f"{self.index}v{self.generation}"


class SlotMap:
    """
    Arena handing out NodeKey handles.

    Removing a value bumps its slot's generation, so a key to a removed value
    never resolves again even after the slot is reused.
    """

    def __init__(self):
        self._generations: List[int] = []
        self._values: List[object] = []
        self._occupied: List[bool] = []
        self._free: List[int] = []

    def insert(self, value) -> NodeKey:
        if self._free:
            index = self._free.pop()
            self._values[index] = value
            self._occupied[index] = True
        else:
            index = len(self._values)
            self._generations.append(1)
            self._values.append(value)
            self._occupied.append(True)
        return NodeKey(index, self._generations[index])

    def remove(self, key: NodeKey):
        if key not in self:
            raise KeyError(key)
        value = self._values[key.index]
        self._values[key.index] = None
        self._occupied[key.index] = False
        self._generations[key.index] += 1
        self._free.append(key.index)
        return value

    def get(self, key: NodeKey, default=None):
        return self[key] if key in self else default

    def __getitem__(self, key: NodeKey):
        if key not in self:
            raise KeyError(key)
        return self._values[key.index]

    def __setitem__(self, key: NodeKey, value):
        if key not in self:
            raise KeyError(key)
        self._values[key.index] = value

    def __contains__(self, key) -> bool:
        try:
            index, generation = key
        except (TypeError, ValueError):
            return False
        return (0 <= index < len(self._values)
                and self._occupied[index]
                and self._generations[index] == generation)

    def __len__(self) -> int:
        return len(self._values) - len(self._free)

    def keys(self) -> List[NodeKey]:
        return [NodeKey(i, g) for i, g in enumerate(self._generations) if self._occupied[i]]

    def values(self) -> list:
        return [v for i, v in enumerate(self._values) if self._occupied[i]]

    def items(self) -> List[Tuple[NodeKey, object]]:
        return [(NodeKey(i, self._generations[i]), v)
                for i, v in enumerate(self._values) if self._occupied[i]]

    def dump(self, encode: Callable[[object], object]) -> dict:
        """Plain-data snapshot keeping every generation tag."""
        return {
            "generations": list(self._generations),
            "entries": {(k.index, k.generation): encode(v) for k, v in self.items()},
        }

    @classmethod
    def load(cls, state: dict, decode: Callable[[object], object]) -> "SlotMap":
        slot_map = cls()
        generations = [int(g) for g in state["generations"]]
        slot_map._generations = generations
        slot_map._values = [None] * len(generations)
        slot_map._occupied = [False] * len(generations)
        for (index, generation), encoded in state["entries"].items():
            if not 0 <= index < len(generations) or generations[index] != generation:
                raise ValueError(f"Entry {index}v{generation} does not match its slot")
            slot_map._values[index] = decode(encoded)
            slot_map._occupied[index] = True
        slot_map._free = [i for i, occupied in enumerate(slot_map._occupied) if not occupied]
        return slot_map


# =============================================================================
# PER-NETWORK FUNCTIONS
# =============================================================================

class Activator(str, Enum):
    BINARY = "binary"
    RELU = "relu"
    TANH = "tanh"

    def activate(self, value: float) -> float:
        if self is Activator.BINARY:
            return 1.0 if value > 0.5 else 0.0
        if self is Activator.RELU:
            return value if value > 0.0 else 0.0
        return math.tanh(value)

    def activate_tensor(self, values: torch.Tensor) -> torch.Tensor:
        if self is Activator.BINARY:
            return (values > 0.5).to(values.dtype)
        if self is Activator.RELU:
            return torch.where(values > 0.0, values, torch.zeros_like(values))
        return torch.tanh(values)


class Combinator(str, Enum):
    ADD = "add"
    MUL = "mul"

    @property
    def identity(self) -> float:
        return 0.0 if self is Combinator.ADD else 1.0

    def combine(self, a: float, b: float) -> float:
        return a + b if self is Combinator.ADD else a * b

    def reduce_tensor(self, contributions: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
        """Fold the last dimension, ignoring entries where mask is False."""
        neutral = torch.full_like(contributions, self.identity)
        masked = torch.where(mask, contributions, neutral)
        if self is Combinator.ADD:
            return masked.sum(dim=-1)
        return masked.prod(dim=-1)


@dataclass(frozen=True)
class NetworkConfig:
    activator: Activator = Activator(ACTIVATOR)
    combinator: Combinator = Combinator(COMBINATOR)

    def to_dict(self) -> dict:
        return {"activator": self.activator.value, "combinator": self.combinator.value}

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkConfig":
        return cls(Activator(data["activator"]), Combinator(data["combinator"]))


# =============================================================================
# NODES AND LAYERS
# =============================================================================

@dataclass
class Edge:
    source: NodeKey
    weight: float


class Node:
    """A compute node: an ordered list of incoming edges."""

    __slots__ = ("inputs",)

    def __init__(self, inputs: Optional[List[Edge]] = None):
        self.inputs: List[Edge] = inputs if inputs is not None else []

    def has_input_from(self, source: NodeKey) -> bool:
        return any(edge.source == source for edge in self.inputs)

    def compute(self, config: NetworkConfig, input_values: Dict[NodeKey, float]) -> float:
        result = None
        for edge in self.inputs:
            try:
                source_value = input_values[edge.source]
            except KeyError:
                raise DanglingEdgeError(f"Edge source {edge.source} missing from previous layer") from None
            contribution = config.activator.activate(edge.weight * source_value)
            result = contribution if result is None else config.combinator.combine(result, contribution)
        return config.combinator.identity if result is None else result

    def clone(self) -> "Node":
        return Node([Edge(edge.source, edge.weight) for edge in self.inputs])

    def __eq__(self, other):
        return isinstance(other, Node) and self.inputs == other.inputs

    def __repr__(self):
        return f"Node({self.inputs!r})"


class InputLayer:
    """Externally supplied values, one per node handle."""

    def __init__(self, height: int = 0, nodes: Optional[SlotMap] = None):
        if nodes is None:
            nodes = SlotMap()
            for _ in range(height):
                nodes.insert(0.0)
        self.nodes = nodes

    @property
    def height(self) -> int:
        return len(self.nodes)

    def update(self, values: Iterable[float]):
        """Write values into the nodes in handle order."""
        keys = self.nodes.keys()
        count = 0
        for value in values:
            if count >= len(keys):
                raise InputArityError(f"Input layer too short ({len(keys)}) for all values")
            self.nodes[keys[count]] = float(value)
            count += 1

    def get_outputs(self, config: NetworkConfig, inputs=None) -> Dict[NodeKey, float]:
        return dict(self.nodes.items())

    def output_keys(self) -> List[NodeKey]:
        return self.nodes.keys()

    def clone(self) -> "InputLayer":
        return InputLayer(nodes=SlotMap.load(self.nodes.dump(float), float))


class ComputeLayer:
    def __init__(self, height: int = 0, nodes: Optional[SlotMap] = None):
        if nodes is None:
            nodes = SlotMap()
            for _ in range(height):
                nodes.insert(Node())
        self.nodes = nodes

    @property
    def height(self) -> int:
        return len(self.nodes)

    def get_outputs(self, config: NetworkConfig, inputs: Optional[Dict[NodeKey, float]]) -> Dict[NodeKey, float]:
        if inputs is None:
            raise NetworkError("Compute layer wasn't given inputs")
        return {key: node.compute(config, inputs) for key, node in self.nodes.items()}

    def output_keys(self) -> List[NodeKey]:
        return self.nodes.keys()

    def edge_count(self) -> int:
        return sum(len(node.inputs) for node in self.nodes.values())

    def dense(self, source_keys: Sequence[NodeKey], device=None) -> Tuple[torch.Tensor, torch.Tensor]:
        """Weight matrix [height, len(source_keys)] and its edge mask."""
        column = {key: i for i, key in enumerate(source_keys)}
        weights = torch.zeros((self.height, len(source_keys)), dtype=torch.float64, device=device)
        mask = torch.zeros((self.height, len(source_keys)), dtype=torch.bool, device=device)
        for row, node in enumerate(self.nodes.values()):
            for edge in node.inputs:
                if edge.source not in column:
                    raise DanglingEdgeError(f"Edge source {edge.source} missing from previous layer")
                weights[row, column[edge.source]] = edge.weight
                mask[row, column[edge.source]] = True
        return weights, mask

    def clone(self) -> "ComputeLayer":
        return ComputeLayer(nodes=SlotMap.load(self.nodes.dump(Node.clone), lambda node: node))


# =============================================================================
# NETWORK
# =============================================================================

class Network:
    """One input layer followed by hidden compute layers and one output layer."""

    def __init__(self, config: NetworkConfig, input_layer: InputLayer, compute_layers: List[ComputeLayer]):
        if not compute_layers:
            raise NetworkError("A network needs at least an output layer")
        self.config = config
        self.input_layer = input_layer
        self.compute_layers = compute_layers

    @classmethod
    def new(cls, config: NetworkConfig, input_layer_height: int, hidden_layer_count: int,
            hidden_layer_height: int, output_layer_height: int) -> "Network":
        """Build an edgeless network; evolution grows its edges."""
        hidden_layers = [ComputeLayer(hidden_layer_height) for _ in range(hidden_layer_count)]
        return cls(config, InputLayer(input_layer_height), hidden_layers + [ComputeLayer(output_layer_height)])

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------
    def layers(self) -> Iterator:
        yield self.input_layer
        yield from self.compute_layers

    def layer(self, index: int):
        """Layer by overall index (0 is the input layer), or None."""
        if index == 0:
            return self.input_layer
        if 0 < index <= len(self.compute_layers):
            return self.compute_layers[index - 1]
        return None

    @property
    def output_layer(self) -> ComputeLayer:
        return self.compute_layers[-1]

    def edge_count(self) -> int:
        return sum(layer.edge_count() for layer in self.compute_layers)

    def validate(self):
        """Raise DanglingEdgeError unless every edge resolves in the previous layer."""
        previous = self.input_layer
        for depth, layer in enumerate(self.compute_layers, start=1):
            for key, node in layer.nodes.items():
                for edge in node.inputs:
                    if edge.source not in previous.nodes:
                        raise DanglingEdgeError(
                            f"Layer {depth} node {key} has an edge from {edge.source}, "
                            f"which is not a node of layer {depth - 1}"
                        )
            previous = layer

    # -------------------------------------------------------------------------
    # Forward passes
    # -------------------------------------------------------------------------
    def compute(self) -> Dict[NodeKey, float]:
        """Run every layer from the stored input values, returning the output layer."""
        outputs = None
        for layer in self.layers():
            outputs = layer.get_outputs(self.config, outputs)
        return outputs

    def outputs(self) -> List[float]:
        """Output values in output-layer handle order."""
        results = self.compute()
        return [results[key] for key in self.output_layer.output_keys()]

    def compute_batch(self, inputs: torch.Tensor) -> torch.Tensor:
        """
        Vectorized forward pass.

        Args:
            inputs: [batch, input_height] values in input-layer handle order

        Returns:
            [batch, output_height] values in output-layer handle order
        """
        if inputs.dim() != 2 or inputs.shape[1] != self.input_layer.height:
            raise InputArityError(
                f"Expected inputs of shape [batch, {self.input_layer.height}], got {list(inputs.shape)}"
            )
        values = inputs.to(torch.float64)
        source_keys = self.input_layer.output_keys()
        for layer in self.compute_layers:
            weights, mask = layer.dense(source_keys, device=values.device)
            contributions = self.config.activator.activate_tensor(weights.unsqueeze(0) * values.unsqueeze(1))
            values = self.config.combinator.reduce_tensor(contributions, mask.unsqueeze(0))
            source_keys = layer.output_keys()
        return values

    # -------------------------------------------------------------------------
    # Copying and persistence
    # -------------------------------------------------------------------------
    def clone(self) -> "Network":
        return Network(self.config, self.input_layer.clone(), [layer.clone() for layer in self.compute_layers])

    def to_state(self) -> dict:
        def encode_node(node: Node):
            return [(edge.source.index, edge.source.generation, float(edge.weight)) for edge in node.inputs]

        return {
            "format": FORMAT_VERSION,
            "config": self.config.to_dict(),
            "input_layer": self.input_layer.nodes.dump(lambda value: 0.0),
            "compute_layers": [layer.nodes.dump(encode_node) for layer in self.compute_layers],
        }

    @classmethod
    def from_state(cls, state: dict) -> "Network":
        if state.get("format") != FORMAT_VERSION:
            raise ValueError(f"Unsupported network format {state.get('format')!r}")

        def decode_node(edges):
            return Node([Edge(NodeKey(int(i), int(g)), float(w)) for i, g, w in edges])

        network = cls(
            NetworkConfig.from_dict(state["config"]),
            InputLayer(nodes=SlotMap.load(state["input_layer"], float)),
            [ComputeLayer(nodes=SlotMap.load(layer, decode_node)) for layer in state["compute_layers"]],
        )
        network.validate()
        return network

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        torch.save(self.to_state(), buffer)
        return buffer.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Network":
        state = torch.load(io.BytesIO(data), map_location="cpu", weights_only=True)
        return cls.from_state(state)

    def describe(self) -> dict:
        """Human-readable structure for dumps."""
        return {
            "config": self.config.to_dict(),
            "input_layer": [str(key) for key in self.input_layer.output_keys()],
            "compute_layers": [
                {
                    str(key): [{"source": str(edge.source), "weight": edge.weight} for edge in node.inputs]
                    for key, node in layer.nodes.items()
                }
                for layer in self.compute_layers
            ],
        }

    def __eq__(self, other):
        if not isinstance(other, Network) or self.config != other.config:
            return False
        if self.input_layer.output_keys() != other.input_layer.output_keys():
            return False
        if len(self.compute_layers) != len(other.compute_layers):
            return False
        return all(a.nodes.items() == b.nodes.items()
                   for a, b in zip(self.compute_layers, other.compute_layers))

    def __repr__(self):
        heights = [layer.height for layer in self.layers()]
        return f"Network(heights={heights}, edges={self.edge_count()}, {self.config.activator.value}/{self.config.combinator.value})"
