"""
Network save files.

A save is a pretty-printed JSON document holding the player configuration
and a few run facts, with the network itself embedded as a base64 string of
its compact binary form. Scalar settings stay hand-editable while the bulk
of the numbers stays opaque.
"""

import base64
import binascii
import json
import os
import pickle
from typing import Optional

from network import Network, NetworkError
from player import PlayerConfig


class SaveDataError(Exception):
    """A save file couldn't be read, decoded or written."""


def encode_network(network: Network) -> str:
    return base64.b64encode(network.to_bytes()).decode("ascii")


def decode_network(encoded: str) -> Network:
    return Network.from_bytes(base64.b64decode(encoded.encode("ascii"), validate=True))


class NetworkSave:
    def __init__(self, network: Network, player_config: PlayerConfig,
                 generation: Optional[int] = None, score: Optional[int] = None):
        self.network = network
        self.player_config = player_config
        self.generation = generation
        self.score = score

    def to_dict(self) -> dict:
        data = {"player_config": self.player_config.to_dict()}
        if self.generation is not None:
            data["generation"] = self.generation
        if self.score is not None:
            data["score"] = self.score
        data["network"] = encode_network(self.network)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkSave":
        try:
            return cls(
                network=decode_network(data["network"]),
                player_config=PlayerConfig.from_dict(data["player_config"]),
                generation=data.get("generation"),
                score=data.get("score"),
            )
        except (KeyError, TypeError, ValueError, binascii.Error, EOFError,
                pickle.UnpicklingError, NetworkError, RuntimeError) as e:
            raise SaveDataError(f"Couldn't deserialize network save: {e}") from e

    def save(self, path):
        """Write the save as JSON, creating parent directories as needed."""
        serialized = json.dumps(self.to_dict(), indent=2)
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        with open(path, "w") as f:
            f.write(serialized)

    @classmethod
    def load(cls, path) -> "NetworkSave":
        try:
            with open(path) as f:
                data = json.load(f)
        except OSError as e:
            raise SaveDataError(f"Couldn't read network save {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise SaveDataError(f"Network save {path} is not valid JSON: {e}") from e
        return cls.from_dict(data)
