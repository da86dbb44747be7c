"""
Tests for network save files.
"""

import base64
import json

import pytest

from network import Network
from player import PlayerConfig
from savedata import NetworkSave, SaveDataError, decode_network, encode_network


@pytest.fixture
def network_save(mutated_network):
    return NetworkSave(mutated_network, PlayerConfig(kernel_diameter=3), generation=12, score=-40)


class TestNetworkSave:
    def test_encoding_is_text_safe(self, mutated_network):
        encoded = encode_network(mutated_network)
        base64.b64decode(encoded, validate=True)
        assert decode_network(encoded) == mutated_network

    def test_file_round_trip(self, tmp_path, network_save):
        path = tmp_path / "nested" / "save.json"
        network_save.save(str(path))
        loaded = NetworkSave.load(str(path))

        assert loaded.network == network_save.network
        assert loaded.player_config == network_save.player_config
        assert loaded.generation == 12
        assert loaded.score == -40

    def test_document_is_readable_json(self, tmp_path, network_save):
        path = tmp_path / "save.json"
        network_save.save(str(path))
        data = json.loads(path.read_text())

        assert data["player_config"]["kernel_diameter"] == 3
        assert isinstance(data["network"], str)
        assert "\n  " in path.read_text()

    def test_optional_fields_omitted(self, killer_network):
        data = NetworkSave(killer_network, PlayerConfig(kernel_diameter=1)).to_dict()
        assert "generation" not in data
        assert "score" not in data
        assert NetworkSave.from_dict(data).generation is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(SaveDataError):
            NetworkSave.load(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(SaveDataError):
            NetworkSave.load(str(path))

    def test_missing_network(self, network_save):
        data = network_save.to_dict()
        del data["network"]
        with pytest.raises(SaveDataError):
            NetworkSave.from_dict(data)

    @pytest.mark.parametrize("payload", ["not base64!", base64.b64encode(b"garbage").decode("ascii")])
    def test_corrupt_network(self, network_save, payload):
        data = network_save.to_dict()
        data["network"] = payload
        with pytest.raises(SaveDataError) as excinfo:
            NetworkSave.from_dict(data)
        assert excinfo.value.__cause__ is not None

    def test_weights_survive_exactly(self, tmp_path, network_save):
        path = tmp_path / "save.json"
        network_save.save(str(path))
        loaded = NetworkSave.load(str(path)).network

        def weights(network: Network):
            return [edge.weight for layer in network.compute_layers
                    for node in layer.nodes.values() for edge in node.inputs]

        assert weights(loaded) == weights(network_save.network)
