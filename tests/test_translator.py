# tests/test_translator.py

import json

import pytest

from deployer.errors import ConfigError
from deployer.translate import translate, translate_spawn_request
from deployer.types import DeploymentMode

from conftest import make_config, encode, ERC20_ABI, USDC_CHECKSUM, WETH_ADDRESS


def assert_config_error(raw, reason):
    with pytest.raises(ConfigError) as exc_info:
        translate(raw)
    assert exc_info.value.reason == reason
    return exc_info.value


class TestTranslateValid:

    def test_normalises_address_abi_and_network(self, config_bytes):
        config = translate(config_bytes)

        assert config.name == "usdc-transfers"
        assert config.network == 1
        assert config.network_id == 1
        assert config.start_block == 6082465

        contract = config.contracts[0]
        assert contract.address == USDC_CHECKSUM
        assert isinstance(contract.abi, list)
        assert contract.events == ["Transfer", "Approval"]

    def test_abi_given_as_json_string(self):
        document = make_config()
        document["contracts"][0]["abi"] = json.dumps(ERC20_ABI)

        config = translate(encode(document))
        assert config.contracts[0].abi_entries == ERC20_ABI

    def test_abi_wrapped_in_artifact_object(self):
        document = make_config()
        document["contracts"][0]["abi"] = json.dumps({"abi": ERC20_ABI, "bytecode": "0x"})

        config = translate(encode(document))
        assert config.contracts[0].abi_entries == ERC20_ABI

    def test_network_resolved_by_name(self):
        config = translate(encode(make_config(network="Base")))
        assert config.network == 8453

        config = translate(encode(make_config(network="arbitrum-sepolia")))
        assert config.network == 421614

    def test_unknown_chain_id_accepted_with_rpc_url(self):
        config = translate(encode(make_config(network=999999, rpc_url="https://rpc.example.org")))
        assert config.network == 999999
        assert config.rpc_url == "https://rpc.example.org"

    def test_event_given_as_signature(self):
        document = make_config()
        document["contracts"][0]["events"] = ["Transfer(address,address,uint256)"]
        config = translate(encode(document))
        assert config.contracts[0].events == ["Transfer(address,address,uint256)"]

    def test_name_is_stripped(self):
        config = translate(encode(make_config(name="  padded  ")))
        assert config.name == "padded"

    def test_accepts_str_input(self, config_bytes):
        config = translate(config_bytes.decode("utf-8"))
        assert config.name == "usdc-transfers"


class TestTranslateMalformed:

    def test_invalid_json(self):
        assert_config_error(b"{not json", ConfigError.MALFORMED)

    def test_missing_required_field(self):
        document = make_config()
        del document["contracts"]
        assert_config_error(encode(document), ConfigError.MALFORMED)

    def test_wrong_type(self):
        assert_config_error(encode(make_config(start_block="soon")), ConfigError.MALFORMED)

    def test_unknown_field(self):
        assert_config_error(encode(make_config(replicas=3)), ConfigError.MALFORMED)

    def test_error_kind(self):
        error = assert_config_error(b"[]", ConfigError.MALFORMED)
        assert error.kind == "ConfigError"


class TestTranslateInvalid:

    def test_no_contracts(self):
        assert_config_error(encode(make_config(contracts=[])), ConfigError.INVALID)

    def test_empty_name(self):
        assert_config_error(encode(make_config(name="   ")), ConfigError.INVALID)

    def test_name_without_alphanumerics(self):
        assert_config_error(encode(make_config(name="!!!")), ConfigError.INVALID)

    def test_duplicate_contract_names(self):
        document = make_config()
        second = dict(document["contracts"][0], address=WETH_ADDRESS)
        document["contracts"].append(second)
        error = assert_config_error(encode(document), ConfigError.INVALID)
        assert "Duplicate" in error.detail

    def test_contract_name_not_identifier(self):
        document = make_config()
        document["contracts"][0]["name"] = "usd coin"
        assert_config_error(encode(document), ConfigError.INVALID)

    def test_bad_address(self):
        document = make_config()
        document["contracts"][0]["address"] = "0x1234"
        assert_config_error(encode(document), ConfigError.INVALID)

    def test_abi_not_json(self):
        document = make_config()
        document["contracts"][0]["abi"] = "not an abi"
        assert_config_error(encode(document), ConfigError.INVALID)

    def test_unknown_event(self):
        document = make_config()
        document["contracts"][0]["events"] = ["Mint"]
        error = assert_config_error(encode(document), ConfigError.INVALID)
        assert "Mint" in error.detail

    def test_no_events(self):
        document = make_config()
        document["contracts"][0]["events"] = []
        assert_config_error(encode(document), ConfigError.INVALID)

    def test_event_listed_twice(self):
        document = make_config()
        document["contracts"][0]["events"] = ["Transfer", "Transfer(address,address,uint256)"]
        assert_config_error(encode(document), ConfigError.INVALID)

    def test_two_overloads_of_one_event(self):
        document = make_config()
        document["contracts"][0]["abi"] = [
            {"type": "event", "name": "Sync", "inputs": [{"name": "reserve", "type": "uint112"}]},
            {"type": "event", "name": "Sync", "inputs": [
                {"name": "reserve0", "type": "uint112"},
                {"name": "reserve1", "type": "uint112"},
            ]},
        ]
        document["contracts"][0]["events"] = ["Sync(uint112)", "Sync(uint112,uint112)"]
        error = assert_config_error(encode(document), ConfigError.INVALID)
        assert "Sync" in error.detail

        document["contracts"][0]["events"] = ["Sync(uint112,uint112)"]
        assert translate(encode(document)).contracts[0].events == ["Sync(uint112,uint112)"]

    def test_unknown_network_name(self):
        assert_config_error(encode(make_config(network="atlantis")), ConfigError.INVALID)

    def test_unknown_chain_id_without_rpc(self):
        assert_config_error(encode(make_config(network=999999)), ConfigError.INVALID)

    def test_negative_start_block(self):
        assert_config_error(encode(make_config(start_block=-1)), ConfigError.INVALID)

    def test_rpc_url_scheme(self):
        assert_config_error(encode(make_config(rpc_url="ws://node")), ConfigError.INVALID)


class TestSpawnRequest:

    def test_envelope_with_mode(self, config_document):
        config, mode = translate_spawn_request(encode({"config": config_document, "mode": "cluster"}))
        assert config.name == "usdc-transfers"
        assert mode == DeploymentMode.CLUSTER

    def test_envelope_without_mode(self, config_document):
        _, mode = translate_spawn_request(encode({"config": config_document}))
        assert mode is None

    def test_missing_config(self):
        with pytest.raises(ConfigError) as exc_info:
            translate_spawn_request(encode({"mode": "local"}))
        assert exc_info.value.reason == ConfigError.MALFORMED

    def test_unknown_mode(self, config_document):
        with pytest.raises(ConfigError) as exc_info:
            translate_spawn_request(encode({"config": config_document, "mode": "serverless"}))
        assert exc_info.value.reason == ConfigError.MALFORMED

    def test_invalid_inner_config(self, config_document):
        config_document["contracts"] = []
        with pytest.raises(ConfigError) as exc_info:
            translate_spawn_request(encode({"config": config_document}))
        assert exc_info.value.reason == ConfigError.INVALID
