# tests/test_project.py

import json

import yaml

from deployer.translate import translate, render_project
from deployer.translate.project import CONFIG_FILE, SCHEMA_FILE, HANDLERS_FILE, PACKAGE_FILE

from conftest import make_config, encode, ERC20_ABI, USDC_CHECKSUM


def project_for(**overrides):
    config = translate(encode(make_config(**overrides)))
    return render_project(config, "idx-0123")


def test_project_files():
    files = project_for()
    assert set(files) == {CONFIG_FILE, SCHEMA_FILE, HANDLERS_FILE, PACKAGE_FILE, "abis/USDC.json"}
    assert json.loads(files["abis/USDC.json"]) == ERC20_ABI


def test_engine_config():
    files = project_for(rpc_url="https://rpc.example.org")
    document = yaml.safe_load(files[CONFIG_FILE])

    assert document["name"] == "usdc-transfers"
    network = document["networks"][0]
    assert network["id"] == 1
    assert network["start_block"] == 6082465
    assert network["rpc_config"] == {"url": "https://rpc.example.org"}

    contract = network["contracts"][0]
    assert contract["name"] == "USDC"
    assert contract["address"] == [USDC_CHECKSUM]
    assert contract["abi_file_path"] == "abis/USDC.json"
    assert contract["events"] == [
        {"event": "Transfer(address indexed from, address indexed to, uint256 value)"},
        {"event": "Approval(address indexed owner, address indexed spender, uint256 value)"},
    ]


def test_engine_config_without_rpc():
    document = yaml.safe_load(project_for()[CONFIG_FILE])
    assert "rpc_config" not in document["networks"][0]


def test_schema_has_entity_per_event():
    schema = project_for()[SCHEMA_FILE]

    assert "type USDC_Transfer {" in schema
    assert "type USDC_Approval {" in schema
    assert "  from: String!" in schema
    assert "  value: BigInt!" in schema
    assert "  blockNumber: Int!" in schema


def test_reserved_field_names_are_renamed():
    abi = [{"type": "event", "name": "Created", "inputs": [
        {"name": "id", "type": "uint256", "indexed": True},
        {"name": "owner", "type": "address"},
    ]}]
    document = make_config()
    document["contracts"][0].update(abi=abi, events=["Created"])
    files = render_project(translate(encode(document)), "idx-0123")

    assert "  id_: BigInt!" in files[SCHEMA_FILE]
    assert "id_: event.params.id," in files[HANDLERS_FILE]


def test_handlers():
    handlers = project_for()[HANDLERS_FILE]

    assert '} from "generated";' in handlers
    assert "USDC.Transfer.handler(async ({ event, context }) => {" in handlers
    assert "context.USDC_Transfer.set(entity);" in handlers
    assert "value: event.params.value," in handlers


def test_package_manifest():
    package = json.loads(project_for()[PACKAGE_FILE])
    assert package["name"] == "usdc-transfers"
    assert "envio" in package["dependencies"]
