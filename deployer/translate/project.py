# deployer/translate/project.py

"""
Generated engine project: config.yaml, ABI files, GraphQL schema and
TypeScript event handlers. Each contract event becomes one entity named
<Contract>_<Event> with one field per event parameter.
"""

import json
from typing import Dict, List, Any

import yaml

from ..types import IndexerConfig, ContractConfig
from .abi import EventDefinition, EventParam, find_event, graphql_type
from .manifests import sanitise_name

CONFIG_FILE = "config.yaml"
SCHEMA_FILE = "schema.graphql"
HANDLERS_FILE = "src/EventHandlers.ts"
PACKAGE_FILE = "package.json"
ENGINE_VERSION = "^2.0.0"

_RESERVED_FIELDS = {"id", "blockNumber", "transactionHash"}


def abi_path(contract: ContractConfig) -> str:
    return f"abis/{contract.name}.json"


def entity_name(contract: ContractConfig, event: EventDefinition) -> str:
    return f"{contract.name}_{event.name}"


def field_name(param: EventParam) -> str:
    return f"{param.name}_" if param.name in _RESERVED_FIELDS else param.name


def resolve_events(contract: ContractConfig) -> List[EventDefinition]:
    return [find_event(contract.abi_entries, reference) for reference in contract.events]


def render_engine_config(config: IndexerConfig, instance_id: str) -> str:
    contracts = []
    for contract in config.contracts:
        entry: Dict[str, Any] = {
            "name": contract.name,
            "address": [contract.address],
            "abi_file_path": abi_path(contract),
            "handler": HANDLERS_FILE,
            "events": [{"event": event.engine_signature} for event in resolve_events(contract)],
        }
        if contract.start_block is not None:
            entry["start_block"] = contract.start_block
        contracts.append(entry)

    network: Dict[str, Any] = {
        "id": config.network_id,
        "start_block": config.start_block,
    }
    if config.rpc_url:
        network["rpc_config"] = {"url": config.rpc_url}
    network["contracts"] = contracts

    document = {
        "name": sanitise_name(config.name) or instance_id,
        "description": config.description or f"{config.name} ({instance_id})",
        "networks": [network],
        "rollback_on_reorg": False,
    }
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def render_schema(config: IndexerConfig) -> str:
    blocks = []
    for contract in config.contracts:
        for event in resolve_events(contract):
            lines = [f"type {entity_name(contract, event)} {{", "  id: ID!"]
            for param in event.inputs:
                lines.append(f"  {field_name(param)}: {graphql_type(param.canonical_type)}")
            lines.append("  blockNumber: Int!")
            lines.append("  transactionHash: String!")
            lines.append("}")
            blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


def _param_expression(param: EventParam) -> str:
    source = f"event.params.{param.name}"
    canonical = param.canonical_type
    if not canonical.startswith("("):
        return source
    if canonical.endswith("]"):
        return f"{source}.map(serialise)"
    return f"serialise({source})"


def render_handlers(config: IndexerConfig) -> str:
    imports = []
    handlers = []
    for contract in config.contracts:
        imports.append(contract.name)
        for event in resolve_events(contract):
            entity = entity_name(contract, event)
            imports.append(entity)

            fields = ["    id: `${event.chainId}_${event.block.number}_${event.logIndex}`,"]
            for param in event.inputs:
                fields.append(f"    {field_name(param)}: {_param_expression(param)},")
            fields.append("    blockNumber: event.block.number,")
            fields.append("    transactionHash: event.transaction.hash,")

            handlers.append("\n".join([
                f"{contract.name}.{event.name}.handler(async ({{ event, context }}) => {{",
                f"  const entity: {entity} = {{",
                *fields,
                "  };",
                f"  context.{entity}.set(entity);",
                "});",
            ]))

    header = [
        "import {",
        *[f"  {name}," for name in imports],
        '} from "generated";',
        "",
        "const serialise = (value: unknown): string =>",
        '  JSON.stringify(value, (_, v) => (typeof v === "bigint" ? v.toString() : v));',
    ]
    return "\n".join(header) + "\n\n" + "\n\n".join(handlers) + "\n"


def render_package(config: IndexerConfig, instance_id: str) -> str:
    document = {
        "name": sanitise_name(config.name) or instance_id,
        "version": "0.0.1",
        "private": True,
        "scripts": {"codegen": "envio codegen", "dev": "envio dev"},
        "dependencies": {"envio": ENGINE_VERSION},
    }
    return json.dumps(document, indent=2) + "\n"


def render_project(config: IndexerConfig, instance_id: str) -> Dict[str, str]:
    """
    Render every file of the engine project for an instance.

    Args:
        config: Validated indexer configuration
        instance_id: Identifier of the instance the project belongs to

    Returns:
        Mapping of relative path to file content
    """
    files = {
        CONFIG_FILE: render_engine_config(config, instance_id),
        SCHEMA_FILE: render_schema(config),
        HANDLERS_FILE: render_handlers(config),
        PACKAGE_FILE: render_package(config, instance_id),
    }
    for contract in config.contracts:
        files[abi_path(contract)] = json.dumps(contract.abi_entries, indent=2) + "\n"
    return files
