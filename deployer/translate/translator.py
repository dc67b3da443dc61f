# deployer/translate/translator.py

import re
from typing import Union, Optional, Tuple, Set

import msgspec
from eth_utils import is_hex_address, to_checksum_address

from ..core.logging import DeployerLogger, log_with_context, DEBUG
from ..errors import ConfigError
from ..types import (
    IndexerConfig,
    ContractConfig,
    DeploymentMode,
    SpawnRequest,
    EvmAddress,
)
from .abi import decode_abi, find_event
from .networks import resolve_network_id, get_network


_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_ALPHANUMERIC = re.compile(r'[A-Za-z0-9]')

_config_decoder = msgspec.json.Decoder(IndexerConfig)
_request_decoder = msgspec.json.Decoder(SpawnRequest)

logger = DeployerLogger.get_logger('translate.translator')


def translate(raw: Union[bytes, str]) -> IndexerConfig:
    """
    Decode and validate an indexer configuration document.

    Args:
        raw: JSON document describing the indexer

    Returns:
        Normalised IndexerConfig: checksummed addresses, decoded ABIs
        and a resolved chain id

    Raises:
        ConfigError: Malformed for structural problems, Invalid for
        semantic ones
    """
    try:
        config = _config_decoder.decode(raw)
    except msgspec.DecodeError as e:
        raise ConfigError.malformed(str(e))

    return validate_config(config)


def translate_spawn_request(raw: Union[bytes, str]) -> Tuple[IndexerConfig, Optional[DeploymentMode]]:
    try:
        request = _request_decoder.decode(raw)
    except msgspec.DecodeError as e:
        raise ConfigError.malformed(str(e))

    return translate(request.config), request.mode


def validate_config(config: IndexerConfig) -> IndexerConfig:
    name = config.name.strip()
    if not name:
        raise ConfigError.invalid("Indexer name must not be empty")
    if not _ALPHANUMERIC.search(name):
        raise ConfigError.invalid(f"Indexer name {config.name!r} has no alphanumeric characters")

    if not config.contracts:
        raise ConfigError.invalid("Indexer must define at least one contract")

    if config.start_block < 0:
        raise ConfigError.invalid(f"start_block must be non-negative, got {config.start_block}")

    network_id = _resolve_network(config)

    if config.rpc_url is not None and not config.rpc_url.startswith(('http://', 'https://')):
        raise ConfigError.invalid(f"rpc_url must be an http(s) URL, got {config.rpc_url!r}")

    seen: Set[str] = set()
    contracts = []
    for contract in config.contracts:
        if contract.name in seen:
            raise ConfigError.invalid(f"Duplicate contract name {contract.name!r}")
        seen.add(contract.name)
        contracts.append(_validate_contract(contract))

    log_with_context(logger, DEBUG, "Indexer config validated",
                     indexer_name=name, network=network_id, count=len(contracts))

    return msgspec.structs.replace(
        config,
        name=name,
        network=network_id,
        contracts=contracts,
    )


def _resolve_network(config: IndexerConfig) -> int:
    network_id = resolve_network_id(config.network)
    if network_id is None:
        raise ConfigError.invalid(f"Unknown network {config.network!r}")
    if network_id <= 0:
        raise ConfigError.invalid(f"Network id must be positive, got {network_id}")
    if get_network(network_id) is None and config.rpc_url is None:
        raise ConfigError.invalid(f"Network {network_id} is not a known network and no rpc_url was given")
    return network_id


def _validate_contract(contract: ContractConfig) -> ContractConfig:
    if not _IDENTIFIER.match(contract.name):
        raise ConfigError.invalid(f"Contract name {contract.name!r} is not a valid identifier")

    if not is_hex_address(contract.address):
        raise ConfigError.invalid(f"Contract {contract.name} has an invalid address {contract.address!r}")

    if contract.start_block is not None and contract.start_block < 0:
        raise ConfigError.invalid(f"Contract {contract.name} start_block must be non-negative")

    if not contract.events:
        raise ConfigError.invalid(f"Contract {contract.name} must declare at least one event")

    abi = decode_abi(contract.abi)

    # Entity and handler names are derived from the event name alone
    names: Set[str] = set()
    signatures: Set[str] = set()
    for reference in contract.events:
        event = find_event(abi, reference)
        if event.signature in signatures:
            raise ConfigError.invalid(f"Contract {contract.name} lists event {event.signature} twice")
        if event.name in names:
            raise ConfigError.invalid(
                f"Contract {contract.name} selects more than one overload of event {event.name}")
        signatures.add(event.signature)
        names.add(event.name)

    return msgspec.structs.replace(
        contract,
        address=EvmAddress(to_checksum_address(contract.address)),
        abi=abi,
    )
