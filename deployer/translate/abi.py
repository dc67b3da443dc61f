# deployer/translate/abi.py

import json
import re
from typing import List, Dict, Any, Union, Optional

from eth_utils import keccak, encode_hex
from msgspec import Struct

from ..errors import ConfigError


_SOLIDITY_TYPE = re.compile(r'^(address|bool|string|bytes\d*|u?int\d*|tuple)((?:\[\d*\])*)$')


class EventParam(Struct, frozen=True):
    name: str
    type: str
    indexed: bool = False
    components: Optional[List['EventParam']] = None

    @property
    def canonical_type(self) -> str:
        if not self.type.startswith('tuple'):
            return self.type
        inner = ','.join(component.canonical_type for component in (self.components or []))
        return f"({inner}){self.type[len('tuple'):]}"


class EventDefinition(Struct, frozen=True):
    name: str
    inputs: List[EventParam]
    anonymous: bool = False

    @property
    def signature(self) -> str:
        """Canonical signature used for the topic hash, e.g. Transfer(address,address,uint256)"""
        types = ','.join(param.canonical_type for param in self.inputs)
        return f"{self.name}({types})"

    @property
    def topic0(self) -> str:
        return encode_hex(keccak(text=self.signature))

    @property
    def engine_signature(self) -> str:
        """Signature with indexed markers and parameter names, as the engine config expects"""
        parts = []
        for param in self.inputs:
            indexed = " indexed" if param.indexed else ""
            parts.append(f"{param.canonical_type}{indexed} {param.name}")
        return f"{self.name}({', '.join(parts)})"


def decode_abi(abi: Union[str, List[Any]]) -> List[Dict[str, Any]]:
    """Decode an ABI document given as a JSON string or a list of entries"""
    if isinstance(abi, str):
        try:
            abi = json.loads(abi)
        except json.JSONDecodeError as e:
            raise ConfigError.invalid(f"ABI is not valid JSON: {e}")

    if isinstance(abi, dict) and isinstance(abi.get('abi'), list):
        abi = abi['abi']

    if not isinstance(abi, list):
        raise ConfigError.invalid(f"ABI must be a JSON array, got {type(abi).__name__}")

    for index, entry in enumerate(abi):
        if not isinstance(entry, dict):
            raise ConfigError.invalid(f"ABI entry {index} is not an object")
        if entry.get('type') == 'event':
            if not isinstance(entry.get('name'), str) or not entry['name']:
                raise ConfigError.invalid(f"ABI event entry {index} has no name")
            if not isinstance(entry.get('inputs', []), list):
                raise ConfigError.invalid(f"ABI event {entry['name']} has malformed inputs")

    return abi


def _parse_param(raw: Any, position: int, event_name: str) -> EventParam:
    if not isinstance(raw, dict) or not isinstance(raw.get('type'), str):
        raise ConfigError.invalid(f"Event {event_name} input {position} has no type")

    solidity_type = raw['type'].strip()
    if not _SOLIDITY_TYPE.match(solidity_type):
        raise ConfigError.invalid(f"Event {event_name} input {position} has unsupported type {solidity_type!r}")

    components = None
    if solidity_type.startswith('tuple'):
        raw_components = raw.get('components')
        if not isinstance(raw_components, list) or not raw_components:
            raise ConfigError.invalid(f"Event {event_name} tuple input {position} has no components")
        components = [_parse_param(c, i, event_name) for i, c in enumerate(raw_components)]

    name = raw.get('name') or f"param{position}"
    return EventParam(
        name=name,
        type=solidity_type,
        indexed=bool(raw.get('indexed', False)),
        components=components,
    )


def parse_event(entry: Dict[str, Any]) -> EventDefinition:
    name = entry['name']
    inputs = [_parse_param(raw, i, name) for i, raw in enumerate(entry.get('inputs', []))]
    return EventDefinition(name=name, inputs=inputs, anonymous=bool(entry.get('anonymous', False)))


def list_events(abi: List[Dict[str, Any]]) -> List[EventDefinition]:
    return [parse_event(entry) for entry in abi if entry.get('type') == 'event']


def _events_named(abi: List[Dict[str, Any]], name: str) -> List[EventDefinition]:
    return [
        parse_event(entry) for entry in abi
        if entry.get('type') == 'event' and entry.get('name') == name
    ]


def _normalise_signature(signature: str) -> str:
    return re.sub(r'\s+', '', signature)


def find_event(abi: List[Dict[str, Any]], reference: str) -> EventDefinition:
    """
    Resolve an event reference against a decoded ABI.

    A reference containing "(" is matched against canonical or engine
    signatures, anything else by event name. Overloaded names must be given as full
    signatures.
    """
    if "(" in reference:
        wanted = _normalise_signature(reference)
        name = wanted[:wanted.index("(")]
        for event in _events_named(abi, name):
            if wanted in (event.signature, _normalise_signature(event.engine_signature)):
                return event
        raise ConfigError.invalid(f"Event signature {reference!r} not found in ABI")

    matches = _events_named(abi, reference)
    if not matches:
        raise ConfigError.invalid(f"Event {reference!r} not found in ABI")
    if len(matches) > 1:
        signatures = ', '.join(event.signature for event in matches)
        raise ConfigError.invalid(
            f"Event {reference!r} is overloaded in ABI, use a full signature ({signatures})"
        )
    return matches[0]


def graphql_type(solidity_type: str) -> str:
    """Map a Solidity parameter type to the GraphQL type stored by the engine"""
    if solidity_type.endswith("]"):
        inner = solidity_type[:solidity_type.rindex('[')]
        return f"[{graphql_type(inner)}]!"

    if solidity_type == 'bool':
        return "Boolean!"
    if solidity_type.startswith(('uint', 'int')):
        return "BigInt!"
    if solidity_type in ('address', 'string') or solidity_type.startswith(('bytes', 'tuple', '(')):
        return "String!"

    raise ConfigError.invalid(f"Unsupported Solidity type {solidity_type!r}")
