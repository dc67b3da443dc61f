# deployer/translate/networks.py

from typing import Dict, Optional, Union

from msgspec import Struct


class NetworkInfo(Struct, frozen=True):
    network_id: int
    name: str
    slug: str

    @property
    def hypersync_url(self) -> str:
        return f"https://{self.slug}.hypersync.xyz"


def _networks(*entries) -> Dict[int, NetworkInfo]:
    return {
        network_id: NetworkInfo(network_id=network_id, name=name, slug=slug)
        for network_id, name, slug in entries
    }


SUPPORTED_NETWORKS: Dict[int, NetworkInfo] = _networks(
    (1, "Ethereum Mainnet", "eth"),
    (10, "Optimism", "optimism"),
    (56, "BSC", "bsc"),
    (100, "Gnosis", "gnosis"),
    (137, "Polygon", "polygon"),
    (250, "Fantom", "fantom"),
    (324, "ZKSync", "zksync"),
    (1101, "Polygon zkEVM", "polygon-zkevm"),
    (5000, "Mantle", "mantle"),
    (5845, "Tangle", "tangle"),
    (8453, "Base", "base"),
    (17000, "Holesky", "holesky"),
    (34443, "Mode", "mode"),
    (42161, "Arbitrum", "arbitrum"),
    (42170, "Arbitrum Nova", "arbitrum-nova"),
    (42220, "Celo", "celo"),
    (43113, "Fuji", "fuji"),
    (43114, "Avalanche", "avalanche"),
    (59144, "Linea", "linea"),
    (81457, "Blast", "blast"),
    (84532, "Base Sepolia", "base-sepolia"),
    (421614, "Arbitrum Sepolia", "arbitrum-sepolia"),
    (534352, "Scroll", "scroll"),
    (7777777, "Zora", "zora"),
    (11155111, "Sepolia", "sepolia"),
    (11155420, "Optimism Sepolia", "optimism-sepolia"),
)


def get_network(network_id: int) -> Optional[NetworkInfo]:
    return SUPPORTED_NETWORKS.get(network_id)


def resolve_network_id(network: Union[int, str]) -> Optional[int]:
    """Resolve a chain id, a numeric string, a network name or a slug to a chain id"""
    if isinstance(network, int):
        return network

    candidate = network.strip()
    if candidate.isdigit():
        return int(candidate)

    lowered = candidate.lower()
    for info in SUPPORTED_NETWORKS.values():
        if info.name.lower() == lowered or info.slug == lowered:
            return info.network_id

    return None
