# deployer/types/configs/indexer.py

from typing import Optional, List, Union
from msgspec import Struct

from .contract import ContractConfig


class IndexerConfig(Struct, forbid_unknown_fields=True):
    name: str
    contracts: List[ContractConfig]
    description: Optional[str] = None
    network: Union[int, str] = 1
    start_block: int = 0
    rpc_url: Optional[str] = None

    @property
    def network_id(self) -> int:
        if isinstance(self.network, str):
            raise TypeError(f"Network {self.network!r} has not been resolved to a chain id")
        return self.network
