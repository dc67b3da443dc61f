# deployer/types/configs/contract.py

from typing import Dict, Optional, List, Any, Union
from msgspec import Struct

from ..primitives import EvmAddress


class ContractConfig(Struct, forbid_unknown_fields=True):
    name: str
    address: EvmAddress
    events: List[str]
    abi: Union[str, List[Dict[str, Any]]]
    start_block: Optional[int] = None

    @property
    def abi_entries(self) -> List[Dict[str, Any]]:
        if isinstance(self.abi, str):
            raise TypeError(f"ABI for contract {self.name} has not been decoded")
        return self.abi
