# deployer/types/primitives.py

from typing import NewType

IndexerId = NewType('IndexerId', str)
EvmAddress = NewType('EvmAddress', str)
ResourceName = NewType('ResourceName', str)
