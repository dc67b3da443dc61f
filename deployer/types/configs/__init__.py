from .contract import ContractConfig
from .indexer import IndexerConfig

__all__ = ['ContractConfig', 'IndexerConfig']
