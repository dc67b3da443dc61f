# deployer/types/__init__.py

from .primitives import (
    IndexerId,
    EvmAddress,
    ResourceName,
)

# Configuration Types
from .configs import ContractConfig, IndexerConfig

# Instance Types
from .instance import (
    DeploymentMode,
    RunState,
    LocalHandle,
    ClusterHandle,
    BackendHandle,
    IndexerInstance,
    DiscoveredResource,
)

from .cluster import ClusterManifests

# Job Envelopes
from .jobs import (
    SpawnRequest,
    InstanceRequest,
    ErrorBody,
    ErrorResponse,
    SpawnResponse,
    StatusResponse,
    StopResponse,
    ListResponse,
    ConfigResponse,
)
