# deployer/types/cluster.py

from typing import Dict, Any

from msgspec import Struct

from .primitives import ResourceName


class ClusterManifests(Struct, frozen=True):
    namespace: str
    deployment_name: ResourceName
    service_name: ResourceName
    labels: Dict[str, str]
    deployment: Dict[str, Any]
    service: Dict[str, Any]
