from .interfaces import IndexerBackend
from .readiness import ReadinessProbe, PortProbe, LogMarkerProbe, create_probe
from .local import LocalProcessBackend
from .cluster import ClusterBackend, deployment_state
from .dispatch import BackendDispatcher

__all__ = [
    'IndexerBackend',
    'ReadinessProbe',
    'PortProbe',
    'LogMarkerProbe',
    'create_probe',
    'LocalProcessBackend',
    'ClusterBackend',
    'deployment_state',
    'BackendDispatcher',
]
