# deployer/backends/dispatch.py

from typing import Dict, List

from ..types import DeploymentMode
from .interfaces import IndexerBackend


class BackendDispatcher:
    """Deployment mode to backend table"""

    def __init__(self, backends: Dict[DeploymentMode, IndexerBackend]):
        self._backends = dict(backends)

    def get(self, mode: DeploymentMode) -> IndexerBackend:
        backend = self._backends.get(mode)
        if backend is None:
            available = ", ".join(m.value for m in self._backends) or "none"
            raise ValueError(f"No backend configured for mode {mode.value} (available: {available})")
        return backend

    def supports(self, mode: DeploymentMode) -> bool:
        return mode in self._backends

    @property
    def modes(self) -> List[DeploymentMode]:
        return list(self._backends)

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()
