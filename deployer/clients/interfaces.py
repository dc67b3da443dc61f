"""
Cluster API interface.

The cluster driver talks to Kubernetes only through this interface, so
tests can run it against an in-memory implementation.
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List


class ClusterApi(ABC):
    """Minimal Deployment and Service operations keyed by namespace and name."""

    @abstractmethod
    async def create_deployment(self, namespace: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a Deployment.

        Args:
            namespace: Target namespace
            manifest: Full Deployment document

        Returns:
            The created object as returned by the API

        Raises:
            ClusterApiError: The API rejected the request
            ClusterUnreachable: The API could not be reached
        """
        pass

    @abstractmethod
    async def get_deployment(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """
        Read a Deployment including its status.

        Returns:
            The object, or None if it does not exist
        """
        pass

    @abstractmethod
    async def delete_deployment(self, namespace: str, name: str) -> bool:
        """
        Delete a Deployment.

        Returns:
            True if it was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_deployments(self, namespace: str, label_selector: Optional[str] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_service(self, namespace: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def get_service(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def delete_service(self, namespace: str, name: str) -> bool:
        pass

    @abstractmethod
    async def list_services(self, namespace: str, label_selector: Optional[str] = None) -> List[Dict[str, Any]]:
        pass

    async def close(self) -> None:
        return None
