"""
Backend interfaces for the deployer.

A backend turns a validated indexer configuration into running resources
and reports on them afterwards. Backends hold no per-instance state of
their own: everything they need to act on an instance is in the handle
they return from spawn().
"""
from abc import ABC, abstractmethod
from typing import List

from ..types import IndexerConfig, BackendHandle, RunState, DeploymentMode, DiscoveredResource


class IndexerBackend(ABC):
    """Base interface for deployment backends."""

    mode: DeploymentMode

    @abstractmethod
    async def spawn(self, instance_id: str, config: IndexerConfig) -> BackendHandle:
        """
        Create the resources for an instance and wait until they are ready.

        Args:
            instance_id: Identifier assigned by the registry
            config: Validated indexer configuration

        Returns:
            Handle used for every later call on this instance

        Raises:
            SpawnError: Resources could not be created or did not become
                ready in time. Anything partially created has been
                removed before the error is raised, or is left on the
                error as its leftover handle when removal failed.
        """
        pass

    @abstractmethod
    async def stop(self, handle: BackendHandle) -> None:
        """
        Tear down the resources behind a handle.

        Resources that are already gone are not an error.

        Raises:
            StopError: The backend could not be reached
        """
        pass

    @abstractmethod
    async def status(self, handle: BackendHandle) -> RunState:
        """
        Observe the current state of the resources behind a handle.

        Returns:
            RUNNING, CRASHED or PENDING

        Raises:
            StatusError: The backend could not be reached
        """
        pass

    @abstractmethod
    async def discover(self) -> List[DiscoveredResource]:
        """
        List resources this deployer created on the backend.

        Returns:
            Each resource with the instance id it was created for,
            whether or not the registry knows that id
        """
        pass

    async def close(self) -> None:
        """Release clients held by the backend"""
        return None
