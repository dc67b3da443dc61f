# deployer/backends/cluster.py

import asyncio
from typing import Optional, Dict, Any, List

from ..clients import ClusterApi
from ..core.logging import LoggingMixin
from ..core.settings import ClusterSettings
from ..errors import SpawnError, StopError, StatusError, ClusterApiError
from ..translate import NamingConvention, render_manifests
from ..translate.manifests import MANAGED_BY_LABEL, MANAGER_NAME, INSTANCE_LABEL
from ..types import IndexerConfig, ClusterHandle, RunState, DeploymentMode, DiscoveredResource
from .interfaces import IndexerBackend


def _condition(deployment: Dict[str, Any], condition_type: str) -> Optional[str]:
    for condition in deployment.get('status', {}).get('conditions') or []:
        if condition.get('type') == condition_type:
            return condition.get('status')
    return None


def deployment_state(deployment: Optional[Dict[str, Any]], service: Optional[Dict[str, Any]]) -> RunState:
    """Map observed Deployment and Service objects to a run state"""
    if deployment is None or service is None:
        return RunState.CRASHED

    desired = deployment.get('spec', {}).get('replicas', 1)
    ready = deployment.get('status', {}).get('readyReplicas') or 0
    if ready >= desired:
        return RunState.RUNNING

    if _condition(deployment, 'ReplicaFailure') == 'True':
        return RunState.CRASHED
    if _condition(deployment, 'Progressing') == 'False':
        return RunState.CRASHED

    return RunState.PENDING


class ClusterBackend(IndexerBackend, LoggingMixin):
    """
    Runs each indexer as a Deployment plus Service in one namespace.

    spawn() applies both resources and waits for the Deployment to report
    its desired replica count as ready. A failure at any point removes
    whatever was created before the error is raised. When that cleanup
    fails too, the handle rides on the SpawnError as its leftover.
    """

    mode = DeploymentMode.CLUSTER

    def __init__(self, api: ClusterApi, settings: ClusterSettings,
                 naming: Optional[NamingConvention] = None):
        self.api = api
        self.settings = settings
        self.naming = naming or NamingConvention(prefix=settings.name_prefix)

        self.log_debug("Cluster backend initialized",
                       namespace=settings.namespace, resource=settings.image)

    async def close(self) -> None:
        await self.api.close()

    # === Spawn ===

    async def spawn(self, instance_id: str, config: IndexerConfig) -> ClusterHandle:
        manifests = render_manifests(config, instance_id, self.settings, self.naming)
        handle = ClusterHandle(
            namespace=manifests.namespace,
            deployment_name=manifests.deployment_name,
            service_name=manifests.service_name,
        )
        context = self.log_instance_context(
            instance_id, namespace=handle.namespace,
            deployment=handle.deployment_name, service=handle.service_name)

        try:
            await self.api.create_deployment(handle.namespace, manifests.deployment)
        except ClusterApiError as e:
            self.log_error("Deployment creation failed", error=e.message,
                           status_code=e.status_code, **context)
            error = SpawnError.apply_failed(
                f"Could not create Deployment {handle.deployment_name}: {e.message}", instance_id)
            if e.outcome_unknown:
                await self._abandon(handle, instance_id, error, include_service=False)
            raise error

        try:
            await self.api.create_service(handle.namespace, manifests.service)
        except ClusterApiError as e:
            self.log_error("Service creation failed, removing Deployment", error=e.message,
                           status_code=e.status_code, **context)
            error = SpawnError.apply_failed(
                f"Could not create Service {handle.service_name}: {e.message}", instance_id)
            await self._abandon(handle, instance_id, error, include_service=e.outcome_unknown)
            raise error

        self.log_info("Cluster resources applied", **context)

        try:
            await self._wait_ready(handle, instance_id)
        except asyncio.CancelledError:
            await self._rollback(handle, instance_id)
            raise

        self.log_info("Deployment ready", **context)
        return handle

    async def _wait_ready(self, handle: ClusterHandle, instance_id: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.readiness_timeout

        while True:
            try:
                deployment = await self.api.get_deployment(handle.namespace, handle.deployment_name)
                service = await self.api.get_service(handle.namespace, handle.service_name)
            except ClusterApiError as e:
                self.log_warning("Readiness poll failed", indexer_id=instance_id,
                                 deployment=handle.deployment_name, error=e.message)
            else:
                if deployment is None or service is None:
                    error = SpawnError.apply_failed(
                        f"Resources for {handle.deployment_name} disappeared while waiting for readiness",
                        instance_id)
                    await self._abandon(handle, instance_id, error)
                    raise error

                if deployment_state(deployment, service) == RunState.RUNNING:
                    return

                self.log_debug("Waiting for replicas", indexer_id=instance_id,
                               deployment=handle.deployment_name,
                               ready_replicas=deployment.get('status', {}).get('readyReplicas') or 0,
                               desired_replicas=deployment.get('spec', {}).get('replicas', 1))

            if loop.time() >= deadline:
                self.log_error("Deployment readiness timed out", indexer_id=instance_id,
                               deployment=handle.deployment_name,
                               elapsed=self.settings.readiness_timeout)
                error = SpawnError.timeout(
                    f"Deployment {handle.deployment_name} not ready within "
                    f"{self.settings.readiness_timeout}s", instance_id)
                await self._abandon(handle, instance_id, error)
                raise error

            await asyncio.sleep(self.settings.poll_interval)

    async def _abandon(self, handle: ClusterHandle, instance_id: str, error: SpawnError,
                       include_service: bool = True) -> None:
        """Roll back a failed spawn. Resources that survive the rollback are attached to the error."""
        rollback_error = await self._rollback(handle, instance_id, include_service)
        if rollback_error is not None:
            error.detail = f"{error.detail} (rollback failed: {rollback_error})"
            error.with_leftover(handle)

    async def _rollback(self, handle: ClusterHandle, instance_id: str,
                        include_service: bool = True) -> Optional[str]:
        """Delete what spawn created. Returns an error description if the cleanup failed."""
        try:
            if include_service:
                await self.api.delete_service(handle.namespace, handle.service_name)
            await self.api.delete_deployment(handle.namespace, handle.deployment_name)
        except ClusterApiError as e:
            self.log_error("Rollback failed", indexer_id=instance_id,
                           deployment=handle.deployment_name, error=e.message)
            return e.message

        self.log_info("Rolled back cluster resources", indexer_id=instance_id,
                      deployment=handle.deployment_name)
        return None

    # === Stop ===

    async def stop(self, handle: ClusterHandle) -> None:
        try:
            service_deleted = await self.api.delete_service(handle.namespace, handle.service_name)
            deployment_deleted = await self.api.delete_deployment(handle.namespace, handle.deployment_name)
        except ClusterApiError as e:
            self.log_error("Cluster stop failed", namespace=handle.namespace,
                           deployment=handle.deployment_name, error=e.message)
            raise StopError.unreachable(f"Could not delete {handle.deployment_name}: {e.message}")

        self.log_info("Cluster resources deleted", namespace=handle.namespace,
                      deployment=handle.deployment_name,
                      count=int(service_deleted) + int(deployment_deleted))

    # === Status ===

    async def status(self, handle: ClusterHandle) -> RunState:
        try:
            deployment = await self.api.get_deployment(handle.namespace, handle.deployment_name)
            service = await self.api.get_service(handle.namespace, handle.service_name)
        except ClusterApiError as e:
            raise StatusError.unreachable(
                f"Could not read {handle.deployment_name}: {e.message}")

        return deployment_state(deployment, service)

    # === Discovery ===

    async def discover(self) -> List[DiscoveredResource]:
        selector = f"{MANAGED_BY_LABEL}={MANAGER_NAME}"
        namespace = self.settings.namespace
        try:
            deployments = await self.api.list_deployments(namespace, selector)
            services = await self.api.list_services(namespace, selector)
        except ClusterApiError as e:
            raise StatusError.unreachable(f"Could not list cluster resources: {e.message}")

        names: Dict[str, Dict[str, str]] = {}
        for kind, items in (("deployment", deployments), ("service", services)):
            for item in items:
                metadata = item.get('metadata', {})
                instance_id = metadata.get('labels', {}).get(INSTANCE_LABEL)
                if instance_id:
                    names.setdefault(instance_id, {})[kind] = metadata['name']

        resources = []
        for instance_id, found in names.items():
            deployment_name = found.get("deployment") or found["service"]
            resources.append(DiscoveredResource(instance_id, ClusterHandle(
                namespace=namespace,
                deployment_name=deployment_name,
                service_name=found.get("service") or deployment_name,
            )))

        self.log_debug("Cluster discovery complete", namespace=namespace, count=len(resources))
        return resources
