# deployer/manager.py

"""
Lifecycle orchestration over the registry and the backends.

The manager is the only component that moves an instance through its run
states in response to backend results. Drivers raise, the manager turns
the outcome into a registry transition and re-raises, and the job facade
turns whatever is left into a response payload.
"""

import asyncio
from typing import Optional, List, Dict

from msgspec import Struct

from .backends import BackendDispatcher, IndexerBackend
from .core.logging import LoggingMixin
from .errors import DeployerError, ConfigError, SpawnError, StatusError, StopError
from .registry import InstanceRegistry
from .types import (
    IndexerConfig,
    IndexerInstance,
    DeploymentMode,
    RunState,
    DiscoveredResource,
)


class ReconcileReport(Struct):
    checked: int = 0
    changed: List[str] = []
    errors: Dict[str, str] = {}
    orphans: List[DiscoveredResource] = []
    removed_orphans: int = 0


class IndexerManager(LoggingMixin):

    def __init__(self, registry: InstanceRegistry, dispatcher: BackendDispatcher,
                 default_mode: DeploymentMode = DeploymentMode.LOCAL):
        self.registry = registry
        self.dispatcher = dispatcher
        self.default_mode = default_mode

    # === Spawn ===

    async def spawn(self, config: IndexerConfig, mode: Optional[DeploymentMode] = None) -> IndexerInstance:
        """
        Start a new instance and wait until its backend reports it ready.

        Args:
            config: Validated indexer configuration
            mode: Deployment mode, defaults to the configured mode

        Returns:
            The committed instance in RUNNING state

        Raises:
            ConfigError: The mode has no backend configured
            SpawnError: The backend failed; the record is kept as FAILED,
                with the leftover handle when the backend could not clean up
        """
        mode = mode or self.default_mode
        if not self.dispatcher.supports(mode):
            raise ConfigError.invalid(f"Deployment mode {mode.value} is not configured")
        backend = self.dispatcher.get(mode)

        indexer_id = self.registry.register(config, mode)
        self.log_info("Spawning indexer", **self.log_instance_context(
            indexer_id, indexer_name=config.name, mode=mode.value))

        async with self.registry.exclusive(indexer_id):
            try:
                handle = await backend.spawn(indexer_id, config)
            except DeployerError as e:
                e.with_id(indexer_id)
                leftover = e.leftover if isinstance(e, SpawnError) else None
                self.registry.fail(indexer_id, e.detail, handle=leftover)
                self.log_error("Spawn failed", indexer_id=indexer_id,
                               kind=e.kind, reason=e.reason, error=e.detail)
                raise
            except asyncio.CancelledError:
                self.registry.fail(indexer_id, "Spawn cancelled")
                raise
            except Exception as e:
                self.registry.fail(indexer_id, f"{type(e).__name__}: {e}")
                self.log_error("Spawn failed unexpectedly", exc_info=True,
                               indexer_id=indexer_id, exception_type=type(e).__name__)
                raise

            instance = self.registry.commit(indexer_id, handle)

        self.log_info("Indexer running", indexer_id=indexer_id, mode=mode.value)
        return instance

    # === Status ===

    async def status(self, indexer_id: str) -> IndexerInstance:
        """
        Return the instance record, refreshed from the backend when it has
        live resources to observe.

        Raises:
            StatusError: NotFound for unknown or released ids,
                BackendUnreachable when the backend cannot be queried
        """
        instance = self.registry.lookup(indexer_id)
        if not self._observable(instance):
            return instance

        async with self.registry.exclusive(indexer_id):
            instance = self.registry.find(indexer_id)
            if instance is None:
                raise StatusError.not_found(indexer_id)
            if not self._observable(instance):
                return instance
            await self._refresh(instance)

        return self.registry.lookup(indexer_id)

    @staticmethod
    def _observable(instance: IndexerInstance) -> bool:
        return instance.handle is not None and instance.state in (RunState.RUNNING, RunState.CRASHED)

    async def _refresh(self, instance: IndexerInstance) -> bool:
        backend = self.dispatcher.get(instance.mode)
        try:
            observed = await backend.status(instance.handle)
        except StatusError as e:
            e.with_id(instance.id)
            self.registry.record_error(instance.id, e.detail)
            self.log_warning("Status check failed", indexer_id=instance.id, error=e.detail)
            raise

        return self.registry.observe(instance.id, observed)

    # === Stop ===

    async def stop(self, indexer_id: str) -> None:
        """
        Stop an instance and release its id. Stopping an id that was
        already released succeeds without doing anything.

        Raises:
            StatusError: NotFound for ids that were never issued
            StopError: The backend could not be reached; the record stays
                STOPPING, or FAILED with its leftover handle, so the stop
                can be retried
        """
        if self.registry.was_released(indexer_id):
            self.log_debug("Stop on released indexer", indexer_id=indexer_id)
            return
        if indexer_id not in self.registry:
            raise StatusError.not_found(indexer_id)

        async with self.registry.exclusive(indexer_id):
            if self.registry.was_released(indexer_id):
                self.log_debug("Stop on released indexer", indexer_id=indexer_id)
                return

            instance = self.registry.lookup(indexer_id)
            backend = self.dispatcher.get(instance.mode)

            if instance.state == RunState.FAILED:
                if instance.handle is not None:
                    self.log_info("Removing resources left by failed spawn",
                                  indexer_id=indexer_id, mode=instance.mode.value)
                    await self._stop_backend(backend, instance)
                self.registry.remove(indexer_id)
                self.log_info("Removed failed indexer", indexer_id=indexer_id)
                return

            self.registry.mark_stopping(indexer_id)
            self.log_info("Stopping indexer", indexer_id=indexer_id, mode=instance.mode.value)
            await self._stop_backend(backend, instance)
            self.registry.remove(indexer_id)

        self.log_info("Indexer stopped", indexer_id=indexer_id)

    async def _stop_backend(self, backend: IndexerBackend, instance: IndexerInstance) -> None:
        try:
            await backend.stop(instance.handle)
        except StopError as e:
            e.with_id(instance.id)
            self.registry.record_error(instance.id, e.detail)
            self.log_error("Stop failed", indexer_id=instance.id, reason=e.reason, error=e.detail)
            raise

    # === Config ===

    def config(self, indexer_id: str) -> IndexerConfig:
        """
        Return the configuration an instance was spawned with.

        Raises:
            StatusError: NotFound for unknown or released ids
        """
        return self.registry.lookup(indexer_id).config

    # === Housekeeping ===

    async def reconcile(self, prune_orphans: bool = False) -> ReconcileReport:
        """
        Bring records in line with what the backends report.

        Running and crashed instances are re-observed, instances left in
        STOPPING are stopped again, and resources left behind by failed
        spawns are removed. With prune_orphans, backend resources carrying
        this deployer's markers but an instance id the registry does not
        hold are torn down.
        """
        report = ReconcileReport()

        for instance in self.registry.list():
            if self._holds_leftover(instance):
                report.checked += 1
                await self._clear_leftover(instance, report)
                continue
            if instance.state not in (RunState.RUNNING, RunState.CRASHED, RunState.STOPPING):
                continue
            report.checked += 1

            if instance.state == RunState.STOPPING:
                try:
                    await self.stop(instance.id)
                    report.changed.append(instance.id)
                except StopError as e:
                    report.errors[instance.id] = e.detail
                continue

            try:
                async with self.registry.exclusive(instance.id):
                    current = self.registry.find(instance.id)
                    if current is not None and self._observable(current) and await self._refresh(current):
                        report.changed.append(instance.id)
            except StatusError as e:
                report.errors[instance.id] = e.detail

        for mode in self.dispatcher.modes:
            backend = self.dispatcher.get(mode)
            try:
                discovered = await backend.discover()
            except StatusError as e:
                report.errors[mode.value] = e.detail
                continue

            for resource in discovered:
                if resource.instance_id in self.registry:
                    continue
                report.orphans.append(resource)
                if not prune_orphans:
                    continue
                try:
                    await backend.stop(resource.handle)
                    report.removed_orphans += 1
                except StopError as e:
                    report.errors[resource.instance_id] = e.detail

        self.log_info(
            f"Reconcile complete: {len(report.changed)} changed, {len(report.orphans)} orphans, "
            f"{len(report.errors)} errors",
            operation="reconcile", count=report.checked)
        return report

    @staticmethod
    def _holds_leftover(instance: IndexerInstance) -> bool:
        return instance.state == RunState.FAILED and instance.handle is not None

    async def _clear_leftover(self, instance: IndexerInstance, report: ReconcileReport) -> None:
        async with self.registry.exclusive(instance.id):
            current = self.registry.find(instance.id)
            if current is None or not self._holds_leftover(current):
                return
            try:
                await self._stop_backend(self.dispatcher.get(current.mode), current)
            except StopError as e:
                report.errors[current.id] = e.detail
                return
            self.registry.clear_leftover(current.id)
            report.changed.append(current.id)

    def prune(self) -> List[str]:
        return self.registry.prune()

    def list(self) -> List[IndexerInstance]:
        return self.registry.list()

    async def shutdown(self) -> None:
        """Stop every instance that still has backend resources, then close the backends"""
        live = [
            instance.id for instance in self.registry.list()
            if instance.state.is_live or self._holds_leftover(instance)
        ]
        if live:
            self.log_info("Stopping live indexers", count=len(live))

        results = await asyncio.gather(*(self.stop(i) for i in live), return_exceptions=True)
        for indexer_id, result in zip(live, results):
            if isinstance(result, BaseException):
                self.log_error("Indexer did not stop during shutdown",
                               indexer_id=indexer_id, error=str(result))

        await self.dispatcher.close()
