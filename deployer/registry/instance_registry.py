# deployer/registry/instance_registry.py

import asyncio
import time
import uuid
from typing import Dict, Set, List, Callable, Optional

import msgspec

from ..core.logging import LoggingMixin
from ..errors import StatusError, InvalidTransition
from ..types import (
    IndexerConfig,
    IndexerInstance,
    IndexerId,
    DeploymentMode,
    RunState,
    BackendHandle,
)

ID_PREFIX = "idx-"


class InstanceRegistry(LoggingMixin):
    """
    Owns every IndexerInstance record.

    All state changes go through the methods below, which enforce the run
    state machine. Callers receive copies of the records. Ids are never
    reused: removed and pruned ids are remembered as released.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._instances: Dict[str, IndexerInstance] = {}
        self._released: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clock = clock

    def _new_id(self) -> IndexerId:
        while True:
            candidate = f"{ID_PREFIX}{uuid.uuid4().hex}"
            if candidate not in self._instances and candidate not in self._released:
                return IndexerId(candidate)

    def exclusive(self, indexer_id: str) -> asyncio.Lock:
        """Per-id lock serialising lifecycle operations on one instance"""
        if indexer_id in self._released:
            return asyncio.Lock()
        lock = self._locks.get(indexer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[indexer_id] = lock
        return lock

    # === Record lifecycle ===

    def register(self, config: IndexerConfig, mode: DeploymentMode) -> IndexerId:
        indexer_id = self._new_id()
        now = self._clock()
        self._instances[indexer_id] = IndexerInstance(
            id=indexer_id,
            config=config,
            mode=mode,
            state=RunState.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.log_debug("Instance registered", indexer_id=indexer_id,
                       indexer_name=config.name, mode=mode.value)
        return indexer_id

    def commit(self, indexer_id: str, handle: BackendHandle) -> IndexerInstance:
        return self._transition(indexer_id, RunState.RUNNING, handle=handle, last_error=None)

    def fail(self, indexer_id: str, error: str,
             handle: Optional[BackendHandle] = None) -> IndexerInstance:
        """Mark a spawn as failed. A handle is kept only for resources the spawn left behind."""
        return self._transition(indexer_id, RunState.FAILED, last_error=error, handle=handle)

    def clear_leftover(self, indexer_id: str) -> IndexerInstance:
        instance = self._get(indexer_id)
        if instance.state != RunState.FAILED:
            raise InvalidTransition(indexer_id, instance.state.value, RunState.FAILED.value)
        instance.handle = None
        instance.updated_at = self._clock()
        return self._copy(instance)

    def mark_stopping(self, indexer_id: str) -> IndexerInstance:
        return self._transition(indexer_id, RunState.STOPPING)

    def record_error(self, indexer_id: str, error: str) -> IndexerInstance:
        instance = self._get(indexer_id)
        instance.last_error = error
        instance.updated_at = self._clock()
        return self._copy(instance)

    def observe(self, indexer_id: str, state: RunState) -> bool:
        """
        Apply a state observed on the backend.

        Returns:
            True if the record changed. Observations that would be an
            illegal transition, such as PENDING for a running instance,
            are ignored.
        """
        instance = self._get(indexer_id)
        if instance.state == state or not instance.state.can_transition(state):
            return False
        if state in (RunState.STOPPING, RunState.STOPPED, RunState.FAILED):
            return False

        previous = instance.state
        instance.state = state
        instance.updated_at = self._clock()
        self.log_info("Observed state change", indexer_id=indexer_id,
                      state=f"{previous.value}->{state.value}")
        return True

    def remove(self, indexer_id: str) -> None:
        """Drop a stopped or failed record and release its id"""
        instance = self._get(indexer_id)
        if instance.state == RunState.STOPPING:
            self._transition(indexer_id, RunState.STOPPED)
        elif instance.state != RunState.FAILED:
            raise InvalidTransition(indexer_id, instance.state.value, RunState.STOPPED.value)

        del self._instances[indexer_id]
        self._released.add(indexer_id)
        self._locks.pop(indexer_id, None)
        self.log_debug("Instance removed", indexer_id=indexer_id)

    def prune(self) -> List[str]:
        """Remove failed records. Records still holding leftover resources are kept."""
        pruned = [
            i for i, instance in self._instances.items()
            if instance.state == RunState.FAILED and instance.handle is None
        ]
        for indexer_id in pruned:
            self.remove(indexer_id)
        if pruned:
            self.log_info("Pruned failed instances", count=len(pruned))
        return pruned

    # === Queries ===

    def lookup(self, indexer_id: str) -> IndexerInstance:
        return self._copy(self._get(indexer_id))

    def find(self, indexer_id: str) -> Optional[IndexerInstance]:
        instance = self._instances.get(indexer_id)
        return self._copy(instance) if instance is not None else None

    def was_released(self, indexer_id: str) -> bool:
        return indexer_id in self._released

    def list(self) -> List[IndexerInstance]:
        return [
            self._copy(instance)
            for instance in sorted(self._instances.values(), key=lambda i: i.created_at)
        ]

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, indexer_id: object) -> bool:
        return indexer_id in self._instances

    # === Internals ===

    def _get(self, indexer_id: str) -> IndexerInstance:
        instance = self._instances.get(indexer_id)
        if instance is None:
            raise StatusError.not_found(indexer_id)
        return instance

    def _transition(self, indexer_id: str, target: RunState, **changes) -> IndexerInstance:
        instance = self._get(indexer_id)
        if not instance.state.can_transition(target):
            raise InvalidTransition(indexer_id, instance.state.value, target.value)

        previous = instance.state
        instance.state = target
        for field, value in changes.items():
            setattr(instance, field, value)
        instance.updated_at = self._clock()

        self.log_debug("State transition", indexer_id=indexer_id,
                       state=f"{previous.value}->{target.value}")
        return self._copy(instance)

    @staticmethod
    def _copy(instance: IndexerInstance) -> IndexerInstance:
        return msgspec.structs.replace(instance)
