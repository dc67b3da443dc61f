# deployer/types/instance.py

from enum import Enum
from typing import Optional, Union, Dict, FrozenSet

from msgspec import Struct

from .primitives import IndexerId
from .configs import IndexerConfig


class DeploymentMode(str, Enum):
    LOCAL = "local"
    CLUSTER = "cluster"


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"
    FAILED = "failed"

    @property
    def is_live(self) -> bool:
        """Backend resources may exist for an instance in this state"""
        return self in (RunState.RUNNING, RunState.CRASHED, RunState.STOPPING)

    def can_transition(self, target: 'RunState') -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: Dict[RunState, FrozenSet[RunState]] = {
    RunState.PENDING: frozenset({RunState.RUNNING, RunState.FAILED}),
    RunState.RUNNING: frozenset({RunState.STOPPING, RunState.CRASHED}),
    RunState.CRASHED: frozenset({RunState.RUNNING, RunState.STOPPING}),
    RunState.STOPPING: frozenset({RunState.STOPPING, RunState.STOPPED}),
    RunState.STOPPED: frozenset(),
    RunState.FAILED: frozenset(),
}


class LocalHandle(Struct, frozen=True, tag="local", tag_field="kind"):
    pid: int
    workdir: str
    port: int
    log_path: str


class ClusterHandle(Struct, frozen=True, tag="cluster", tag_field="kind"):
    namespace: str
    deployment_name: str
    service_name: str


BackendHandle = Union[LocalHandle, ClusterHandle]


class IndexerInstance(Struct):
    id: IndexerId
    config: IndexerConfig
    mode: DeploymentMode
    state: RunState
    created_at: float
    updated_at: float
    handle: Optional[BackendHandle] = None
    last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.config.name


class DiscoveredResource(Struct, frozen=True):
    """Backend resources found by discovery, keyed by the instance id they were labelled with"""
    instance_id: str
    handle: BackendHandle
