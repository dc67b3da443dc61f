# deployer/types/jobs.py

from typing import Optional, List

import msgspec
from msgspec import Struct

from .configs import IndexerConfig
from .instance import DeploymentMode, RunState


class SpawnRequest(Struct):
    config: msgspec.Raw
    mode: Optional[DeploymentMode] = None


class InstanceRequest(Struct):
    id: str


class ErrorBody(Struct):
    kind: str
    reason: str
    detail: str
    id: Optional[str] = None


class ErrorResponse(Struct):
    error: ErrorBody


class SpawnResponse(Struct):
    id: str
    state: RunState


class StatusResponse(Struct):
    id: str
    name: str
    state: RunState
    mode: DeploymentMode
    created_at: float
    updated_at: float
    last_error: Optional[str] = None


class StopResponse(Struct):
    ok: bool
    id: str


class ListResponse(Struct):
    indexers: List[StatusResponse]


class ConfigResponse(Struct):
    id: str
    config: IndexerConfig
