# deployer/errors.py

"""
Error taxonomy shared by the translator, the backends, the registry and the
job facade. Every error carries a taxonomy kind, a reason within that kind
and a human-readable detail string.
"""

from typing import Optional

from .types import ErrorBody, BackendHandle


class DeployerError(Exception):
    kind = "InternalError"

    def __init__(self, reason: str, detail: str, indexer_id: Optional[str] = None):
        super().__init__(f"{self.kind}.{reason}: {detail}")
        self.reason = reason
        self.detail = detail
        self.indexer_id = indexer_id

    def with_id(self, indexer_id: str) -> 'DeployerError':
        if self.indexer_id is None:
            self.indexer_id = indexer_id
        return self

    def to_body(self) -> ErrorBody:
        return ErrorBody(
            kind=self.kind,
            reason=self.reason,
            detail=self.detail,
            id=self.indexer_id,
        )


class ConfigError(DeployerError):
    kind = "ConfigError"
    MALFORMED = "Malformed"
    INVALID = "Invalid"

    @classmethod
    def malformed(cls, detail: str) -> 'ConfigError':
        return cls(cls.MALFORMED, detail)

    @classmethod
    def invalid(cls, detail: str) -> 'ConfigError':
        return cls(cls.INVALID, detail)


class SpawnError(DeployerError):
    kind = "SpawnError"
    TIMEOUT = "Timeout"
    APPLY_FAILED = "ApplyFailed"
    PROCESS_LAUNCH_FAILED = "ProcessLaunchFailed"

    # Resources the failed spawn could not roll back
    leftover: Optional[BackendHandle] = None

    def with_leftover(self, handle: BackendHandle) -> 'SpawnError':
        self.leftover = handle
        return self

    @classmethod
    def timeout(cls, detail: str, indexer_id: Optional[str] = None) -> 'SpawnError':
        return cls(cls.TIMEOUT, detail, indexer_id)

    @classmethod
    def apply_failed(cls, detail: str, indexer_id: Optional[str] = None) -> 'SpawnError':
        return cls(cls.APPLY_FAILED, detail, indexer_id)

    @classmethod
    def launch_failed(cls, detail: str, indexer_id: Optional[str] = None) -> 'SpawnError':
        return cls(cls.PROCESS_LAUNCH_FAILED, detail, indexer_id)


class StopError(DeployerError):
    kind = "StopError"
    BACKEND_UNREACHABLE = "BackendUnreachable"

    @classmethod
    def unreachable(cls, detail: str, indexer_id: Optional[str] = None) -> 'StopError':
        return cls(cls.BACKEND_UNREACHABLE, detail, indexer_id)


class StatusError(DeployerError):
    kind = "StatusError"
    NOT_FOUND = "NotFound"
    BACKEND_UNREACHABLE = "BackendUnreachable"

    @classmethod
    def not_found(cls, indexer_id: str) -> 'StatusError':
        return cls(cls.NOT_FOUND, f"Indexer {indexer_id} not found", indexer_id)

    @classmethod
    def unreachable(cls, detail: str, indexer_id: Optional[str] = None) -> 'StatusError':
        return cls(cls.BACKEND_UNREACHABLE, detail, indexer_id)


class InvalidTransition(DeployerError):
    """Raised when the registry is asked for a transition the state machine forbids"""
    kind = "InternalError"

    def __init__(self, indexer_id: str, current: str, target: str):
        super().__init__(
            "InvalidTransition",
            f"Indexer {indexer_id} cannot move from {current} to {target}",
            indexer_id,
        )


# === Cluster client errors ===

class ClusterApiError(Exception):
    """Non-success response from the cluster API"""

    def __init__(self, status_code: int, message: str, resource: Optional[str] = None):
        super().__init__(f"Cluster API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.resource = resource

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def outcome_unknown(self) -> bool:
        """The request may have been applied even though it failed"""
        return self.status_code == 0 or self.status_code >= 500


class ClusterUnreachable(ClusterApiError):
    """The cluster API could not be reached at all"""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(0, message, resource)
