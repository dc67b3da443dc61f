# deployer/jobs/facade.py

"""
Job-style request/response boundary.

Every operation takes the raw request body and returns the raw response
body. Failures never escape as exceptions: they are encoded as
{"error": {"kind", "reason", "detail", "id"}} payloads.
"""

from typing import Awaitable, Callable, Optional

import msgspec

from ..core.logging import LoggingMixin
from ..errors import DeployerError, ConfigError
from ..manager import IndexerManager
from ..translate import translate_spawn_request
from ..types import (
    InstanceRequest,
    ErrorBody,
    ErrorResponse,
    SpawnResponse,
    StatusResponse,
    StopResponse,
    ListResponse,
    ConfigResponse,
    IndexerInstance,
)

Handler = Callable[[bytes], Awaitable[bytes]]

_instance_decoder = msgspec.json.Decoder(InstanceRequest)


def status_response(instance: IndexerInstance) -> StatusResponse:
    return StatusResponse(
        id=instance.id,
        name=instance.name,
        state=instance.state,
        mode=instance.mode,
        created_at=instance.created_at,
        updated_at=instance.updated_at,
        last_error=instance.last_error,
    )


def decode_instance_request(raw: bytes) -> InstanceRequest:
    try:
        request = _instance_decoder.decode(raw)
    except msgspec.DecodeError as e:
        raise ConfigError.malformed(str(e))
    if not request.id:
        raise ConfigError.malformed("Request id must not be empty")
    return request


class JobFacade(LoggingMixin):

    def __init__(self, manager: IndexerManager):
        self.manager = manager
        self._encoder = msgspec.json.Encoder()

    async def spawn(self, raw: bytes) -> bytes:
        return await self._run("spawn", self._spawn, raw)

    async def status(self, raw: bytes) -> bytes:
        return await self._run("status", self._status, raw)

    async def stop(self, raw: bytes) -> bytes:
        return await self._run("stop", self._stop, raw)

    async def list(self, raw: bytes = b"") -> bytes:
        return await self._run("list", self._list, raw)

    async def config(self, raw: bytes) -> bytes:
        return await self._run("config", self._config, raw)

    # === Handlers ===

    async def _spawn(self, raw: bytes) -> bytes:
        config, mode = translate_spawn_request(raw)
        instance = await self.manager.spawn(config, mode)
        return self._encoder.encode(SpawnResponse(id=instance.id, state=instance.state))

    async def _status(self, raw: bytes) -> bytes:
        request = decode_instance_request(raw)
        instance = await self.manager.status(request.id)
        return self._encoder.encode(status_response(instance))

    async def _stop(self, raw: bytes) -> bytes:
        request = decode_instance_request(raw)
        await self.manager.stop(request.id)
        return self._encoder.encode(StopResponse(ok=True, id=request.id))

    async def _list(self, raw: bytes) -> bytes:
        instances = self.manager.list()
        return self._encoder.encode(ListResponse(indexers=[status_response(i) for i in instances]))

    async def _config(self, raw: bytes) -> bytes:
        request = decode_instance_request(raw)
        config = self.manager.config(request.id)
        return self._encoder.encode(ConfigResponse(id=request.id, config=config))

    # === Error envelope ===

    async def _run(self, operation: str, handler: Handler, raw: bytes) -> bytes:
        try:
            return await handler(raw)
        except DeployerError as e:
            self.log_warning("Job failed", operation=operation, kind=e.kind,
                             reason=e.reason, indexer_id=e.indexer_id, error=e.detail)
            return self.encode_error(e.to_body())
        except Exception as e:
            self.log_error("Job failed unexpectedly", exc_info=True, operation=operation,
                           exception_type=type(e).__name__, error=str(e))
            return self.encode_error(ErrorBody(
                kind="InternalError",
                reason=type(e).__name__,
                detail=str(e) or type(e).__name__,
            ))

    def encode_error(self, body: ErrorBody) -> bytes:
        return self._encoder.encode(ErrorResponse(error=body))


def decode_error(raw: bytes) -> Optional[ErrorBody]:
    """Return the error body of a response, or None for a success response"""
    try:
        return msgspec.json.decode(raw, type=ErrorResponse).error
    except msgspec.ValidationError:
        return None
