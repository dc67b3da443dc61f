# api/routers/jobs.py

from fastapi import APIRouter, Depends, Request, Response
from typing import Dict, Tuple
import logging

from deployer.core.logging import log_with_context
from deployer.jobs import JobFacade, decode_error
from ..dependencies import get_job_facade, get_logger

router = APIRouter()

# (kind, reason) -> HTTP status. Kind-only entries use reason None.
ERROR_STATUS: Dict[Tuple[str, object], int] = {
    ("ConfigError", None): 400,
    ("StatusError", "NotFound"): 404,
    ("StatusError", "BackendUnreachable"): 503,
    ("StopError", None): 503,
    ("SpawnError", "Timeout"): 504,
    ("SpawnError", None): 502,
    ("InternalError", None): 500,
}


def http_status(body: bytes) -> int:
    error = decode_error(body)
    if error is None:
        return 200
    return ERROR_STATUS.get(
        (error.kind, error.reason),
        ERROR_STATUS.get((error.kind, None), 500),
    )


def job_response(body: bytes, logger, operation: str) -> Response:
    status_code = http_status(body)
    if status_code != 200:
        log_with_context(logger, logging.DEBUG, "Job returned error payload",
                         operation=operation, status_code=status_code)
    return Response(content=body, media_type="application/json", status_code=status_code)


@router.post("/spawn")
async def spawn_indexer(
    request: Request,
    facade: JobFacade = Depends(get_job_facade),
    logger=Depends(get_logger),
):
    """Spawn an indexer from {"config": {...}, "mode": "local"|"cluster"}"""
    return job_response(await facade.spawn(await request.body()), logger, "spawn")


@router.post("/status")
async def indexer_status(
    request: Request,
    facade: JobFacade = Depends(get_job_facade),
    logger=Depends(get_logger),
):
    """Status of the indexer named by {"id": ...}"""
    return job_response(await facade.status(await request.body()), logger, "status")


@router.post("/stop")
async def stop_indexer(
    request: Request,
    facade: JobFacade = Depends(get_job_facade),
    logger=Depends(get_logger),
):
    """Stop the indexer named by {"id": ...}"""
    return job_response(await facade.stop(await request.body()), logger, "stop")


@router.post("/config")
async def indexer_config(
    request: Request,
    facade: JobFacade = Depends(get_job_facade),
    logger=Depends(get_logger),
):
    """Configuration the indexer named by {"id": ...} was spawned with"""
    return job_response(await facade.config(await request.body()), logger, "config")


@router.get("/list")
async def list_indexers(
    facade: JobFacade = Depends(get_job_facade),
    logger=Depends(get_logger),
):
    return job_response(await facade.list(), logger, "list")
