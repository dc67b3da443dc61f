# api/dependencies.py

from fastapi import HTTPException
from typing import Optional

from deployer.core.logging import DeployerLogger
from deployer.jobs import JobFacade

# Set during app startup
_job_facade: Optional[JobFacade] = None
_logger = None


def set_dependencies(job_facade: Optional[JobFacade]):
    """Called during app startup and shutdown to set global dependencies"""
    global _job_facade, _logger
    _job_facade = job_facade
    _logger = DeployerLogger.get_logger('api.dependencies')


def get_job_facade() -> JobFacade:
    """Dependency to get the job facade"""
    if _job_facade is None:
        raise HTTPException(status_code=503, detail="Deployer not initialized")
    return _job_facade


def get_logger():
    """Dependency to get logger"""
    if _logger is None:
        return DeployerLogger.get_logger('api.default')
    return _logger


def is_initialized() -> bool:
    return _job_facade is not None
