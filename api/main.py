# api/main.py

from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Optional
import logging

from deployer import create_manager, DeployerContainer, IndexerManager, JobFacade
from deployer.core.logging import DeployerLogger, log_with_context

from .routers import jobs
from .dependencies import set_dependencies, is_initialized


def create_app(container: Optional[DeployerContainer] = None) -> FastAPI:
    """
    Build the HTTP job transport.

    Without a container the deployer is created from DEPLOYER_* settings
    when the app starts. Live indexers are stopped on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        deployer = container or create_manager()
        logger = DeployerLogger.get_logger('api.main')

        set_dependencies(deployer.get(JobFacade))
        app.state.container = deployer

        log_with_context(logger, logging.INFO, "API startup completed",
                         mode=deployer.settings.deployment_mode.value)

        yield

        logger.info("API shutting down")
        await deployer.get(IndexerManager).shutdown()
        set_dependencies(None)

    app = FastAPI(
        title="Indexer Deployer API",
        description="Job endpoints for spawning, inspecting and stopping indexers",
        version="1.0.0",
        lifespan=lifespan
    )

    app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

    @app.get("/health")
    async def health_check():
        initialized = is_initialized()
        return {
            "status": "healthy" if initialized else "starting",
            "message": "Indexer deployer API is running",
            "deployer_initialized": initialized,
        }

    return app


app = create_app()
