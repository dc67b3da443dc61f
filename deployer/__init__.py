# deployer/__init__.py

import os
from pathlib import Path
from typing import Optional, Mapping

from .core.container import DeployerContainer
from .core.logging import DeployerLogger, log_with_context, INFO
from .core.settings import DeployerSettings, LoggingSettings
from .backends import BackendDispatcher, LocalProcessBackend, ClusterBackend
from .clients import ClusterApi, KubeRestClient
from .registry import InstanceRegistry
from .manager import IndexerManager
from .jobs import JobFacade
from .types import DeploymentMode

CONFIG_ENV_VAR = "DEPLOYER_CONFIG"


def create_manager(settings: Optional[DeployerSettings] = None,
                   env_vars: Optional[Mapping[str, str]] = None,
                   cluster_api: Optional[ClusterApi] = None) -> DeployerContainer:
    """
    Build a container holding the registry, the backends, the manager and
    the job facade.

    Settings come from the argument, else from the YAML file named by
    DEPLOYER_CONFIG, else from DEPLOYER_* environment variables. A
    cluster_api replaces the REST client built from cluster settings.
    """
    env = env_vars if env_vars is not None else os.environ

    if settings is None:
        config_path = env.get(CONFIG_ENV_VAR)
        if config_path:
            settings = DeployerSettings.from_file(Path(config_path), env)
        else:
            settings = DeployerSettings.from_env(env_vars)

    _configure_logging_early(settings.logging)

    logger = DeployerLogger.get_logger('core.init')

    container = DeployerContainer(settings)
    _register_services(container, cluster_api)

    log_with_context(logger, INFO, "Deployer created",
                     mode=settings.deployment_mode.value,
                     path=str(settings.data_path),
                     namespace=settings.cluster.namespace if container.has_service(ClusterBackend) else None)
    return container


def _configure_logging_early(logging_settings: LoggingSettings) -> None:
    DeployerLogger.configure(
        log_dir=logging_settings.log_path,
        log_level=logging_settings.log_level,
        console_enabled=logging_settings.console_enabled,
        file_enabled=logging_settings.file_enabled,
        structured_format=logging_settings.structured_format,
    )


def _register_services(container: DeployerContainer, cluster_api: Optional[ClusterApi]) -> None:
    settings = container.settings

    container.register_singleton(InstanceRegistry, InstanceRegistry)

    container.register_factory(
        LocalProcessBackend,
        lambda c: LocalProcessBackend(c.settings.data_path, c.settings.local),
    )

    if cluster_api is not None:
        container.register_instance(ClusterApi, cluster_api)
    elif settings.cluster_enabled:
        container.register_factory(ClusterApi, _create_kube_client)

    if container.has_service(ClusterApi):
        container.register_factory(
            ClusterBackend,
            lambda c: ClusterBackend(c.get(ClusterApi), c.settings.cluster),
        )

    container.register_factory(BackendDispatcher, _create_dispatcher)
    container.register_factory(
        IndexerManager,
        lambda c: IndexerManager(
            c.get(InstanceRegistry),
            c.get(BackendDispatcher),
            c.settings.deployment_mode,
        ),
    )
    container.register_singleton(JobFacade, JobFacade)


def _create_kube_client(container: DeployerContainer) -> KubeRestClient:
    cluster = container.settings.cluster
    return KubeRestClient(
        base_url=cluster.api_url,
        token=cluster.token,
        ca_cert=cluster.ca_cert,
        verify_tls=cluster.verify_tls,
        timeout=cluster.request_timeout,
    )


def _create_dispatcher(container: DeployerContainer) -> BackendDispatcher:
    backends = {DeploymentMode.LOCAL: container.get(LocalProcessBackend)}
    if container.has_service(ClusterBackend):
        backends[DeploymentMode.CLUSTER] = container.get(ClusterBackend)
    return BackendDispatcher(backends)


__all__ = [
    'create_manager',
    'DeployerContainer',
    'DeployerSettings',
    'IndexerManager',
    'JobFacade',
]
