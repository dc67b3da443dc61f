# deployer/core/settings.py

import os
from pathlib import Path
from typing import Dict, List, Optional, Mapping, Any

import msgspec
import yaml
from msgspec import Struct

from ..types import DeploymentMode
from .logging import DeployerLogger, log_with_context, INFO, DEBUG

ENV_PREFIX = "DEPLOYER_"


class LoggingSettings(Struct):
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    console_enabled: bool = True
    file_enabled: bool = False
    structured_format: bool = False

    @property
    def log_path(self) -> Optional[Path]:
        return Path(self.log_dir) if self.log_dir else None


class LocalSettings(Struct):
    engine_command: List[str] = msgspec.field(default_factory=lambda: ["envio", "dev"])
    codegen_command: List[str] = msgspec.field(default_factory=lambda: ["envio", "codegen"])
    codegen_timeout: float = 300.0
    readiness: str = "port"  # "port" or "log"
    ready_marker: str = "Indexer ready"
    host: str = "127.0.0.1"
    readiness_timeout: float = 30.0
    stop_grace_period: float = 10.0
    poll_interval: float = 0.5
    env: Dict[str, str] = msgspec.field(default_factory=dict)


class ClusterSettings(Struct):
    api_url: Optional[str] = None
    token: Optional[str] = None
    ca_cert: Optional[str] = None
    verify_tls: bool = True
    request_timeout: float = 10.0
    namespace: str = "default"
    image: str = "ghcr.io/enviodev/envio:latest"
    port: int = 8080
    replicas: int = 1
    name_prefix: str = "envio"
    cpu: Optional[str] = None
    memory: Optional[str] = None
    readiness_timeout: float = 120.0
    poll_interval: float = 2.0


class DeployerSettings(Struct):
    data_dir: str = "data/indexers"
    deployment_mode: DeploymentMode = DeploymentMode.LOCAL
    local: LocalSettings = msgspec.field(default_factory=LocalSettings)
    cluster: ClusterSettings = msgspec.field(default_factory=ClusterSettings)
    logging: LoggingSettings = msgspec.field(default_factory=LoggingSettings)

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def cluster_enabled(self) -> bool:
        return self.cluster.api_url is not None

    @classmethod
    def from_file(cls, path: Path, env_vars: Optional[Mapping[str, str]] = None) -> 'DeployerSettings':
        """Load settings from a YAML file, then apply DEPLOYER_* overrides"""
        logger = DeployerLogger.get_logger('core.settings')

        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")

        merged = _merge(raw, _env_overrides(env_vars if env_vars is not None else os.environ))
        settings = msgspec.convert(merged, cls, strict=False)

        log_with_context(logger, INFO, "Settings loaded from file",
                         path=str(path), mode=settings.deployment_mode.value)
        return settings

    @classmethod
    def from_env(cls, env_vars: Optional[Mapping[str, str]] = None) -> 'DeployerSettings':
        logger = DeployerLogger.get_logger('core.settings')

        if env_vars is None:
            from dotenv import load_dotenv
            load_dotenv()
            env_vars = os.environ

        settings = msgspec.convert(_env_overrides(env_vars), cls, strict=False)

        log_with_context(logger, DEBUG, "Settings loaded from environment",
                         mode=settings.deployment_mode.value)
        return settings


# Environment variable name -> (section, field). Section None means top level.
_ENV_FIELDS = {
    "DATA_DIR": (None, "data_dir"),
    "MODE": (None, "deployment_mode"),
    "LOG_LEVEL": ("logging", "log_level"),
    "LOG_DIR": ("logging", "log_dir"),
    "LOG_CONSOLE": ("logging", "console_enabled"),
    "LOG_FILE": ("logging", "file_enabled"),
    "LOG_STRUCTURED": ("logging", "structured_format"),
    "ENGINE_COMMAND": ("local", "engine_command"),
    "CODEGEN_COMMAND": ("local", "codegen_command"),
    "LOCAL_READINESS": ("local", "readiness"),
    "LOCAL_READY_MARKER": ("local", "ready_marker"),
    "LOCAL_READINESS_TIMEOUT": ("local", "readiness_timeout"),
    "LOCAL_STOP_GRACE": ("local", "stop_grace_period"),
    "KUBE_API_URL": ("cluster", "api_url"),
    "KUBE_TOKEN": ("cluster", "token"),
    "KUBE_CA_CERT": ("cluster", "ca_cert"),
    "KUBE_VERIFY_TLS": ("cluster", "verify_tls"),
    "KUBE_NAMESPACE": ("cluster", "namespace"),
    "KUBE_IMAGE": ("cluster", "image"),
    "KUBE_PORT": ("cluster", "port"),
    "KUBE_REPLICAS": ("cluster", "replicas"),
    "KUBE_READINESS_TIMEOUT": ("cluster", "readiness_timeout"),
}

_LIST_FIELDS = {"engine_command", "codegen_command"}
_BOOL_FIELDS = {"console_enabled", "file_enabled", "structured_format", "verify_tls"}


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for suffix, (section, field) in _ENV_FIELDS.items():
        value = env.get(f"{ENV_PREFIX}{suffix}")
        if value is None:
            continue

        if field in _LIST_FIELDS:
            converted: Any = value.split() if value.strip() else []
        elif field in _BOOL_FIELDS:
            converted = value.lower() in ("1", "true", "yes", "on")
        else:
            converted = value

        if section is None:
            overrides[field] = converted
        else:
            overrides.setdefault(section, {})[field] = converted
    return overrides


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged
