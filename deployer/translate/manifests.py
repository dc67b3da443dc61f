# deployer/translate/manifests.py

import hashlib
import re
from typing import Dict, Any, List, Optional

import msgspec
from msgspec import Struct

from ..core.settings import ClusterSettings
from ..types import IndexerConfig, ClusterManifests, ResourceName


CONTAINER_NAME = "app"
APP_NAME = "envio-indexer"
MANAGER_NAME = "hyperindex-deployer"

NAME_LABEL = "app.kubernetes.io/name"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
INSTANCE_LABEL = "hyperindex.io/indexer-id"
INDEXER_NAME_LABEL = "hyperindex.io/indexer-name"
DISPLAY_NAME_ANNOTATION = "hyperindex.io/display-name"

MAX_NAME_LENGTH = 63
SUFFIX_LENGTH = 8

_INVALID_CHARS = re.compile(r'[^a-z0-9-]+')
_DASHES = re.compile(r'-{2,}')


def sanitise_name(value: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Lowercase DNS-1123 label fragment, empty if nothing usable remains"""
    cleaned = _INVALID_CHARS.sub('-', value.lower())
    cleaned = _DASHES.sub('-', cleaned).strip('-')
    return cleaned[:max_length].rstrip('-')


class NamingConvention(Struct, frozen=True):
    prefix: str = "envio"

    def suffix(self, seed: str) -> str:
        return hashlib.sha256(seed.encode('utf-8')).hexdigest()[:SUFFIX_LENGTH]

    def resource_name(self, indexer_name: str, seed: str) -> ResourceName:
        """
        Build <prefix>-<name>-<suffix>, at most 63 characters.

        The suffix is derived from the seed (the instance id), so two
        indexers sharing a display name get distinct resource names.
        """
        prefix = sanitise_name(self.prefix) or "indexer"
        suffix = self.suffix(seed)
        budget = MAX_NAME_LENGTH - len(prefix) - len(suffix) - 2
        body = sanitise_name(indexer_name, max(budget, 0)) or "indexer"
        return ResourceName(f"{prefix}-{body}-{suffix}"[:MAX_NAME_LENGTH])


def selector_labels(instance_id: str) -> Dict[str, str]:
    return {INSTANCE_LABEL: instance_id}


def managed_labels(config: IndexerConfig, instance_id: str) -> Dict[str, str]:
    return {
        NAME_LABEL: APP_NAME,
        MANAGED_BY_LABEL: MANAGER_NAME,
        INSTANCE_LABEL: instance_id,
        INDEXER_NAME_LABEL: sanitise_name(config.name) or "indexer",
    }


def container_env(config: IndexerConfig, instance_id: str, port: int) -> List[Dict[str, str]]:
    env = [
        {"name": "INDEXER_ID", "value": instance_id},
        {"name": "INDEXER_NAME", "value": config.name},
        {"name": "INDEXER_PORT", "value": str(port)},
        {"name": "NETWORK_ID", "value": str(config.network)},
        {"name": "START_BLOCK", "value": str(config.start_block)},
        {"name": "INDEXER_CONFIG", "value": msgspec.json.encode(config).decode('utf-8')},
    ]
    if config.rpc_url:
        env.append({"name": "RPC_URL", "value": config.rpc_url})
    return env


def _resources(settings: ClusterSettings) -> Optional[Dict[str, Any]]:
    limits = {}
    if settings.cpu:
        limits["cpu"] = settings.cpu
    if settings.memory:
        limits["memory"] = settings.memory
    if not limits:
        return None
    return {"requests": dict(limits), "limits": limits}


def render_manifests(config: IndexerConfig,
                     instance_id: str,
                     settings: ClusterSettings,
                     naming: Optional[NamingConvention] = None) -> ClusterManifests:
    """
    Render the Deployment and Service for one indexer instance.

    Output depends only on the arguments: the same config, id and
    settings always produce identical manifests.
    """
    naming = naming or NamingConvention(prefix=settings.name_prefix)
    name = naming.resource_name(config.name, instance_id)
    labels = managed_labels(config, instance_id)
    selector = selector_labels(instance_id)

    metadata = {
        "name": name,
        "namespace": settings.namespace,
        "labels": dict(labels),
        "annotations": {DISPLAY_NAME_ANNOTATION: config.name},
    }

    container: Dict[str, Any] = {
        "name": CONTAINER_NAME,
        "image": settings.image,
        "ports": [{"name": "http", "containerPort": settings.port, "protocol": "TCP"}],
        "env": container_env(config, instance_id, settings.port),
        "readinessProbe": {
            "tcpSocket": {"port": settings.port},
            "initialDelaySeconds": 5,
            "periodSeconds": 5,
        },
    }
    resources = _resources(settings)
    if resources:
        container["resources"] = resources

    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": metadata,
        "spec": {
            "replicas": settings.replicas,
            "selector": {"matchLabels": dict(selector)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {"containers": [container]},
            },
        },
    }

    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {**metadata, "labels": dict(labels), "annotations": dict(metadata["annotations"])},
        "spec": {
            "type": "ClusterIP",
            "selector": dict(selector),
            "ports": [{
                "name": "http",
                "port": settings.port,
                "targetPort": settings.port,
                "protocol": "TCP",
            }],
        },
    }

    return ClusterManifests(
        namespace=settings.namespace,
        deployment_name=name,
        service_name=name,
        labels=labels,
        deployment=deployment,
        service=service,
    )
