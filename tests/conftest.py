# tests/conftest.py

import copy
import json
import sys
from typing import Dict, Any, Optional, List, Tuple

import pytest

from deployer.backends import IndexerBackend
from deployer.clients import ClusterApi
from deployer.core.logging import DeployerLogger
from deployer.core.settings import LocalSettings, ClusterSettings, DeployerSettings
from deployer.errors import ClusterApiError
from deployer.types import ClusterHandle, DeploymentMode, RunState, DiscoveredResource


USDC_ADDRESS = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
USDC_CHECKSUM = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

ERC20_ABI: List[Dict[str, Any]] = [
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Approval",
        "anonymous": False,
        "inputs": [
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "spender", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
]

# Listens on INDEXER_PORT and prints the ready marker, then idles until signalled
READY_ENGINE = """
import os, socket, time
sock = socket.socket()
sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
sock.bind(("127.0.0.1", int(os.environ["INDEXER_PORT"])))
sock.listen(5)
print("Indexer ready", flush=True)
while True:
    time.sleep(0.5)
"""

MARKER_ENGINE = """
import time
time.sleep(0.2)
print("starting", flush=True)
print("Indexer ready", flush=True)
while True:
    time.sleep(0.5)
"""

SILENT_ENGINE = "import time\ntime.sleep(120)\n"
EXITING_ENGINE = "import sys\nsys.exit(3)\n"


def python_command(script: str) -> List[str]:
    return [sys.executable, "-c", script]


def make_config(name: str = "usdc-transfers", **overrides) -> Dict[str, Any]:
    document = {
        "name": name,
        "description": "USDC transfer indexer",
        "network": 1,
        "start_block": 6082465,
        "contracts": [
            {
                "name": "USDC",
                "address": USDC_ADDRESS,
                "events": ["Transfer", "Approval"],
                "abi": ERC20_ABI,
            }
        ],
    }
    document.update(overrides)
    return document


def encode(document: Any) -> bytes:
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def config_document() -> Dict[str, Any]:
    return make_config()


@pytest.fixture
def config_bytes(config_document) -> bytes:
    return encode(config_document)


@pytest.fixture
def local_settings() -> LocalSettings:
    return LocalSettings(
        engine_command=python_command(READY_ENGINE),
        codegen_command=[],
        readiness_timeout=15.0,
        stop_grace_period=5.0,
        poll_interval=0.05,
    )


@pytest.fixture
def cluster_settings() -> ClusterSettings:
    return ClusterSettings(
        api_url="https://cluster.test",
        namespace="indexers",
        image="ghcr.io/enviodev/envio:test",
        readiness_timeout=0.5,
        poll_interval=0.01,
    )


@pytest.fixture
def deployer_settings(tmp_path, local_settings, cluster_settings) -> DeployerSettings:
    return DeployerSettings(
        data_dir=str(tmp_path / "indexers"),
        deployment_mode=DeploymentMode.CLUSTER,
        local=local_settings,
        cluster=cluster_settings,
    )


class FakeClusterApi(ClusterApi):
    """In-memory Deployments and Services keyed by (namespace, name)"""

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.deployments: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.services: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[str] = []

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    @staticmethod
    def _matches(item: Dict[str, Any], label_selector: Optional[str]) -> bool:
        if not label_selector:
            return True
        key, value = label_selector.split("=", 1)
        return item["metadata"].get("labels", {}).get(key) == value

    async def create_deployment(self, namespace, manifest):
        self._record("create_deployment")
        name = manifest["metadata"]["name"]
        if (namespace, name) in self.deployments:
            raise ClusterApiError(409, "already exists", f"deployment/{name}")
        created = copy.deepcopy(manifest)
        replicas = created["spec"]["replicas"]
        created["status"] = {"replicas": replicas, "readyReplicas": replicas if self.ready else 0}
        self.deployments[(namespace, name)] = created
        return created

    async def get_deployment(self, namespace, name):
        self._record("get_deployment")
        return copy.deepcopy(self.deployments.get((namespace, name)))

    async def delete_deployment(self, namespace, name):
        self._record("delete_deployment")
        return self.deployments.pop((namespace, name), None) is not None

    async def list_deployments(self, namespace, label_selector=None):
        self._record("list_deployments")
        return [
            copy.deepcopy(d) for (ns, _), d in self.deployments.items()
            if ns == namespace and self._matches(d, label_selector)
        ]

    async def create_service(self, namespace, manifest):
        self._record("create_service")
        name = manifest["metadata"]["name"]
        if (namespace, name) in self.services:
            raise ClusterApiError(409, "already exists", f"service/{name}")
        created = copy.deepcopy(manifest)
        self.services[(namespace, name)] = created
        return created

    async def get_service(self, namespace, name):
        self._record("get_service")
        return copy.deepcopy(self.services.get((namespace, name)))

    async def delete_service(self, namespace, name):
        self._record("delete_service")
        return self.services.pop((namespace, name), None) is not None

    async def list_services(self, namespace, label_selector=None):
        self._record("list_services")
        return [
            copy.deepcopy(s) for (ns, _), s in self.services.items()
            if ns == namespace and self._matches(s, label_selector)
        ]


class FakeBackend(IndexerBackend):
    """Backend whose outcomes are set by the test"""

    mode = DeploymentMode.CLUSTER

    def __init__(self):
        self.spawn_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.observed = RunState.RUNNING
        self.live: List[ClusterHandle] = []
        self.stopped: List[ClusterHandle] = []
        self.closed = False

    async def spawn(self, instance_id, config):
        if self.spawn_error is not None:
            raise self.spawn_error
        handle = ClusterHandle(
            namespace="test",
            deployment_name=f"dep-{instance_id}",
            service_name=f"svc-{instance_id}",
        )
        self.live.append(handle)
        return handle

    async def stop(self, handle):
        if self.stop_error is not None:
            raise self.stop_error
        if handle in self.live:
            self.live.remove(handle)
        self.stopped.append(handle)

    async def status(self, handle):
        if self.status_error is not None:
            raise self.status_error
        return self.observed

    async def discover(self):
        return [
            DiscoveredResource(handle.deployment_name.replace("dep-", "", 1), handle)
            for handle in self.live
        ]

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_cluster_api() -> FakeClusterApi:
    return FakeClusterApi()


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    DeployerLogger.reset()
