# tests/test_cluster_backend.py

import msgspec
import pytest

from deployer.backends import ClusterBackend, deployment_state
from deployer.errors import SpawnError, StopError, StatusError, ClusterApiError, ClusterUnreachable
from deployer.translate import translate
from deployer.types import ClusterHandle, RunState

from conftest import FakeClusterApi, make_config, encode


@pytest.fixture
def config():
    return translate(encode(make_config()))


@pytest.fixture
def backend(fake_cluster_api, cluster_settings):
    return ClusterBackend(fake_cluster_api, cluster_settings)


@pytest.mark.asyncio
async def test_spawn_creates_deployment_and_service(backend, fake_cluster_api, config):
    handle = await backend.spawn("idx-1", config)

    assert isinstance(handle, ClusterHandle)
    assert handle.namespace == "indexers"
    assert ("indexers", handle.deployment_name) in fake_cluster_api.deployments
    assert ("indexers", handle.service_name) in fake_cluster_api.services
    assert fake_cluster_api.calls[:2] == ["create_deployment", "create_service"]
    assert await backend.status(handle) == RunState.RUNNING


@pytest.mark.asyncio
async def test_same_name_twice_gets_distinct_resources(backend, fake_cluster_api, config):
    first = await backend.spawn("idx-1", config)
    second = await backend.spawn("idx-2", config)

    assert first.deployment_name != second.deployment_name
    assert len(fake_cluster_api.deployments) == 2


@pytest.mark.asyncio
async def test_deployment_rejected(backend, fake_cluster_api, config):
    fake_cluster_api.fail_on["create_deployment"] = ClusterApiError(422, "invalid image")

    with pytest.raises(SpawnError) as exc_info:
        await backend.spawn("idx-1", config)

    assert exc_info.value.reason == SpawnError.APPLY_FAILED
    assert "invalid image" in exc_info.value.detail
    assert fake_cluster_api.deployments == {}
    assert "delete_deployment" not in fake_cluster_api.calls


@pytest.mark.asyncio
async def test_deployment_applied_before_connection_dropped(cluster_settings, config):
    class DroppingApi(FakeClusterApi):
        async def create_deployment(self, namespace, manifest):
            await super().create_deployment(namespace, manifest)
            raise ClusterUnreachable("connection reset after write")

    api = DroppingApi()
    backend = ClusterBackend(api, cluster_settings)

    with pytest.raises(SpawnError) as exc_info:
        await backend.spawn("idx-1", config)

    assert exc_info.value.reason == SpawnError.APPLY_FAILED
    assert exc_info.value.leftover is None
    assert "delete_deployment" in api.calls
    assert "create_service" not in api.calls
    assert api.deployments == {}


@pytest.mark.asyncio
async def test_service_failure_rolls_back_deployment(backend, fake_cluster_api, config):
    fake_cluster_api.fail_on["create_service"] = ClusterUnreachable("connection reset")

    with pytest.raises(SpawnError) as exc_info:
        await backend.spawn("idx-1", config)

    assert exc_info.value.reason == SpawnError.APPLY_FAILED
    assert fake_cluster_api.deployments == {}
    assert fake_cluster_api.services == {}
    assert "delete_deployment" in fake_cluster_api.calls


@pytest.mark.asyncio
async def test_failed_rollback_is_reported(backend, fake_cluster_api, config):
    fake_cluster_api.fail_on["create_service"] = ClusterApiError(500, "quota")
    fake_cluster_api.fail_on["delete_deployment"] = ClusterUnreachable("gone")

    with pytest.raises(SpawnError) as exc_info:
        await backend.spawn("idx-1", config)

    assert "rollback failed" in exc_info.value.detail
    assert exc_info.value.leftover is not None
    assert ("indexers", exc_info.value.leftover.deployment_name) in fake_cluster_api.deployments


@pytest.mark.asyncio
async def test_readiness_timeout_rolls_back(cluster_settings, config):
    api = FakeClusterApi(ready=False)
    backend = ClusterBackend(api, msgspec.structs.replace(cluster_settings, readiness_timeout=0.1))

    with pytest.raises(SpawnError) as exc_info:
        await backend.spawn("idx-1", config)

    assert exc_info.value.reason == SpawnError.TIMEOUT
    assert api.deployments == {}
    assert api.services == {}
    assert exc_info.value.leftover is None


@pytest.mark.asyncio
async def test_transient_poll_errors_are_tolerated(backend, fake_cluster_api, config):
    calls = {"count": 0}
    original = fake_cluster_api.get_deployment

    async def flaky_get(namespace, name):
        calls["count"] += 1
        if calls["count"] == 1:
            raise ClusterUnreachable("blip")
        return await original(namespace, name)

    fake_cluster_api.get_deployment = flaky_get
    handle = await backend.spawn("idx-1", config)

    assert calls["count"] >= 2
    assert ("indexers", handle.deployment_name) in fake_cluster_api.deployments


@pytest.mark.asyncio
async def test_stop_deletes_resources(backend, fake_cluster_api, config):
    handle = await backend.spawn("idx-1", config)
    await backend.stop(handle)

    assert fake_cluster_api.deployments == {}
    assert fake_cluster_api.services == {}


@pytest.mark.asyncio
async def test_stop_of_absent_resources_succeeds(backend):
    await backend.stop(ClusterHandle(namespace="indexers", deployment_name="gone", service_name="gone"))


@pytest.mark.asyncio
async def test_stop_unreachable(backend, fake_cluster_api, config):
    handle = await backend.spawn("idx-1", config)
    fake_cluster_api.fail_on["delete_service"] = ClusterUnreachable("no route")

    with pytest.raises(StopError) as exc_info:
        await backend.stop(handle)
    assert exc_info.value.reason == StopError.BACKEND_UNREACHABLE


@pytest.mark.asyncio
async def test_status_of_deleted_resources_is_crashed(backend, fake_cluster_api, config):
    handle = await backend.spawn("idx-1", config)
    fake_cluster_api.services.clear()

    assert await backend.status(handle) == RunState.CRASHED


@pytest.mark.asyncio
async def test_status_unreachable(backend, fake_cluster_api, config):
    handle = await backend.spawn("idx-1", config)
    fake_cluster_api.fail_on["get_deployment"] = ClusterUnreachable("no route")

    with pytest.raises(StatusError) as exc_info:
        await backend.status(handle)
    assert exc_info.value.reason == StatusError.BACKEND_UNREACHABLE


@pytest.mark.asyncio
async def test_discover_groups_by_instance(backend, fake_cluster_api, config):
    first = await backend.spawn("idx-1", config)
    second = await backend.spawn("idx-2", config)
    fake_cluster_api.deployments[("indexers", "unmanaged")] = {
        "metadata": {"name": "unmanaged", "labels": {"app": "other"}},
    }

    found = {resource.instance_id: resource.handle for resource in await backend.discover()}
    assert found == {"idx-1": first, "idx-2": second}


@pytest.mark.asyncio
async def test_close_closes_api(cluster_settings):
    class ClosingApi(FakeClusterApi):
        closed = False

        async def close(self):
            self.closed = True

    api = ClosingApi()
    await ClusterBackend(api, cluster_settings).close()
    assert api.closed


class TestDeploymentState:

    SERVICE = {"metadata": {"name": "svc"}}

    @staticmethod
    def deployment(ready=0, replicas=1, conditions=None):
        return {
            "spec": {"replicas": replicas},
            "status": {"readyReplicas": ready, "conditions": conditions or []},
        }

    def test_ready(self):
        assert deployment_state(self.deployment(ready=1), self.SERVICE) == RunState.RUNNING

    def test_waiting(self):
        assert deployment_state(self.deployment(ready=0), self.SERVICE) == RunState.PENDING

    def test_missing_ready_replicas(self):
        assert deployment_state({"spec": {"replicas": 1}, "status": {}}, self.SERVICE) == RunState.PENDING

    def test_missing_resource(self):
        assert deployment_state(None, self.SERVICE) == RunState.CRASHED
        assert deployment_state(self.deployment(ready=1), None) == RunState.CRASHED

    def test_replica_failure(self):
        conditions = [{"type": "ReplicaFailure", "status": "True"}]
        assert deployment_state(self.deployment(conditions=conditions), self.SERVICE) == RunState.CRASHED

    def test_progress_deadline_exceeded(self):
        conditions = [{"type": "Progressing", "status": "False", "reason": "ProgressDeadlineExceeded"}]
        assert deployment_state(self.deployment(conditions=conditions), self.SERVICE) == RunState.CRASHED
