# tests/test_settings.py

import msgspec
import pytest
import yaml

from deployer.core.settings import DeployerSettings
from deployer.types import DeploymentMode


def test_defaults():
    settings = DeployerSettings.from_env({})

    assert settings.deployment_mode == DeploymentMode.LOCAL
    assert settings.local.engine_command == ["envio", "dev"]
    assert settings.cluster.namespace == "default"
    assert not settings.cluster_enabled


def test_environment_overrides():
    settings = DeployerSettings.from_env({
        "DEPLOYER_MODE": "cluster",
        "DEPLOYER_DATA_DIR": "/srv/indexers",
        "DEPLOYER_ENGINE_COMMAND": "pnpm envio dev",
        "DEPLOYER_CODEGEN_COMMAND": "",
        "DEPLOYER_KUBE_API_URL": "https://k8s.internal:6443",
        "DEPLOYER_KUBE_NAMESPACE": "indexers",
        "DEPLOYER_KUBE_REPLICAS": "2",
        "DEPLOYER_KUBE_VERIFY_TLS": "false",
        "DEPLOYER_LOCAL_READINESS_TIMEOUT": "45.5",
        "UNRELATED": "ignored",
    })

    assert settings.deployment_mode == DeploymentMode.CLUSTER
    assert str(settings.data_path) == "/srv/indexers"
    assert settings.local.engine_command == ["pnpm", "envio", "dev"]
    assert settings.local.codegen_command == []
    assert settings.local.readiness_timeout == 45.5
    assert settings.cluster.replicas == 2
    assert settings.cluster.verify_tls is False
    assert settings.cluster_enabled


def test_file_with_environment_overrides(tmp_path):
    path = tmp_path / "deployer.yaml"
    path.write_text(yaml.safe_dump({
        "deployment_mode": "cluster",
        "cluster": {"api_url": "https://k8s", "namespace": "from-file", "image": "envio:1"},
        "local": {"readiness": "log", "ready_marker": "Synced"},
    }))

    settings = DeployerSettings.from_file(path, {"DEPLOYER_KUBE_NAMESPACE": "from-env"})

    assert settings.cluster.namespace == "from-env"
    assert settings.cluster.image == "envio:1"
    assert settings.local.readiness == "log"
    assert settings.local.ready_marker == "Synced"


def test_file_must_be_mapping(tmp_path):
    path = tmp_path / "deployer.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ValueError):
        DeployerSettings.from_file(path, {})


def test_bad_value_is_rejected():
    with pytest.raises(msgspec.ValidationError):
        DeployerSettings.from_env({"DEPLOYER_MODE": "serverless"})
