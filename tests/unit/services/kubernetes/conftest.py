"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from kube_console.integrations.kubernetes.client import KubernetesClient
from kube_console.integrations.kubernetes.kubectl import KubectlClient
from tests.unit.services.kubernetes.fakes import FakeProcess


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    API groups (core_v1, apps_v1, batch_v1, custom_objects) are MagicMock
    attributes. Exceptions are translated with the real client rules.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.timeout = 30
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client


@pytest.fixture
def mock_kubectl() -> MagicMock:
    """KubectlClient mock whose spawn calls return fresh FakeProcess objects.

    Chunks in ``kubectl.preload`` are queued on every spawned process.
    """
    kubectl = MagicMock()
    kubectl.exec_args.side_effect = KubectlClient.exec_args
    kubectl.logs_args.side_effect = KubectlClient.logs_args
    kubectl.port_forward_args.side_effect = KubectlClient.port_forward_args
    kubectl.cp_args.side_effect = KubectlClient.cp_args
    kubectl.spawned = []
    kubectl.preload = []

    async def spawn(*args: object, **kwargs: object) -> FakeProcess:
        process = FakeProcess(pid=1000 + len(kubectl.spawned))
        for chunk in kubectl.preload:
            process.feed(chunk)
        kubectl.spawned.append(process)
        return process

    kubectl.spawn = AsyncMock(side_effect=spawn)
    kubectl.spawn_pty = AsyncMock(side_effect=spawn)
    kubectl.run = AsyncMock()
    return kubectl
