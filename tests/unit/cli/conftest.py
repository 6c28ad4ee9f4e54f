"""Fixtures that run CLI commands against mocked cluster access."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kube_console.app import ConsoleServices
from kube_console.integrations.kubernetes.client import KubernetesClient
from kube_console.integrations.kubernetes.config import KubeConsoleConfig, WatchConfig
from kube_console.integrations.kubernetes.kubectl import KubectlClient
from tests.unit.services.kubernetes.fakes import FakeProcess


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.default_namespace = "default"
    client.timeout = 30
    client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return client


@pytest.fixture
def mock_kubectl() -> MagicMock:
    """kubectl mock; each spawned process replays ``kubectl.script``.

    The process then exits with ``kubectl.exit_code``.
    """
    kubectl = MagicMock()
    kubectl.logs_args.side_effect = KubectlClient.logs_args
    kubectl.port_forward_args.side_effect = KubectlClient.port_forward_args
    kubectl.script = []
    kubectl.exit_code = 0
    kubectl.spawned = []

    async def spawn(*args: object, **kwargs: object) -> FakeProcess:
        process = FakeProcess()
        for chunk in kubectl.script:
            process.feed(chunk)
        process.exit(kubectl.exit_code)
        kubectl.spawned.append(process)
        return process

    kubectl.spawn = AsyncMock(side_effect=spawn)
    return kubectl


@pytest.fixture
def services(mock_client: MagicMock, mock_kubectl: MagicMock) -> Iterator[ConsoleServices]:
    """ConsoleServices over mocks, returned by every command's get_services()."""
    config = KubeConsoleConfig(watch=WatchConfig(pods=0.01, deployments=0.01))
    console_services = ConsoleServices(config, client=mock_client, kubectl=mock_kubectl)
    with patch(
        "kube_console.cli.commands.base.get_services", return_value=console_services
    ):
        yield console_services
