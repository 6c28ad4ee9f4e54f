"""Tests for the ConsoleServices container."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kube_console.app import ConsoleServices
from kube_console.integrations.kubernetes.config import KubeConsoleConfig
from kube_console.integrations.kubernetes.exceptions import KubernetesConnectionError
from kube_console.services.kubernetes.classifier import classify


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.default_namespace = "default"
    client.verify_connection.return_value = "v1.29.2"
    return client


@pytest.fixture
def services(mock_client: MagicMock) -> ConsoleServices:
    return ConsoleServices(KubeConsoleConfig(), client=mock_client, kubectl=MagicMock())


@pytest.mark.unit
class TestConsoleServices:
    """Tests for wiring and teardown."""

    def test_from_config_uses_active_cluster(self, temp_config_file: Path) -> None:
        with (
            patch("kube_console.app.KubernetesClient") as client_cls,
            patch("kube_console.app.KubectlClient") as kubectl_cls,
        ):
            services = ConsoleServices.from_config(temp_config_file)

        client_cls.assert_called_once_with(services.config)
        kwargs = kubectl_cls.call_args.kwargs
        assert kwargs["context"] == "staging-ctx"
        assert kwargs["kubeconfig"].endswith(".kube/config")
        assert services.watches._config.pods == 1.5

    @pytest.mark.asyncio
    async def test_check_connection(
        self, services: ConsoleServices, mock_client: MagicMock
    ) -> None:
        assert await services.check_connection() == "v1.29.2"
        mock_client.verify_connection.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_retry_runs_connection_check(
        self, services: ConsoleServices, mock_client: MagicMock
    ) -> None:
        services.coordinator.report_failure(classify(KubernetesConnectionError()))
        mock_client.verify_connection.side_effect = KubernetesConnectionError()

        assert await services.coordinator.retry() is False

        mock_client.verify_connection.side_effect = None
        assert await services.coordinator.retry() is True

    @pytest.mark.asyncio
    async def test_expired_credentials_use_client_refresh(
        self, services: ConsoleServices, mock_client: MagicMock
    ) -> None:
        await services.coordinator.refresh_credentials()

        mock_client.refresh_credentials.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_context_manager_tears_everything_down(
        self, services: ConsoleServices, mock_client: MagicMock
    ) -> None:
        services.engine.cancel_all = AsyncMock()  # type: ignore[method-assign]
        services.sessions.close_all = AsyncMock()  # type: ignore[method-assign]
        services.port_forwards.stop_all = AsyncMock()  # type: ignore[method-assign]

        with patch("kube_console.services.kubernetes.port_forward_manager.atexit.register"):
            async with services as entered:
                assert entered is services
        await services.aclose()

        services.engine.cancel_all.assert_awaited_once()
        services.sessions.close_all.assert_awaited_once()
        services.port_forwards.stop_all.assert_awaited_once()
        mock_client.close.assert_called_once_with()
