"""Service container wiring the console's managers together."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from kube_console.integrations.kubernetes.client import KubernetesClient
from kube_console.integrations.kubernetes.config import KubeConsoleConfig
from kube_console.integrations.kubernetes.kubectl import KubectlClient
from kube_console.services.kubernetes.failure_coordinator import GlobalFailureCoordinator
from kube_console.services.kubernetes.file_transfer import FileTransferManager
from kube_console.services.kubernetes.port_forward_manager import PortForwardManager
from kube_console.services.kubernetes.resource_watch import ResourceWatchService
from kube_console.services.kubernetes.session_manager import SessionManager
from kube_console.services.kubernetes.snapshot_manager import ResourceSnapshotManager
from kube_console.services.kubernetes.watch import WatchStreamEngine

logger = structlog.get_logger()


class ConsoleServices:
    """Owns one instance of every manager for a console run.

    Use as an async context manager so sessions, forwards and watches are
    torn down on exit:

        async with ConsoleServices.from_config() as services:
            subscription = services.watches.watch_pods({"default"})
    """

    def __init__(
        self,
        config: KubeConsoleConfig,
        *,
        client: KubernetesClient | None = None,
        kubectl: KubectlClient | None = None,
    ) -> None:
        self.config = config
        self.client = client or KubernetesClient(config)
        self.kubectl = kubectl or KubectlClient(
            config.defaults.kubectl,
            context=config.get_active_context(),
            kubeconfig=config.get_active_kubeconfig(),
            term=config.sessions.term,
        )
        self.snapshots = ResourceSnapshotManager(self.client)
        self.coordinator = GlobalFailureCoordinator(
            credential_refresher=self.client.refresh_credentials,
            connection_check=self.check_connection,
        )
        self.engine = WatchStreamEngine(self.coordinator)
        self.watches = ResourceWatchService(self.engine, self.snapshots, config.watch)
        self.sessions = SessionManager(self.kubectl, self.snapshots, config.sessions)
        self.port_forwards = PortForwardManager(self.kubectl, config.port_forward)
        self.files = FileTransferManager(self.kubectl)
        self._closed = False

    @classmethod
    def from_config(cls, path: Path | None = None) -> ConsoleServices:
        """Build services from the config file and ``KCON_*`` overrides."""
        return cls(KubeConsoleConfig.load(path))

    async def check_connection(self) -> str:
        """Cluster version, with transient connection errors retried."""
        return await asyncio.to_thread(self.client.verify_connection)

    async def aclose(self) -> None:
        """Stop every watch, session and port forward. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.engine.cancel_all()
        await self.sessions.close_all()
        await self.port_forwards.stop_all()
        self.client.close()
        logger.debug("console_services_closed")

    async def __aenter__(self) -> ConsoleServices:
        self.port_forwards.install_shutdown_hook()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
