"""Port forwarding through ``kubectl port-forward`` child processes."""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import os
import signal
import socket
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from kube_console.integrations.kubernetes.config import PortForwardConfig
from kube_console.integrations.kubernetes.exceptions import KubernetesError
from kube_console.integrations.kubernetes.kubectl import KubectlClient, PipedProcess

logger = structlog.get_logger()

READY_MARKER = b"Forwarding from"


class PortForwardError(KubernetesError):
    """A port forward could not be started."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class PortInUseError(PortForwardError):
    """The requested local port is already taken."""

    def __init__(self, port: int) -> None:
        super().__init__(message=f"Local port {port} is already in use")
        self.port = port


@dataclass(eq=False)
class PortForwardSession:
    """One running forward from a local port to a pod port."""

    id: str
    namespace: str
    pod: str
    container_port: int
    local_port: int
    start_time: datetime
    process: PipedProcess = field(repr=False)
    monitor: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def display_name(self) -> str:
        return f"{self.pod}:{self.container_port} -> localhost:{self.local_port}"


class PortForwardManager:
    """Start, track and stop port forwards.

    No two forwards share a local port. A forward whose kubectl process
    exits on its own is dropped from the registry.
    """

    def __init__(self, kubectl: KubectlClient, config: PortForwardConfig | None = None) -> None:
        self._kubectl = kubectl
        self._config = config or PortForwardConfig()
        self._sessions: dict[str, PortForwardSession] = {}
        self._lock = asyncio.Lock()
        self._hook_installed = False
        self._log = logger.bind(entity="port_forward")

    @property
    def sessions(self) -> list[PortForwardSession]:
        return list(self._sessions.values())

    # =========================================================================
    # Queries
    # =========================================================================

    def get_session_for_port(
        self, namespace: str, pod: str, container_port: int
    ) -> PortForwardSession | None:
        for session in self._sessions.values():
            if (
                session.namespace == namespace
                and session.pod == pod
                and session.container_port == container_port
            ):
                return session
        return None

    def is_forwarded(self, namespace: str, pod: str, container_port: int) -> bool:
        return self.get_session_for_port(namespace, pod, container_port) is not None

    def is_local_port_in_use(self, port: int) -> bool:
        """True if a forward owns ``port`` or the OS refuses to bind it."""
        if any(s.local_port == port for s in self._sessions.values()):
            return True
        return not self._port_bindable(port)

    def _port_bindable(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self._config.address, port))
            except OSError:
                return False
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(
        self, namespace: str, pod: str, container_port: int, local_port: int
    ) -> PortForwardSession:
        """Forward ``local_port`` to ``container_port`` of a pod.

        Raises:
            PortInUseError: If the local port is taken. Nothing is spawned.
            PortForwardError: If kubectl exits or stalls before forwarding.
        """
        async with self._lock:
            if self.is_local_port_in_use(local_port):
                raise PortInUseError(local_port)

            args = self._kubectl.port_forward_args(
                namespace, pod, container_port, local_port, address=self._config.address
            )
            process = await self._kubectl.spawn(args)
            try:
                await self._wait_until_ready(process)
            except BaseException:
                await process.terminate(self._config.terminate_timeout)
                raise

            session = PortForwardSession(
                id=f"pf-{namespace}-{pod}-{container_port}-{local_port}-{int(time.time() * 1000)}",
                namespace=namespace,
                pod=pod,
                container_port=container_port,
                local_port=local_port,
                start_time=datetime.now(UTC),
                process=process,
            )
            self._sessions[session.id] = session
            session.monitor = asyncio.get_running_loop().create_task(
                self._monitor(session), name=f"port-forward:{session.id}"
            )
            self._log.info(
                "port_forward_started",
                id=session.id,
                namespace=namespace,
                pod=pod,
                container_port=container_port,
                local_port=local_port,
            )
            return session

    async def _wait_until_ready(self, process: PipedProcess) -> None:
        async def ready() -> None:
            while True:
                line = await process.read_line()
                if not line:
                    stderr = await process.read_stderr()
                    detail = stderr.strip() or "kubectl port-forward exited"
                    raise PortForwardError(f"Port forward failed: {detail}", stderr=stderr)
                if READY_MARKER in line:
                    return

        try:
            await asyncio.wait_for(ready(), self._config.startup_timeout)
        except TimeoutError as e:
            raise PortForwardError(
                f"Port forward not ready after {self._config.startup_timeout}s"
            ) from e

    async def _monitor(self, session: PortForwardSession) -> None:
        # Both pipes are drained; kubectl blocks once either one fills up.
        async def drain_stdout() -> None:
            while await session.process.read():
                pass

        async def drain_stderr() -> None:
            while chunk := await session.process.read_stderr_chunk():
                self._log.debug(
                    "port_forward_stderr",
                    id=session.id,
                    output=chunk.decode("utf-8", errors="replace").strip(),
                )

        await asyncio.gather(drain_stdout(), drain_stderr())
        returncode = await session.process.wait()
        if self._sessions.pop(session.id, None) is not None:
            self._log.info("port_forward_exited", id=session.id, returncode=returncode)

    async def stop(self, forward_id: str) -> bool:
        """Stop a forward. Returns False if it was not running."""
        session = self._sessions.pop(forward_id, None)
        if session is None:
            return False
        if session.monitor is not None:
            session.monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await session.monitor
        try:
            await session.process.terminate(self._config.terminate_timeout)
        except Exception as e:
            self._log.debug("port_forward_teardown_failed", id=forward_id, error=str(e))
        self._log.info("port_forward_stopped", id=forward_id)
        return True

    async def stop_all(self) -> None:
        for forward_id in list(self._sessions):
            await self.stop(forward_id)

    # =========================================================================
    # Interpreter shutdown
    # =========================================================================

    def install_shutdown_hook(self) -> None:
        """Kill remaining kubectl processes when the interpreter exits."""
        if not self._hook_installed:
            atexit.register(self._kill_remaining)
            self._hook_installed = True

    def _kill_remaining(self) -> None:
        for session in list(self._sessions.values()):
            pid = session.process.pid
            if pid is None or session.process.returncode is not None:
                continue
            with contextlib.suppress(ProcessLookupError, PermissionError):
                os.kill(pid, signal.SIGTERM)
        self._sessions.clear()
