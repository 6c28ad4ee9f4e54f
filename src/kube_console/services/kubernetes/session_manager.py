"""Interactive shell and log sessions against pods.

Sessions outlive the views that display them. A minimized session keeps
its kubectl process running; only closing a session terminates it.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Protocol

import structlog

from kube_console.integrations.kubernetes.config import SessionConfig
from kube_console.integrations.kubernetes.exceptions import (
    KubernetesError,
    KubernetesNotFoundError,
)
from kube_console.integrations.kubernetes.kubectl import KubectlClient, ProcessHandle
from kube_console.services.kubernetes.prompt import DEFAULT_CWD, PromptTracker
from kube_console.services.kubernetes.snapshot_manager import ResourceSnapshotManager

logger = structlog.get_logger()

SHELL_ENDED_MESSAGE = b"\r\n[Terminal session ended]\r\n"
LOG_ENDED_MESSAGE = b"\r\n[Log stream ended]\r\n"


# =============================================================================
# Exceptions
# =============================================================================


class SessionError(KubernetesError):
    """Base exception for session operations."""


class SessionNotFoundError(SessionError):
    """No open session has the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(message=f"Session '{session_id}' not found")
        self.session_id = session_id


class SessionTargetGoneError(KubernetesNotFoundError):
    """The pod behind a session no longer exists; the session was closed."""

    def __init__(self, session_id: str, pod: str, namespace: str) -> None:
        super().__init__(resource_type="Pod", resource_name=pod, namespace=namespace)
        self.message = f"Pod {pod} no longer exists. Closing session"
        self.args = (self.message,)
        self.session_id = session_id

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Types
# =============================================================================


class SessionKind(StrEnum):
    SHELL = "shell"
    LOG = "log"


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    MINIMIZED = "minimized"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionTarget:
    """Pod (and optionally container) a session runs against."""

    namespace: str
    pod: str
    container: str | None = None


class SessionView(Protocol):
    """Something that displays a session: a terminal widget or stdout."""

    @property
    def columns(self) -> int: ...

    @property
    def rows(self) -> int: ...

    def write(self, data: bytes) -> None: ...

    def bind_resize(self, handler: Callable[[int, int], None] | None) -> None: ...


class Session:
    """A shell or log stream bound to one kubectl process.

    The process is created once and reused across minimize/restore; it is
    terminated exactly once, when the session is closed.
    """

    def __init__(
        self,
        session_id: str,
        kind: SessionKind,
        target: SessionTarget,
        config: SessionConfig,
        title: str | None = None,
    ) -> None:
        self.id = session_id
        self.kind = kind
        self.target = target
        self.title = title or self._default_title(kind, target)
        self.state = SessionState.UNINITIALIZED
        self.process: ProcessHandle | None = None
        self.exited = False
        self._config = config
        self._prompt = (
            PromptTracker(config.output_buffer_bytes) if kind is SessionKind.SHELL else None
        )
        self._scrollback = bytearray()
        self._view: SessionView | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._torn_down = False
        self._log = logger.bind(entity="session", session_id=session_id, kind=kind.value)

    @staticmethod
    def _default_title(kind: SessionKind, target: SessionTarget) -> str:
        prefix = "Shell" if kind is SessionKind.SHELL else "Logs"
        suffix = f" ({target.container})" if target.container else ""
        return f"{prefix}: {target.pod}{suffix}"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def minimized(self) -> bool:
        return self.state is SessionState.MINIMIZED

    @property
    def is_ready(self) -> bool:
        """Shell sessions are ready once a prompt has been seen."""
        if self._prompt is None:
            return self.process is not None
        return self._prompt.ready

    @property
    def cwd(self) -> str:
        return self._prompt.cwd if self._prompt is not None else DEFAULT_CWD

    @property
    def view(self) -> SessionView | None:
        return self._view

    @property
    def scrollback(self) -> bytes:
        return bytes(self._scrollback)

    @property
    def returncode(self) -> int | None:
        """Exit code of the process once it has ended on its own."""
        if self.process is None or not self.exited:
            return None
        return self.process.returncode

    # -------------------------------------------------------------------------
    # Process and view wiring
    # -------------------------------------------------------------------------

    def start(self, process: ProcessHandle) -> None:
        if self.process is not None:
            return
        self.process = process
        self._pump_task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"session:{self.id}"
        )

    async def _pump(self) -> None:
        assert self.process is not None
        while True:
            chunk = await self.process.read()
            if not chunk:
                break
            self._on_output(chunk)
        returncode = await self.process.wait()
        self.exited = True
        self._log.info("session_process_exited", returncode=returncode)
        if not self._torn_down:
            ended = SHELL_ENDED_MESSAGE if self.kind is SessionKind.SHELL else LOG_ENDED_MESSAGE
            self._on_output(ended)

    async def wait(self) -> None:
        """Wait until the process output ends or the session is torn down."""
        if self._pump_task is not None:
            await asyncio.wait({self._pump_task})

    def _on_output(self, chunk: bytes) -> None:
        self._scrollback += chunk
        limit = self._config.scrollback_bytes
        if len(self._scrollback) > limit:
            del self._scrollback[: len(self._scrollback) - limit]
        if self._prompt is not None and self._prompt.feed(chunk):
            self._log.debug("shell_prompt_detected", cwd=self._prompt.cwd)
        if self._view is not None:
            self._view.write(chunk)

    def attach(self, view: SessionView) -> None:
        """Show the session in ``view`` and wire resizing to the process."""
        replay = view is not self._view
        if self._view is not None and replay:
            self.detach()
        self._view = view
        view.bind_resize(self.resize)
        self.resize(view.columns, view.rows)
        if replay and self._scrollback:
            view.write(bytes(self._scrollback))

    def detach(self) -> None:
        if self._view is not None:
            self._view.bind_resize(None)
            self._view = None

    def resize(self, columns: int, rows: int) -> None:
        if self.process is None or self._torn_down or columns <= 0 or rows <= 0:
            return
        self.process.resize(columns, rows)

    def send_input(self, data: bytes | str) -> bool:
        """Forward keystrokes to the shell.

        Returns:
            False when the input was dropped because the session is not a
            ready, running shell.
        """
        if self.kind is not SessionKind.SHELL or self.process is None or self._torn_down:
            return False
        if not self.is_ready:
            self._log.debug("input_dropped_before_prompt", size=len(data))
            return False
        self.process.write(data.encode() if isinstance(data, str) else data)
        return True

    async def teardown(self) -> None:
        """Terminate the process. Only the first call has any effect."""
        if self._torn_down:
            return
        self._torn_down = True
        self.detach()
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
        if self.process is None:
            return
        try:
            await self.process.terminate(self._config.terminate_timeout)
        except Exception as e:
            self._log.debug("session_teardown_failed", error=str(e))
        else:
            self._log.debug("session_process_terminated", pid=self.process.pid)


# =============================================================================
# Manager
# =============================================================================


class SessionManager:
    """Registry of open sessions keyed by caller-supplied ids.

    Operations on one id are serialized; different ids proceed
    independently.
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        snapshots: ResourceSnapshotManager,
        config: SessionConfig | None = None,
    ) -> None:
        self._kubectl = kubectl
        self._snapshots = snapshots
        self._config = config or SessionConfig()
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._active_id: str | None = None
        self._log = logger.bind(entity="session_manager")

    @contextlib.asynccontextmanager
    async def _locked(self, session_id: str) -> AsyncIterator[None]:
        """Serialize work on one id; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    @property
    def minimized_sessions(self) -> list[Session]:
        return [s for s in self._sessions.values() if s.minimized]

    @property
    def active_session(self) -> Session | None:
        if self._active_id is None:
            return None
        return self._sessions.get(self._active_id)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            raise SessionNotFoundError(session_id)
        return session

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(
        self,
        session_id: str,
        target: SessionTarget,
        kind: SessionKind = SessionKind.SHELL,
        view: SessionView | None = None,
        *,
        title: str | None = None,
        log_tail_lines: int | None = None,
    ) -> Session:
        """Open a session, or reactivate the existing one with this id.

        ``log_tail_lines`` overrides the configured history for log sessions.

        Raises:
            KubernetesNotFoundError: If the pod does not exist while
                resolving its default container.
            KubectlError: If kubectl cannot be started.
        """
        async with self._locked(session_id):
            existing = self._sessions.get(session_id)
            if existing is not None and not existing.closed:
                self._log.debug("session_reactivated", session_id=session_id)
                existing.state = SessionState.ACTIVE
                if view is not None:
                    existing.attach(view)
                self._active_id = session_id
                return existing

            target = await self.resolve_container(target)
            session = Session(session_id, kind, target, self._config, title)
            process = await self._spawn(session, view, log_tail_lines)
            session.start(process)
            session.state = SessionState.ACTIVE
            self._sessions[session_id] = session
            if view is not None:
                session.attach(view)
            self._active_id = session_id
            self._log.info(
                "session_opened",
                session_id=session_id,
                kind=kind.value,
                namespace=target.namespace,
                pod=target.pod,
                container=target.container,
            )
            return session

    async def _spawn(
        self, session: Session, view: SessionView | None, log_tail_lines: int | None = None
    ) -> ProcessHandle:
        target = session.target
        if session.kind is SessionKind.SHELL:
            args = self._kubectl.exec_args(
                target.namespace, target.pod, target.container, self._config.shell_command
            )
            return await self._kubectl.spawn_pty(
                args,
                columns=view.columns if view is not None else self._config.default_columns,
                rows=view.rows if view is not None else self._config.default_rows,
            )
        args = self._kubectl.logs_args(
            target.namespace,
            target.pod,
            target.container,
            tail_lines=log_tail_lines or self._config.log_tail_lines,
        )
        return await self._kubectl.spawn(args, merge_stderr=True)

    async def resolve_container(self, target: SessionTarget) -> SessionTarget:
        """Fill in the pod's first container when none was given."""
        if target.container:
            return target
        pod = await asyncio.to_thread(self._snapshots.get_pod, target.pod, target.namespace)
        if not pod.containers:
            return target
        return replace(target, container=pod.containers[0])

    async def minimize(self, session_id: str) -> Session:
        async with self._locked(session_id):
            session = self._require(session_id)
            session.state = SessionState.MINIMIZED
            session.detach()
            if self._active_id == session_id:
                self._active_id = None
            self._log.debug("session_minimized", session_id=session_id)
            return session

    async def restore(self, session_id: str, view: SessionView | None = None) -> Session:
        """Bring a session back, checking its pod still exists.

        Raises:
            SessionNotFoundError: If no open session has this id.
            SessionTargetGoneError: If the pod is gone; the session has
                been closed.
        """
        async with self._locked(session_id):
            session = self._require(session_id)
            target = session.target
            exists = await asyncio.to_thread(
                self._snapshots.pod_exists, target.pod, target.namespace
            )
            if not exists:
                self._log.info(
                    "session_target_gone",
                    session_id=session_id,
                    namespace=target.namespace,
                    pod=target.pod,
                )
                await self._close_locked(session)
                raise SessionTargetGoneError(session_id, target.pod, target.namespace)

            session.state = SessionState.ACTIVE
            if view is not None:
                session.attach(view)
            self._active_id = session_id
            self._log.debug("session_restored", session_id=session_id)
            return session

    async def close(self, session_id: str) -> bool:
        """Close a session. Returns False if it was not open."""
        async with self._locked(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            await self._close_locked(session)
            return True

    async def _close_locked(self, session: Session) -> None:
        session.state = SessionState.CLOSED
        self._sessions.pop(session.id, None)
        if self._active_id == session.id:
            self._active_id = None
        await session.teardown()
        self._log.info("session_closed", session_id=session.id)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    async def close_sessions_for_pod(self, namespace: str, pod: str) -> int:
        """Close every session targeting a pod. Returns how many were closed."""
        closed = 0
        for session in list(self._sessions.values()):
            if session.target.namespace == namespace and session.target.pod == pod:
                if await self.close(session.id):
                    closed += 1
        return closed

    async def prune_missing(self) -> list[str]:
        """Close sessions whose pods no longer exist.

        Returns:
            Ids of the sessions that were closed.
        """
        pods = {(s.target.namespace, s.target.pod) for s in self._sessions.values()}
        pruned: list[str] = []
        for namespace, pod in sorted(pods):
            if await asyncio.to_thread(self._snapshots.pod_exists, pod, namespace):
                continue
            ids = [
                s.id
                for s in self._sessions.values()
                if s.target.namespace == namespace and s.target.pod == pod
            ]
            for session_id in ids:
                if await self.close(session_id):
                    pruned.append(session_id)
        return pruned
