"""kubectl binary wrapper for process-backed operations.

Shell sessions, log tails, port forwards and file copies are run through
``kubectl`` child processes rather than the Python client, so their
lifetime is an operating-system process that can be observed and killed.
"""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import os
import pty
import shutil
import signal
import struct
import termios
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from kube_console.integrations.kubernetes.exceptions import KubernetesError

logger = structlog.get_logger()

KUBECTL_TIMEOUT_SECONDS = 120
READ_CHUNK_SIZE = 4096


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class KubectlError(KubernetesError):
    """Base exception for kubectl invocations."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class KubectlNotFoundError(KubectlError):
    """Raised when the kubectl binary is not available."""

    def __init__(self) -> None:
        super().__init__(
            message="kubectl binary not found in PATH. "
            "Install from: https://kubernetes.io/docs/tasks/tools/",
        )


class KubectlCommandError(KubectlError):
    """Raised when a kubectl command exits non-zero."""

    def __init__(self, message: str, stderr: str | None = None, returncode: int | None = None):
        super().__init__(message=message, stderr=stderr)
        self.returncode = returncode


# ---------------------------------------------------------------------------
# Process handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a short-lived kubectl command."""

    returncode: int
    stdout: str
    stderr: str


class ProcessHandle(Protocol):
    """Long-lived child process that sessions and forwards own."""

    @property
    def pid(self) -> int | None: ...

    @property
    def returncode(self) -> int | None: ...

    async def read(self) -> bytes: ...

    def write(self, data: bytes) -> None: ...

    def resize(self, columns: int, rows: int) -> None: ...

    async def wait(self) -> int: ...

    async def terminate(self, timeout: float = 3.0) -> None: ...


async def terminate_process(process: asyncio.subprocess.Process, timeout: float) -> None:
    """SIGTERM a child, escalating to SIGKILL after ``timeout`` seconds.

    An already-exited process is not an error.
    """
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout)
    except TimeoutError:
        logger.debug("process_kill_after_timeout", pid=process.pid, timeout=timeout)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


def _set_winsize(fd: int, columns: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, columns, 0, 0))


class PtyProcess:
    """A child process attached to a local pseudo-terminal.

    Output is pushed into a queue from an event-loop reader on the master
    side. ``read`` returns ``b""`` once the child closed the terminal.
    """

    def __init__(self, process: asyncio.subprocess.Process, master_fd: int) -> None:
        self._process = process
        self._master_fd = master_fd
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self._reading = True
        self._eof = False
        self._terminated = False
        self._loop.add_reader(master_fd, self._on_readable)

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, READ_CHUNK_SIZE)
        except OSError:
            # Linux reports EIO on the master once the slave side is closed.
            data = b""
        if not data:
            self._stop_reading()
            self._eof = True
            self._queue.put_nowait(b"")
            return
        self._queue.put_nowait(data)

    def _stop_reading(self) -> None:
        if self._reading:
            self._reading = False
            self._loop.remove_reader(self._master_fd)

    async def read(self) -> bytes:
        if self._eof and self._queue.empty():
            return b""
        return await self._queue.get()

    def write(self, data: bytes) -> None:
        if self._terminated:
            return
        os.write(self._master_fd, data)

    def resize(self, columns: int, rows: int) -> None:
        """Set the terminal size and tell kubectl to forward it.

        The child is not given the pty as its controlling terminal, so the
        kernel does not raise SIGWINCH by itself.
        """
        if self._terminated:
            return
        _set_winsize(self._master_fd, columns, rows)
        if self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.send_signal(signal.SIGWINCH)

    async def wait(self) -> int:
        return await self._process.wait()

    async def terminate(self, timeout: float = 3.0) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._stop_reading()
        try:
            await terminate_process(self._process, timeout)
        finally:
            with contextlib.suppress(OSError):
                os.close(self._master_fd)
            self._eof = True
            self._queue.put_nowait(b"")


class PipedProcess:
    """A child process with piped stdout (log tails, port forwards)."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._terminated = False

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def read(self) -> bytes:
        if self._process.stdout is None:
            return b""
        return await self._process.stdout.read(READ_CHUNK_SIZE)

    async def read_line(self) -> bytes:
        if self._process.stdout is None:
            return b""
        return await self._process.stdout.readline()

    async def read_stderr_chunk(self) -> bytes:
        if self._process.stderr is None:
            return b""
        return await self._process.stderr.read(READ_CHUNK_SIZE)

    async def read_stderr(self) -> str:
        if self._process.stderr is None:
            return ""
        data = await self._process.stderr.read()
        return data.decode("utf-8", errors="replace")

    def write(self, data: bytes) -> None:
        raise KubectlError("process does not accept input")

    def resize(self, columns: int, rows: int) -> None:
        return None

    async def wait(self) -> int:
        return await self._process.wait()

    async def terminate(self, timeout: float = 3.0) -> None:
        if self._terminated:
            return
        self._terminated = True
        await terminate_process(self._process, timeout)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class KubectlClient:
    """Builds and runs kubectl commands against the active context."""

    def __init__(
        self,
        binary_path: str = "kubectl",
        *,
        context: str | None = None,
        kubeconfig: str | None = None,
        term: str = "xterm-256color",
    ) -> None:
        """Initialize the kubectl client.

        Args:
            binary_path: kubectl path or name to look up on PATH.
            context: kubeconfig context passed as ``--context``.
            kubeconfig: kubeconfig file passed as ``--kubeconfig``.
            term: TERM value exported to interactive shells.

        Raises:
            KubectlNotFoundError: If the binary cannot be found.
        """
        self._binary = self._find_binary(binary_path)
        self._context = context
        self._kubeconfig = kubeconfig
        self._term = term
        self._log = logger.bind(binary=self._binary, context=context)

    @staticmethod
    def _find_binary(binary_path: str) -> str:
        path = Path(binary_path).expanduser()
        if path.is_absolute() or os.sep in binary_path:
            if not path.exists():
                raise KubectlNotFoundError()
            return str(path.resolve())
        found = shutil.which(binary_path)
        if not found:
            raise KubectlNotFoundError()
        return found

    def command(self, *args: str) -> list[str]:
        """Full argv for a kubectl invocation, including context flags."""
        cmd = [self._binary]
        if self._kubeconfig:
            cmd += ["--kubeconfig", self._kubeconfig]
        if self._context:
            cmd += ["--context", self._context]
        return [*cmd, *args]

    # -----------------------------------------------------------------------
    # Argument builders
    # -----------------------------------------------------------------------

    @staticmethod
    def exec_args(
        namespace: str,
        pod: str,
        container: str | None,
        command: list[str],
        *,
        interactive: bool = True,
    ) -> list[str]:
        args = ["exec"]
        if interactive:
            args.append("-it")
        args += ["-n", namespace, pod]
        if container:
            args += ["-c", container]
        return [*args, "--", *command]

    @staticmethod
    def logs_args(
        namespace: str,
        pod: str,
        container: str | None,
        *,
        tail_lines: int,
        follow: bool = True,
    ) -> list[str]:
        args = ["logs", "-n", namespace, pod]
        if container:
            args += ["-c", container]
        args.append(f"--tail={tail_lines}")
        if follow:
            args.append("--follow")
        return args

    @staticmethod
    def port_forward_args(
        namespace: str,
        pod: str,
        container_port: int,
        local_port: int,
        *,
        address: str = "127.0.0.1",
    ) -> list[str]:
        return [
            "port-forward",
            "-n",
            namespace,
            f"pod/{pod}",
            f"{local_port}:{container_port}",
            f"--address={address}",
        ]

    @staticmethod
    def cp_args(source: str, destination: str, container: str | None) -> list[str]:
        args = ["cp", source, destination]
        if container:
            args += ["-c", container]
        return args

    # -----------------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------------

    async def run(
        self,
        args: list[str],
        *,
        timeout: float = KUBECTL_TIMEOUT_SECONDS,
        check: bool = True,
    ) -> CommandResult:
        """Run a short kubectl command and capture its output.

        Raises:
            KubectlCommandError: On non-zero exit when ``check`` is set.
            KubectlError: On timeout.
        """
        cmd = self.command(*args)
        self._log.debug("running_kubectl_command", args=args)
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except TimeoutError as e:
            await terminate_process(process, 1.0)
            raise KubectlError(message=f"kubectl command timed out after {timeout}s") from e

        result = CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise KubectlCommandError(
                message=f"kubectl command failed: {detail}",
                stderr=result.stderr,
                returncode=result.returncode,
            )
        return result

    async def spawn(self, args: list[str], *, merge_stderr: bool = False) -> PipedProcess:
        """Start a long-lived kubectl process with piped output.

        With ``merge_stderr`` kubectl's error lines arrive on stdout, in order
        with its regular output.
        """
        cmd = self.command(*args)
        self._log.debug("spawning_kubectl_process", args=args, merge_stderr=merge_stderr)
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        return PipedProcess(process)

    async def spawn_pty(self, args: list[str], *, columns: int, rows: int) -> PtyProcess:
        """Start kubectl inside a pseudo-terminal of the given size."""
        cmd = self.command(*args)
        self._log.debug("spawning_kubectl_pty", args=args, columns=columns, rows=rows)
        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(master_fd, columns, rows)
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env={**os.environ, "TERM": self._term},
                start_new_session=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        os.set_blocking(master_fd, False)
        return PtyProcess(process, master_fd)
