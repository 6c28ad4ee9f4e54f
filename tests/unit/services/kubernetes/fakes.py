"""In-memory stand-ins for kubectl processes and terminal views."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from kube_console.integrations.kubernetes.models.workloads import PodSummary


def make_pod(
    name: str,
    namespace: str = "default",
    *,
    status: str = "Running",
    restarts: int = 0,
    containers: tuple[str, ...] = ("app",),
) -> PodSummary:
    return PodSummary(
        name=name,
        namespace=namespace,
        status=status,
        restarts=restarts,
        containers=containers,
    )


class FakeProcess:
    """ProcessHandle whose output is fed by the test; exits on demand."""

    def __init__(self, pid: int = 1000) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.written: list[bytes] = []
        self.sizes: list[tuple[int, int]] = []
        self.terminate_calls = 0
        self.stderr = ""
        self.stderr_read: list[bytes] = []
        self._output: asyncio.Queue[bytes] = asyncio.Queue()
        self._errors: asyncio.Queue[bytes] = asyncio.Queue()
        self._exited = asyncio.Event()

    def feed(self, data: bytes) -> None:
        self._output.put_nowait(data)

    def feed_stderr(self, data: bytes) -> None:
        self._errors.put_nowait(data)

    def exit(self, code: int = 0) -> None:
        if self.returncode is None:
            self.returncode = code
            self._output.put_nowait(b"")
            self._errors.put_nowait(b"")
            self._exited.set()

    async def read(self) -> bytes:
        if self.returncode is not None and self._output.empty():
            return b""
        return await self._output.get()

    async def read_line(self) -> bytes:
        return await self.read()

    async def read_stderr_chunk(self) -> bytes:
        if self.returncode is not None and self._errors.empty():
            return b""
        chunk = await self._errors.get()
        if chunk:
            self.stderr_read.append(chunk)
        return chunk

    async def read_stderr(self) -> str:
        return self.stderr

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def resize(self, columns: int, rows: int) -> None:
        self.sizes.append((columns, rows))

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    async def terminate(self, timeout: float = 3.0) -> None:
        self.terminate_calls += 1
        await asyncio.sleep(0)
        self.exit(-15)


class FakeView:
    """SessionView that records output and the bound resize handler."""

    def __init__(self, columns: int = 120, rows: int = 40) -> None:
        self.columns = columns
        self.rows = rows
        self.output = bytearray()
        self.resize_handler: Callable[[int, int], None] | None = None

    def write(self, data: bytes) -> None:
        self.output += data

    def bind_resize(self, handler: Callable[[int, int], None] | None) -> None:
        self.resize_handler = handler

    def fire_resize(self, columns: int, rows: int) -> None:
        self.columns, self.rows = columns, rows
        if self.resize_handler is not None:
            self.resize_handler(columns, rows)
