"""``kcon logs``: follow a pod's logs through a log session."""

from __future__ import annotations

import asyncio
import shutil
import sys
import time
from collections.abc import Callable
from typing import Annotated

import typer

from kube_console.cli.commands import base
from kube_console.cli.commands.base import (
    ContainerOption,
    NamespaceOption,
    console,
    handle_k8s_error,
)
from kube_console.integrations.kubernetes.exceptions import KubernetesError
from kube_console.services.kubernetes.session_manager import SessionKind, SessionTarget


class StdoutView:
    """Session view that writes raw output to the terminal."""

    def __init__(self) -> None:
        size = shutil.get_terminal_size()
        self.columns = size.columns
        self.rows = size.lines

    def write(self, data: bytes) -> None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    def bind_resize(self, handler: Callable[[int, int], None] | None) -> None:
        return None


async def _follow(
    pod: str | None,
    job: str | None,
    namespace: str | None,
    container: str | None,
    tail: int | None,
) -> int | None:
    async with base.get_services() as services:
        namespace = namespace or services.client.default_namespace
        if job:
            job_pod = await asyncio.to_thread(services.snapshots.find_job_pod, job, namespace)
            pod = job_pod.name
            console.print(f"[dim]Following pod {pod} of job {job}[/dim]")
        assert pod is not None
        target = SessionTarget(namespace, pod, container)
        session_id = f"logs-{namespace}-{pod}-{container or ''}-{int(time.time() * 1000)}"
        session = await services.sessions.open(
            session_id, target, SessionKind.LOG, StdoutView(), log_tail_lines=tail
        )
        await session.wait()
        return session.returncode


def logs(
    pod: Annotated[str | None, typer.Argument(help="Pod name")] = None,
    job: Annotated[
        str | None,
        typer.Option("--job", "-j", help="Follow the first pod of this Job instead"),
    ] = None,
    namespace: NamespaceOption = None,
    container: ContainerOption = None,
    tail: Annotated[
        int | None,
        typer.Option("--tail", help="Lines of history to show first (default from config)"),
    ] = None,
) -> None:
    """Follow pod logs until the stream ends or Ctrl+C.

    A non-zero kubectl exit (for example an unknown container) exits with 1.

    Examples:
        kcon logs my-pod
        kcon logs my-pod -c sidecar --tail 100
        kcon logs --job db-migrate -n apps
    """
    if (pod is None) == (job is None):
        console.print("[red]Error:[/red] Pass either a pod name or --job")
        raise typer.Exit(1)

    returncode: int | None = None
    try:
        returncode = asyncio.run(_follow(pod, job, namespace, container, tail))
    except KeyboardInterrupt:
        console.print("\n[dim]Log streaming stopped.[/dim]")
    except KubernetesError as e:
        handle_k8s_error(e)

    if returncode:
        console.print(f"[red]Error:[/red] kubectl logs exited with code {returncode}")
        raise typer.Exit(1)
