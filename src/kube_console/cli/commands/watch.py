"""``kcon watch``: print a resource table whenever it changes."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Annotated, Any

import structlog
import typer
from rich.table import Table

from kube_console.cli.commands import base
from kube_console.cli.commands.base import console, handle_k8s_error
from kube_console.integrations.kubernetes.exceptions import KubernetesError
from kube_console.services.kubernetes.resource_watch import RESOURCE_KINDS

logger = structlog.get_logger()

RETRY_DELAY_SECONDS = 5.0

TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "pods": ("namespace", "name", "status", "restarts", "age"),
    "deployments": (
        "namespace",
        "name",
        "ready_replicas",
        "replicas",
        "available_replicas",
        "updated_replicas",
        "age",
    ),
    "cronjobs": ("namespace", "name", "schedule", "suspended", "active_jobs", "age"),
    "secrets": ("namespace", "name", "type", "data_count", "age"),
    "namespaces": ("name", "phase", "age"),
}


def build_table(kind: str, items: Sequence[Any]) -> Table:
    columns = TABLE_COLUMNS[kind]
    table = Table(title=f"{kind.capitalize()} ({len(items)})")
    for column in columns:
        style = "cyan" if column == "name" else None
        table.add_column(column.replace("_", " ").title(), style=style)
    for item in items:
        table.add_row(*(str(getattr(item, column, "") or "") for column in columns))
    return table


async def _watch(kind: str, namespaces: list[str] | None, once: bool) -> None:
    async with base.get_services() as services:
        while True:
            subscription = services.watches.watch(kind, namespaces)
            async for event in subscription:
                if event.failure is not None:
                    console.print(f"[red]Error:[/red] {event.failure.message}")
                    continue
                console.print(build_table(kind, event.snapshot or ()))
                if once:
                    await subscription.cancel()
                    return

            if not services.coordinator.has_error:
                return
            console.print("[dim]Connection lost. Retrying...[/dim]")
            while not await services.coordinator.retry():
                await asyncio.sleep(RETRY_DELAY_SECONDS)
            console.print("[green]Reconnected.[/green]")


def watch(
    kind: Annotated[str, typer.Argument(help=f"Resource kind: {', '.join(RESOURCE_KINDS)}")],
    namespace: Annotated[
        list[str] | None,
        typer.Option("--namespace", "-n", help="Namespace to watch (repeatable)"),
    ] = None,
    once: Annotated[
        bool,
        typer.Option("--once", help="Print the first snapshot and exit"),
    ] = False,
) -> None:
    """Watch a resource list and print it whenever it changes.

    Examples:
        kcon watch pods -n default -n kube-system
        kcon watch deployments --once
    """
    if kind not in RESOURCE_KINDS:
        raise typer.BadParameter(
            f"Unknown resource kind '{kind}'. Choose from: {', '.join(RESOURCE_KINDS)}"
        )
    logger.debug("watch_command", kind=kind, namespaces=namespace)
    try:
        asyncio.run(_watch(kind, namespace, once))
    except KeyboardInterrupt:
        console.print("\n[dim]Watch stopped.[/dim]")
    except KubernetesError as e:
        handle_k8s_error(e)
