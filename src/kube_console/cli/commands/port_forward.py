"""``kcon port-forward``: forward local ports to a pod until Ctrl+C."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from kube_console.cli.commands import base
from kube_console.cli.commands.base import (
    NamespaceOption,
    console,
    handle_k8s_error,
    parse_port_mappings,
)
from kube_console.integrations.kubernetes.exceptions import KubernetesError

POLL_SECONDS = 1.0


async def _forward(pod: str, namespace: str | None, ports: list[tuple[int, int]]) -> None:
    async with base.get_services() as services:
        ns = namespace or services.client.default_namespace
        manager = services.port_forwards
        for local_port, remote_port in ports:
            session = await manager.start(ns, pod, remote_port, local_port)
            console.print(f"Forwarding {session.display_name}")

        console.print("[dim]Press Ctrl+C to stop port forwarding.[/dim]")
        while manager.sessions:
            await asyncio.sleep(POLL_SECONDS)
        console.print("[yellow]All port forwards exited.[/yellow]")


def port_forward(
    pod: Annotated[str, typer.Argument(help="Pod name")],
    port_mappings: Annotated[
        list[str],
        typer.Argument(help="Port mappings: [local:]remote (e.g., 8080:80)"),
    ],
    namespace: NamespaceOption = None,
) -> None:
    """Forward local ports to a pod.

    Examples:
        kcon port-forward my-pod 8080:80
        kcon port-forward my-pod 3000 9090:9090 -n staging
    """
    ports = parse_port_mappings(port_mappings)
    try:
        asyncio.run(_forward(pod, namespace, ports))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping port forwarding...[/dim]")
    except KubernetesError as e:
        handle_k8s_error(e)
