"""Shared options, service construction and error output for CLI commands."""

from __future__ import annotations

import re
from typing import Annotated

import typer
from rich.console import Console

from kube_console.app import ConsoleServices
from kube_console.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
)
from kube_console.integrations.kubernetes.kubectl import KubectlError
from kube_console.services.kubernetes.port_forward_manager import PortInUseError

console = Console()

# Port mapping regex: matches "8080:80" or "80"
_PORT_MAPPING_RE = re.compile(r"^(\d+)(?::(\d+))?$")


# =============================================================================
# Common Typer Option Annotations
# =============================================================================

NamespaceOption = Annotated[
    str | None,
    typer.Option(
        "--namespace",
        "-n",
        help="Kubernetes namespace (defaults to config or 'default')",
    ),
]

ContainerOption = Annotated[
    str | None,
    typer.Option("--container", "-c", help="Container name (defaults to the first one)"),
]


def get_services() -> ConsoleServices:
    """Build the service container from config and environment."""
    return ConsoleServices.from_config()


def parse_port_mappings(mappings: list[str]) -> list[tuple[int, int]]:
    """Parse "local:remote" or "port" (same port for both) mappings.

    Returns:
        List of (local_port, remote_port) tuples.

    Raises:
        typer.BadParameter: If any mapping is invalid.
    """
    ports: list[tuple[int, int]] = []
    for mapping in mappings:
        match = _PORT_MAPPING_RE.match(mapping.strip())
        if not match:
            raise typer.BadParameter(
                f"Invalid port mapping '{mapping}'. Use format 'local:remote' or 'port'."
            )
        first = int(match.group(1))
        second = int(match.group(2)) if match.group(2) else first
        for port in (first, second):
            if not 0 < port < 65536:
                raise typer.BadParameter(f"Port {port} is out of range.")
        ports.append((first, second))
    return ports


# =============================================================================
# Error Handling
# =============================================================================


def handle_k8s_error(error: KubernetesError) -> None:
    """Print a user-friendly error and exit.

    Raises:
        typer.Exit: Always exits with code 1.
    """
    if isinstance(error, KubernetesTimeoutError):
        console.print("[red]Error:[/red] Operation timed out")
        console.print(f"  {error.message}")
        console.print(
            "\n[dim]Hint: Try increasing the timeout in the config file or KCON_TIMEOUT.[/dim]"
        )

    elif isinstance(error, KubernetesConnectionError):
        console.print("[red]Error:[/red] Cannot connect to Kubernetes cluster")
        console.print(f"  {error.message}")
        if error.original_error:
            console.print(f"  Cause: {error.original_error}")
        console.print(
            "\n[dim]Hint: Check that your kubeconfig is valid and the cluster is reachable.[/dim]"
        )

    elif isinstance(error, KubernetesAuthError):
        console.print("[red]Error:[/red] Authentication/authorization failed")
        console.print(f"  {error.message}")
        console.print("\n[dim]Hint: Check your credentials, token, or RBAC permissions.[/dim]")

    elif isinstance(error, KubernetesNotFoundError):
        console.print("[red]Error:[/red] Resource not found")
        console.print(f"  {error.message}")

    elif isinstance(error, PortInUseError):
        console.print(f"[red]Error:[/red] {error.message}")
        console.print("\n[dim]Hint: Pick another local port.[/dim]")

    elif isinstance(error, KubectlError):
        console.print(f"[red]Error:[/red] {error.message}")
        if error.stderr:
            console.print(f"  {error.stderr.strip()}")

    else:
        console.print(f"[red]Error:[/red] {error.message}")
        if error.status_code:
            console.print(f"  HTTP Status: {error.status_code}")

    raise typer.Exit(1)
