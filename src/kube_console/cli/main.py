"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from kube_console import __version__
from kube_console.cli.commands import logs, port_forward, watch
from kube_console.logging.config import configure_logging

app = typer.Typer(
    name="kcon",
    help="Terminal console for watching and operating on Kubernetes workloads.",
    add_completion=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kcon version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
) -> None:
    """kube-console - watch resources, follow logs and forward ports."""
    configure_logging(verbose=verbose, debug=debug)


# Register subcommands
app.command(name="watch")(watch.watch)
app.command(name="logs")(logs.logs)
app.command(name="port-forward")(port_forward.port_forward)


if __name__ == "__main__":
    app()
