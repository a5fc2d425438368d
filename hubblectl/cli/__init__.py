"""Main CLI application module.

This module provides the main entry point for hubblectl, which manages
Hubble (relay and UI) in a Kubernetes cluster:

- enable: Install or update Hubble
- disable: Remove Hubble
- port-forward: Forward the relay port locally
- ui: Open the Hubble UI
"""

from typing import Annotated

import typer
from dotenv import load_dotenv

from .commands import disable, enable, port_forward, ui
from .context import build_cli_context

# Create the main CLI application
app = typer.Typer(
    help="🔭 hubblectl - Hubble lifecycle management",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def callback(
    ctx: typer.Context,
    context: Annotated[
        str | None,
        typer.Option("--context", help="Kubernetes configuration context"),
    ] = None,
    namespace: Annotated[
        str | None,
        typer.Option(
            "--namespace",
            "-n",
            help="Namespace Hubble is running in (searched for when omitted)",
        ),
    ] = None,
) -> None:
    """Manage Hubble observability in a Kubernetes cluster."""
    ctx.obj = build_cli_context(kube_context=context, namespace=namespace)


app.command("enable")(enable)
app.command("disable")(disable)
app.command("port-forward")(port_forward)
app.command("ui")(ui)


def main() -> None:
    """Main entry point for the CLI."""
    # .env never overrides the process environment
    load_dotenv(override=False)
    app()


if __name__ == "__main__":
    main()
