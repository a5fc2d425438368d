"""Shared console output and error handling for CLI commands."""

from collections.abc import Callable
from functools import wraps

import typer
from rich.console import Console, ConsoleRenderable
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hubblectl.hubble.errors import HubbleError, WaitError
from hubblectl.hubble.installer import ComponentState, InstallationStatus
from hubblectl.hubble.redaction import scrub_text

_STATE_STYLES = {
    ComponentState.READY: "green",
    ComponentState.UNKNOWN: "yellow",
    ComponentState.PROGRESSING: "cyan",
    ComponentState.FAILED: "red",
    ComponentState.DISABLED: "dim",
}


class CLIConsole:
    """Rich console wrapper for consistent CLI output."""

    def __init__(self, console: Console | None = None) -> None:
        """Initialize the CLI console.

        Args:
            console: Underlying rich console (a new one by default)
        """
        self.console = console or Console()

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print(msg)

    def info(self, msg: str) -> None:
        self.console.print(f"[cyan]ℹ[/cyan]  {msg}")

    def ok(self, msg: str) -> None:
        self.console.print(f"[green]✅[/green] {msg}")

    def error(self, msg: str) -> None:
        self.console.print(f"[red]❌[/red] {msg}")

    def warn(self, msg: str) -> None:
        self.console.print(f"[yellow]⚠️[/yellow]  {msg}")

    def handle_error(
        self, message: str, details: str | None = None, exit_code: int = 1
    ) -> None:
        """Handle an error by printing a message and exiting.

        Key material is scrubbed from both message and details.

        Args:
            message: Error message to display
            details: Optional additional details
            exit_code: Exit code to use
        """
        self.error(f"\n[bold red]{escape(scrub_text(message))}[/bold red]\n")
        if details:
            self.console.print(
                Panel(escape(scrub_text(details)), title="Details", border_style="red")
            )
        raise typer.Exit(exit_code)

    def print_status(self, status: InstallationStatus) -> None:
        """Print one row per component with its state."""
        table = Table(title="Hubble Status", show_header=True)
        table.add_column("Component", style="bold")
        table.add_column("State")
        table.add_column("Replicas", justify="right")
        table.add_column("Message", style="dim")
        for component in status.components.values():
            style = _STATE_STYLES.get(component.state, "white")
            replicas = (
                f"{component.ready_replicas}/{component.desired_replicas}"
                if component.desired_replicas
                else "-"
            )
            table.add_row(
                component.name,
                f"[{style}]{component.state.value}[/{style}]",
                replicas,
                escape(scrub_text(component.message)),
            )
        self.console.print(table)


def with_error_handling(func: Callable[..., None]) -> Callable[..., None]:
    """Decorator to wrap command functions with standard error handling.

    Wait failures are reported as warnings with the last observed status,
    other hubble errors as errors; both exit with status 1.

    Args:
        func: The command function to wrap

    Returns:
        Wrapped function with error handling
    """

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except WaitError as e:
            console.warn(escape(scrub_text(e.message)))
            if e.details:
                console.print(f"[dim]{escape(scrub_text(e.details))}[/dim]")
            console.print_status(e.status)
            raise typer.Exit(1) from None
        except HubbleError as e:
            console.handle_error(e.message, e.details)
        except KeyboardInterrupt:
            console.print("\n[dim]Operation cancelled by user.[/dim]")
            raise typer.Exit(130) from None

    return wrapper


# Shared console instance for consistent output
console = CLIConsole()
