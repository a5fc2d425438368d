"""CLI context and dependency container."""

from __future__ import annotations

import os
from dataclasses import dataclass

import click
import typer

from hubblectl.cli.shared.console import CLIConsole, console
from hubblectl.hubble.manager import HubbleManager
from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController, get_k8s_controller


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    k8s_controller: KubernetesController
    constants: HubbleConstants
    kube_context: str | None = None
    namespace: str | None = None
    mode: str | None = None

    def manager(self) -> HubbleManager:
        """Build the HubbleManager for one command."""
        return HubbleManager(
            self.k8s_controller,
            constants=self.constants,
            console=self.console,
            mode=self.mode,
        )


def build_cli_context(
    kube_context: str | None = None, namespace: str | None = None
) -> CLIContext:
    """Build a fresh CLIContext."""
    constants = DEFAULT_CONSTANTS
    return CLIContext(
        console=console,
        k8s_controller=get_k8s_controller(kube_context),
        constants=constants,
        kube_context=kube_context,
        namespace=namespace,
        mode=os.environ.get(constants.MODE_ENV_VAR),
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
