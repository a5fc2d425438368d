"""Installation engines for Hubble components.

Two variants share the `Installer` interface:
- ImperativeInstaller ("classic"): reconciles individual objects
- HelmInstaller ("helm"): deploys a Helm release

The variant is chosen once per invocation by `build_installer`, from the
``HUBBLE_CLI_MODE`` environment variable when no mode is given.
"""

from __future__ import annotations

import os
from typing import Any

from hubblectl.infra.constants import DEFAULT_CONSTANTS
from hubblectl.infra.k8s import KubernetesController

from ..errors import ConfigError
from .base import (
    ComponentState,
    ComponentStatus,
    InstallationStatus,
    Installer,
    component_names,
    submitted_status,
)
from .helm import HelmInstaller
from .imperative import ImperativeInstaller

INSTALLERS: dict[str, type[Installer]] = {
    ImperativeInstaller.kind: ImperativeInstaller,
    HelmInstaller.kind: HelmInstaller,
}


def installer_mode(mode: str | None = None) -> str:
    """Return the installer kind from ``mode`` or the environment."""
    resolved = (mode or os.environ.get(DEFAULT_CONSTANTS.MODE_ENV_VAR) or "classic").lower()
    if resolved not in INSTALLERS:
        raise ConfigError(
            f"Unknown installer mode {resolved!r}",
            details=f"Set {DEFAULT_CONSTANTS.MODE_ENV_VAR} to one of: {', '.join(INSTALLERS)}",
        )
    return resolved


def build_installer(
    controller: KubernetesController, mode: str | None = None, **kwargs: Any
) -> Installer:
    """Construct the installer for ``mode`` (``classic`` or ``helm``)."""
    return INSTALLERS[installer_mode(mode)](controller, **kwargs)


__all__ = [
    "ComponentState",
    "ComponentStatus",
    "HelmInstaller",
    "ImperativeInstaller",
    "InstallationStatus",
    "Installer",
    "build_installer",
    "component_names",
    "installer_mode",
    "submitted_status",
]
