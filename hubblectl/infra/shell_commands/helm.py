"""Helm command abstractions.

This module provides commands for Helm release management: rendering,
installation/upgrade and uninstallation. Values are always passed
on stdin (``-f -``) so generated key material never touches the disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


def _chart_args(chart: str | Path, repo: str | None, version: str | None) -> list[str]:
    args = [str(chart)]
    if repo:
        args.extend(["--repo", repo])
    if version:
        args.extend(["--version", version])
    return args


class HelmCommands:
    """Helm-related shell commands.

    Provides operations for:
    - Rendering (template)
    - Release management (upgrade --install, uninstall)
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize Helm commands.

        Args:
            runner: Command runner for executing shell commands
        """
        self._runner = runner

    # =========================================================================
    # Rendering
    # =========================================================================

    def template(
        self,
        release_name: str,
        chart: str | Path,
        namespace: str,
        values_yaml: str,
        *,
        repo: str | None = None,
        version: str | None = None,
    ) -> CommandResult:
        """Render a chart locally without contacting the release store.

        Args:
            release_name: Release name used while rendering
            chart: Chart directory path or chart name in ``repo``
            namespace: Namespace used while rendering
            values_yaml: Values document passed on stdin
            repo: Chart repository URL for named charts
            version: Chart version constraint

        Returns:
            CommandResult whose stdout holds the rendered manifests
        """
        cmd = [
            "helm",
            "template",
            release_name,
            *_chart_args(chart, repo, version),
            "--namespace",
            namespace,
            "-f",
            "-",
        ]
        return self._runner.run(cmd, input=values_yaml)

    # =========================================================================
    # Release Management
    # =========================================================================

    def upgrade_install(
        self,
        release_name: str,
        chart: str | Path,
        namespace: str,
        values_yaml: str,
        *,
        repo: str | None = None,
        version: str | None = None,
        timeout: str = "10m",
        wait: bool = False,
    ) -> CommandResult:
        """Deploy or upgrade a Helm release.

        Uses `helm upgrade --install` to idempotently deploy a chart. Values
        are read from stdin and replace (not reuse) any previous release values,
        since merging already happened before this call.

        Example:
            >>> helm.upgrade_install(
            ...     "hubble",
            ...     Path("./charts/hubble"),
            ...     "kube-system",
            ...     "hubble:\\n  relay:\\n    enabled: true\\n",
            ... )
        """
        cmd = [
            "helm",
            "upgrade",
            "--install",
            release_name,
            *_chart_args(chart, repo, version),
            "--namespace",
            namespace,
            "--reset-values",
            "-f",
            "-",
            "--timeout",
            timeout,
        ]
        if wait:
            cmd.append("--wait")
        return self._runner.run(cmd, input=values_yaml)

    def uninstall(
        self,
        release_name: str,
        namespace: str,
        *,
        wait: bool = True,
    ) -> CommandResult:
        """Uninstall a Helm release.

        Args:
            release_name: Name of the release to uninstall
            namespace: Kubernetes namespace
            wait: Whether to wait for resources to be deleted

        Returns:
            CommandResult with uninstall status
        """
        cmd = ["helm", "uninstall", release_name, "-n", namespace]
        if wait:
            cmd.append("--wait")
        return self._runner.run(cmd)

def is_release_not_found(result: CommandResult) -> bool:
    """Whether a failed helm command failed only because the release is absent."""
    return not result.success and "not found" in result.stderr.lower()
