"""Helm installer: deploys Hubble as a Helm release."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from loguru import logger

from hubblectl.infra.shell_commands import CommandRunner, HelmCommands, is_release_not_found

from ..errors import ConfigError, InstallError
from ..parameters import Parameters
from ..redaction import scrub_text
from ..values import ResolvedValues
from .base import InstallationStatus, Installer, submitted_status


class HelmInstaller(Installer):
    """Installs Hubble with ``helm upgrade --install``.

    The chart comes from ``--chart-directory`` when given, otherwise from
    ``HELM_CHART_NAME`` in ``HELM_REPOSITORY`` if configured. Helm runs in a
    worker thread so the event loop stays responsive.
    """

    kind = "helm"

    def __init__(self, *args: Any, helm: HelmCommands | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.helm = helm or HelmCommands(CommandRunner())

    def _chart(self, params: Parameters) -> tuple[str | Path, str | None]:
        if params.chart_directory is not None:
            return params.chart_directory, None
        if self.constants.HELM_CHART_NAME:
            return self.constants.HELM_CHART_NAME, self.constants.HELM_REPOSITORY
        raise ConfigError(
            "No Helm chart configured for the hubble release",
            details=(
                "Pass --chart-directory with a chart that renders the hubble.* values. "
                f"{self.constants.HELM_REPOSITORY} ships them only inside the cilium chart."
            ),
        )

    async def render(self, params: Parameters, values: ResolvedValues) -> str:
        """Render the chart with ``values`` without touching the cluster.

        Returns:
            The rendered manifests

        Raises:
            ConfigError: If no chart is configured
            InstallError: If helm template fails
        """
        chart, repo = self._chart(params)
        result = await asyncio.to_thread(
            self.helm.template,
            self.constants.HELM_RELEASE_NAME,
            chart,
            self._namespace(params),
            values.to_yaml(),
            repo=repo,
        )
        if not result.success:
            raise InstallError("Unable to render Helm chart", details=scrub_text(result.stderr))
        return result.stdout

    async def apply(self, params: Parameters, values: ResolvedValues) -> InstallationStatus:
        namespace = self._namespace(params)
        chart, repo = self._chart(params)
        ca = await self.ca_manager.ensure(params, values)
        folded = ca.fold_into(values)

        self.console.info(
            f"Installing Helm release {self.constants.HELM_RELEASE_NAME} in namespace {namespace}"
        )
        result = await asyncio.to_thread(
            self.helm.upgrade_install,
            self.constants.HELM_RELEASE_NAME,
            chart,
            namespace,
            folded.to_yaml(),
            repo=repo,
            timeout=self.constants.HELM_TIMEOUT,
        )
        if not result.success:
            raise InstallError(
                f"Helm upgrade of release {self.constants.HELM_RELEASE_NAME} failed",
                details=scrub_text(result.stderr.strip()),
            )
        logger.info(f"Applied Helm release {namespace}/{self.constants.HELM_RELEASE_NAME}")

        await self._save_record(params, folded)
        return submitted_status(values, self.constants)

    async def remove(self, params: Parameters, purge: bool = True) -> None:
        namespace = self._namespace(params)
        self.console.info(
            f"Uninstalling Helm release {self.constants.HELM_RELEASE_NAME} "
            f"from namespace {namespace}"
        )
        result = await asyncio.to_thread(
            self.helm.uninstall, self.constants.HELM_RELEASE_NAME, namespace
        )
        if not result.success:
            if not is_release_not_found(result):
                raise InstallError(
                    f"Helm uninstall of release {self.constants.HELM_RELEASE_NAME} failed",
                    details=scrub_text(result.stderr.strip()),
                )
            logger.debug(f"Release {self.constants.HELM_RELEASE_NAME} already absent")
        await self._forget(params, purge)
