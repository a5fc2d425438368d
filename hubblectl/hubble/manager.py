"""Orchestration of the enable, disable, port-forward and ui workflows."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController, get_namespace
from hubblectl.utils.console_like import ConsoleLike, coalesce_console

from .certs import CertificateAuthorityManager
from .errors import ConfigError
from .installer import InstallationStatus, Installer, build_installer
from .parameters import Parameters
from .readiness import ReadinessWaiter
from .redaction import redact_values
from .tunnel import ClusterTarget, TunnelManager, TunnelSession, TunnelState
from .values import ConfigMerger, ResolvedValues
from .values_store import PersistedValuesRecord, ValuesStore


class HubbleManager:
    """Runs one Hubble workflow against a cluster.

    Holds the collaborators for one invocation; the CLI builds it from the
    CLIContext and calls exactly one of the public methods.
    """

    def __init__(
        self,
        controller: KubernetesController,
        *,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
        console: ConsoleLike | None = None,
        mode: str | None = None,
        installer: Installer | None = None,
        merger: ConfigMerger | None = None,
        values_store: ValuesStore | None = None,
        waiter: ReadinessWaiter | None = None,
        tunnels: TunnelManager | None = None,
    ) -> None:
        self.controller = controller
        self.constants = constants
        self.console = coalesce_console(console)
        self.merger = merger or ConfigMerger(constants)
        self.values_store = values_store or ValuesStore(controller, constants)
        self.waiter = waiter or ReadinessWaiter(controller, constants)
        self.tunnels = tunnels or TunnelManager(controller, constants)
        self.installer = installer or build_installer(
            controller,
            mode,
            ca_manager=CertificateAuthorityManager(controller, constants),
            values_store=self.values_store,
            constants=constants,
            console=self.console,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _recover(self, params: Parameters) -> tuple[str, PersistedValuesRecord | None]:
        """Find the persisted record and the namespace Hubble lives in."""
        record = await self.values_store.find(params.helm_values_secret_name, params.namespace)
        if params.namespace:
            return params.namespace, record
        if record is not None:
            logger.debug(f"Recovered namespace {record.namespace} from values secret")
            return record.namespace, record
        return get_namespace(), None

    def _display_tree(self, params: Parameters, values: ResolvedValues) -> dict[str, Any]:
        tree = values.as_dict()
        return redact_values(tree) if params.redact_helm_certificate_keys else tree

    def _write_values_file(self, path: Path, params: Parameters, values: ResolvedValues) -> None:
        content = yaml.safe_dump(
            self._display_tree(params, values), sort_keys=True, default_flow_style=False
        )
        try:
            path.expanduser().write_text(content, encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                f"Unable to write values file {path}", details=str(e.strerror or e)
            ) from e
        self.console.ok(f"Wrote Helm values to {path}")

    # =========================================================================
    # Workflows
    # =========================================================================

    async def enable(self, params: Parameters) -> InstallationStatus | None:
        """Install or update Hubble.

        Returns:
            Final status, or None when only the values were printed
        """
        namespace = get_namespace(params.namespace)
        prior = await self.values_store.load_optional(params.helm_values_secret_name, namespace)
        if prior is not None and prior.installer and prior.installer != self.installer.kind:
            self.console.warn(
                f"Hubble was previously enabled with the {prior.installer} installer; "
                f"continuing with {self.installer.kind}"
            )

        values = self.merger.resolve(
            params, prior.values if prior else None, namespace=namespace
        )
        resolved = params.resolved(values, namespace)

        if params.helm_gen_values_file is not None:
            self._write_values_file(params.helm_gen_values_file, params, values)

        if params.dry_run_helm_values:
            self.console.print(
                yaml.safe_dump(
                    self._display_tree(params, values), sort_keys=True, default_flow_style=False
                )
            )
            return None

        status = await self.installer.apply(resolved, values)
        self.console.ok(f"Hubble configuration applied in namespace {namespace}")

        if not params.wait:
            return status

        self.console.info(f"Waiting up to {params.wait_duration:g}s for Hubble to be ready")
        status = await self.waiter.wait_ready(resolved, params.wait_duration)
        self.console.ok("Hubble is ready")
        return status

    async def disable(self, params: Parameters) -> None:
        """Remove Hubble, its values secret and (unless keep_ca) the CA."""
        namespace, record = await self._recover(params)
        if record is not None and record.installer and record.installer != self.installer.kind:
            self.console.warn(
                f"Hubble was enabled with the {record.installer} installer but "
                f"{self.installer.kind} is selected; some objects may remain"
            )
        await self.installer.remove(
            params.model_copy(update={"namespace": namespace}), purge=not params.keep_ca
        )
        self.console.ok(f"Hubble disabled in namespace {namespace}")

    async def _forward(
        self, target: ClusterTarget, local_port: int, browser_url: str | None
    ) -> None:
        session = await self.tunnels.start(local_port, target, browser_url=browser_url)
        self.console.ok(f"Forwarding localhost:{local_port} -> {target}")
        try:
            await self._follow(session)
        finally:
            await self.tunnels.stop(session)

    async def _follow(self, session: TunnelSession) -> None:
        """Report tunnel transitions until the session closes."""
        lost = False
        while True:
            event = await session.events.get()
            if event.state == TunnelState.CLOSED:
                return
            if event.state == TunnelState.DISCONNECTED:
                lost = True
                self.console.warn(f"Tunnel lost ({event.reason}); reconnecting")
            elif event.state == TunnelState.CONNECTED and lost:
                lost = False
                self.console.info(f"Tunnel localhost:{session.local_port} reconnected")

    async def port_forward(self, params: Parameters) -> None:
        """Forward the local relay port until cancelled."""
        namespace, record = await self._recover(params)
        port = self.constants.RELAY_SERVICE_PORT
        if record is not None:
            port = record.values.get("hubble.relay.servicePort", port)
        target = ClusterTarget(self.constants.RELAY_NAME, namespace, int(port))
        await self._forward(target, params.port_forward, None)

    async def ui(self, params: Parameters) -> None:
        """Forward the local UI port, open a browser, and block until cancelled."""
        namespace, record = await self._recover(params)
        port = self.constants.UI_SERVICE_PORT
        if record is not None:
            if not record.values.get("hubble.ui.enabled", False):
                raise ConfigError(
                    "Hubble UI is not enabled",
                    details="Run 'hubblectl enable --ui' first.",
                )
            port = record.values.get("hubble.ui.servicePort", port)
        target = ClusterTarget(self.constants.UI_NAME, namespace, int(port))
        browser_url = (
            f"http://localhost:{params.ui_port_forward}" if params.ui_open_browser else None
        )
        await self._forward(target, params.ui_port_forward, browser_url)
