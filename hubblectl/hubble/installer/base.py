"""Base installer with shared record and CA handling."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController
from hubblectl.utils.console_like import ConsoleLike, coalesce_console

from ..certs import CertificateAuthorityManager
from ..parameters import Parameters
from ..values import ResolvedValues
from ..values_store import PersistedValuesRecord, ValuesStore


class ComponentState(str, Enum):
    UNKNOWN = "Unknown"
    PROGRESSING = "Progressing"
    READY = "Ready"
    FAILED = "Failed"
    DISABLED = "Disabled"


@dataclass
class ComponentStatus:
    """Observed state of one component (relay or ui)."""

    name: str
    state: ComponentState
    message: str = ""
    ready_replicas: int = 0
    desired_replicas: int = 0


@dataclass
class InstallationStatus:
    """Per-component state after apply or while waiting."""

    components: dict[str, ComponentStatus] = field(default_factory=dict)

    @property
    def ready(self) -> bool:
        return all(
            c.state in (ComponentState.READY, ComponentState.DISABLED)
            for c in self.components.values()
        )

    @property
    def failed(self) -> list[ComponentStatus]:
        return [c for c in self.components.values() if c.state == ComponentState.FAILED]

    def states(self) -> dict[str, ComponentState]:
        return {name: c.state for name, c in self.components.items()}


def component_names(
    values: ResolvedValues, constants: HubbleConstants = DEFAULT_CONSTANTS
) -> dict[str, bool]:
    """Map each component to whether ``values`` enables it."""
    return {
        constants.RELAY_NAME: bool(values.get("hubble.relay.enabled", False)),
        constants.UI_NAME: bool(values.get("hubble.ui.enabled", False)),
    }


def submitted_status(
    values: ResolvedValues, constants: HubbleConstants = DEFAULT_CONSTANTS
) -> InstallationStatus:
    """Status right after apply: enabled components progressing, others disabled."""
    return InstallationStatus(
        components={
            name: ComponentStatus(
                name=name,
                state=ComponentState.PROGRESSING if enabled else ComponentState.DISABLED,
            )
            for name, enabled in component_names(values, constants).items()
        }
    )


class Installer(ABC):
    """Applies and removes Hubble components in a cluster.

    Subclasses implement the resource mutation; this base keeps the values
    record and the CA secret in step with it.
    """

    kind: str = ""

    def __init__(
        self,
        controller: KubernetesController,
        *,
        ca_manager: CertificateAuthorityManager | None = None,
        values_store: ValuesStore | None = None,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
        console: ConsoleLike | None = None,
    ) -> None:
        self.controller = controller
        self.constants = constants
        self.ca_manager = ca_manager or CertificateAuthorityManager(controller, constants)
        self.values_store = values_store or ValuesStore(controller, constants)
        self.console = coalesce_console(console)

    @abstractmethod
    async def apply(self, params: Parameters, values: ResolvedValues) -> InstallationStatus:
        """Create or update the components enabled in ``values``.

        Raises:
            InstallError: If a cluster mutation fails (no rollback)
            CertificateError: If the CA cannot be found or created
        """
        ...

    @abstractmethod
    async def remove(self, params: Parameters, purge: bool = True) -> None:
        """Delete all Hubble components; absent objects are not an error."""
        ...

    def _namespace(self, params: Parameters) -> str:
        return params.namespace or self.constants.DEFAULT_NAMESPACE

    async def _save_record(self, params: Parameters, values: ResolvedValues) -> None:
        namespace = self._namespace(params)
        await self.values_store.save(
            PersistedValuesRecord(values=values, namespace=namespace, installer=self.kind),
            params.helm_values_secret_name,
            namespace,
        )

    async def _forget(self, params: Parameters, purge: bool) -> None:
        namespace = self._namespace(params)
        await self.values_store.delete(params.helm_values_secret_name, namespace)
        if purge:
            if await self.ca_manager.delete(namespace):
                logger.info(f"Deleted CA secret {namespace}/{self.constants.CA_SECRET_NAME}")
