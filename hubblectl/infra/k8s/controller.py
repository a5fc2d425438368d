"""Abstract Kubernetes controller interface.

Defines the contract for the Kubernetes operations the hubble core needs:
generic object CRUD, secret storage, workload status and port forwarding.
Implementations (kr8s today) translate their client errors to
`KubernetesError` so callers never see library-specific exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Errors
# =============================================================================


class KubernetesError(Exception):
    """A Kubernetes API call failed."""


class PortForwardError(KubernetesError):
    """Error while setting up or running a port forward."""


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class DeploymentCondition:
    """A single entry of a Deployment's status.conditions list."""

    type: str
    status: str
    reason: str = ""
    message: str = ""


@dataclass
class DeploymentStatus:
    """Rollout state of a Deployment plus the waiting reasons of its pods."""

    name: str
    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    available_replicas: int = 0
    generation: int = 0
    observed_generation: int = 0
    conditions: list[DeploymentCondition] = field(default_factory=list)
    pod_waiting_reasons: list[str] = field(default_factory=list)

    def condition(self, condition_type: str) -> DeploymentCondition | None:
        """Return the condition with the given type, if present."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


@dataclass
class SecretRef:
    """Location of a secret found by a label search."""

    name: str
    namespace: str


class PortForwardHandle(ABC):
    """An active local listener relaying to an in-cluster service."""

    @property
    @abstractmethod
    def local_port(self) -> int:
        """Local port the listener is bound to."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop the listener and release the local socket."""
        ...


# =============================================================================
# Abstract Controller
# =============================================================================


class KubernetesController(ABC):
    """Abstract base class for Kubernetes operations.

    All methods are async. Use `run_sync()` to call from synchronous code.
    Cluster-scoped kinds (ClusterRole, ClusterRoleBinding) take
    ``namespace=None``.
    """

    # =========================================================================
    # Object Operations
    # =========================================================================

    @abstractmethod
    async def get_object(
        self, kind: str, name: str, namespace: str | None
    ) -> dict[str, Any] | None:
        """Read an object.

        Args:
            kind: Object kind (e.g. "Deployment")
            name: Object name
            namespace: Namespace, or None for cluster-scoped kinds

        Returns:
            The raw object, or None if it does not exist
        """
        ...

    @abstractmethod
    async def create_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create an object from a manifest.

        Returns:
            The object as stored by the API server
        """
        ...

    @abstractmethod
    async def patch_object(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a JSON merge patch to an existing object.

        Returns:
            The patched object
        """
        ...

    @abstractmethod
    async def delete_object(self, kind: str, name: str, namespace: str | None) -> bool:
        """Delete an object.

        Returns:
            True if the object was deleted, False if it was already absent
        """
        ...

    # =========================================================================
    # Secret Operations
    # =========================================================================

    @abstractmethod
    async def get_secret_data(self, name: str, namespace: str) -> dict[str, str] | None:
        """Read a secret's data with values base64-decoded.

        Returns:
            Decoded data, or None if the secret does not exist
        """
        ...

    @abstractmethod
    async def replace_secret(
        self,
        name: str,
        namespace: str,
        data: dict[str, str],
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Create a secret, or replace the data of an existing one.

        The stored data afterwards equals ``data`` exactly; keys missing from
        ``data`` are dropped.
        """
        ...

    @abstractmethod
    async def find_secrets(
        self, label_selector: str, namespace: str | None = None
    ) -> list[SecretRef]:
        """List secrets matching a label selector.

        Args:
            label_selector: Label selector (e.g. "app.kubernetes.io/managed-by=hubblectl")
            namespace: Namespace to search, or None for all namespaces
        """
        ...

    # =========================================================================
    # Workload Status
    # =========================================================================

    @abstractmethod
    async def get_deployment_status(
        self, name: str, namespace: str
    ) -> DeploymentStatus | None:
        """Get rollout status of a deployment.

        Returns:
            DeploymentStatus, or None if the deployment does not exist
        """
        ...

    @abstractmethod
    async def service_ready(self, name: str, namespace: str) -> bool:
        """Check whether a service has at least one ready backing pod."""
        ...

    # =========================================================================
    # Port Forwarding
    # =========================================================================

    @abstractmethod
    async def open_port_forward(
        self,
        service: str,
        namespace: str,
        *,
        remote_port: int,
        local_port: int,
    ) -> PortForwardHandle:
        """Bind ``local_port`` and relay connections to ``service:remote_port``.

        Raises:
            PortForwardError: If the service cannot be reached or the local
                port cannot be bound
        """
        ...
