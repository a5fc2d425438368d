"""Hubble deployment constants.

This module centralizes the object names, images, ports and timeouts used
throughout the enable/disable/port-forward workflows.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HubbleConstants:
    """Constants for Hubble installation and access.

    All attributes are class-level and immutable.
    """

    # Kubernetes identifiers
    DEFAULT_NAMESPACE: str = "kube-system"
    MANAGED_BY_LABEL: str = "app.kubernetes.io/managed-by"
    MANAGED_BY_VALUE: str = "hubblectl"
    PART_OF_LABEL: str = "app.kubernetes.io/part-of"
    PART_OF_VALUE: str = "hubble"

    # Persisted values
    HELM_VALUES_SECRET_NAME: str = "hubble-cli-helm-values"
    VALUES_SECRET_LABEL: str = "hubblectl.io/values"

    # Certificate authority
    CA_SECRET_NAME: str = "hubble-ca"
    CA_COMMON_NAME: str = "Hubble CA"
    CA_VALIDITY_DAYS: int = 3 * 365
    LEAF_VALIDITY_DAYS: int = 365
    KEY_SIZE: int = 2048

    # Relay
    RELAY_NAME: str = "hubble-relay"
    RELAY_CONFIG_NAME: str = "hubble-relay-config"
    RELAY_SERVER_CERTS_NAME: str = "hubble-relay-server-certs"
    RELAY_CLIENT_CERTS_NAME: str = "hubble-relay-client-certs"
    RELAY_IMAGE: str = "quay.io/cilium/hubble-relay"
    RELAY_VERSION: str = "v1.14.2"
    RELAY_LISTEN_PORT: int = 4245
    RELAY_SERVICE_PORT: int = 80
    RELAY_PORT_FORWARD: int = 4245

    # UI
    UI_NAME: str = "hubble-ui"
    UI_NGINX_CONFIG_NAME: str = "hubble-ui-nginx"
    UI_IMAGE: str = "quay.io/cilium/hubble-ui"
    UI_BACKEND_IMAGE: str = "quay.io/cilium/hubble-ui-backend"
    UI_VERSION: str = "v0.12.0"
    UI_FRONTEND_PORT: int = 8081
    UI_BACKEND_PORT: int = 8090
    UI_SERVICE_PORT: int = 80
    UI_PORT_FORWARD: int = 12000

    # Helm
    HELM_RELEASE_NAME: str = "hubble"
    # Repository chart used when no chart directory is given; unset by default
    HELM_CHART_NAME: str | None = None
    HELM_REPOSITORY: str = "https://helm.cilium.io"
    HELM_TIMEOUT: str = "10m"

    # Waiting and tunnels
    STATUS_WAIT_DURATION: str = "5m"
    STATUS_POLL_INTERVAL: float = 2.0
    TUNNEL_KEEPALIVE_INTERVAL: float = 5.0
    TUNNEL_BACKOFF_INITIAL: float = 1.0
    TUNNEL_BACKOFF_MAX: float = 30.0

    # Installer selection
    MODE_ENV_VAR: str = "HUBBLE_CLI_MODE"
    NAMESPACE_ENV_VAR: str = "HUBBLE_NAMESPACE"

    @property
    def managed_labels(self) -> dict[str, str]:
        """Labels stamped on every object hubblectl creates."""
        return {
            self.MANAGED_BY_LABEL: self.MANAGED_BY_VALUE,
            self.PART_OF_LABEL: self.PART_OF_VALUE,
        }


DEFAULT_CONSTANTS = HubbleConstants()
