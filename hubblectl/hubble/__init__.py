"""Hubble lifecycle management.

Resolves layered configuration, manages the relay CA, installs or removes
the relay and UI (imperatively or with Helm), waits for readiness and keeps
port-forward tunnels alive.
"""

from .errors import (
    CertificateError,
    ComponentFailedError,
    ConfigError,
    HubbleError,
    InstallError,
    TunnelError,
    ValuesNotFoundError,
    WaitError,
    WaitTimeoutError,
)
from .manager import HubbleManager
from .parameters import Parameters
from .values import ConfigMerger, ResolvedValues

__all__ = [
    "CertificateError",
    "ComponentFailedError",
    "ConfigError",
    "ConfigMerger",
    "HubbleError",
    "HubbleManager",
    "InstallError",
    "Parameters",
    "ResolvedValues",
    "TunnelError",
    "ValuesNotFoundError",
    "WaitError",
    "WaitTimeoutError",
]
