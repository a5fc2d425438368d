"""Error taxonomy for the hubble core.

Every error carries a short ``message`` and optional ``details`` (recovery
hints), rendered by the CLI error handler. Wait-phase errors also carry the
last observed InstallationStatus.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .installer.base import InstallationStatus


class HubbleError(Exception):
    """Base class for errors raised by the hubble core."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigError(HubbleError):
    """Malformed or unreadable configuration input."""


class CertificateError(HubbleError):
    """CA generation or parsing failed."""


class InstallError(HubbleError):
    """A cluster mutation or chart render failed."""


class ValuesNotFoundError(HubbleError):
    """No persisted values record exists at the requested location."""


class TunnelError(HubbleError):
    """A port-forward session could not be established."""


class WaitError(HubbleError):
    """Base class for wait-phase outcomes."""

    def __init__(
        self,
        message: str,
        status: InstallationStatus,
        details: str | None = None,
    ):
        super().__init__(message, details)
        self.status = status


class WaitTimeoutError(WaitError):
    """Components did not become ready before the deadline."""


class ComponentFailedError(WaitError):
    """A component reported a failed state while waiting."""
