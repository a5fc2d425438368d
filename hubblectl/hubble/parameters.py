"""Invocation parameters for enable, disable, port-forward and ui.

Parameters replace process-wide flag registries: the CLI builds one frozen
instance per invocation and passes it explicitly to every component.
Flags the user did not pass stay ``None`` so persisted values are not
overridden by CLI defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hubblectl.infra.constants import DEFAULT_CONSTANTS
from hubblectl.infra.k8s.utils import parse_duration

from .errors import ConfigError

if TYPE_CHECKING:
    from .values import ResolvedValues


class Parameters(BaseModel):
    """Resolved configuration for one hubble invocation."""

    model_config = ConfigDict(frozen=True)

    # Cluster
    context: str | None = None
    namespace: str | None = None

    # Components
    relay: bool | None = None
    relay_image: str | None = None
    relay_version: str | None = None
    ui: bool | None = None
    ui_image: str | None = None
    ui_backend_image: str | None = None
    ui_version: str | None = None

    # Certificates
    create_ca: bool = True
    keep_ca: bool = False

    # Waiting
    wait: bool = True
    wait_duration: float = Field(
        default=parse_duration(DEFAULT_CONSTANTS.STATUS_WAIT_DURATION), gt=0
    )

    # Helm values
    chart_directory: Path | None = None
    helm_values: tuple[Path, ...] = ()
    helm_set: tuple[str, ...] = ()
    helm_set_string: tuple[str, ...] = ()
    helm_set_file: tuple[str, ...] = ()
    helm_gen_values_file: Path | None = None
    helm_values_secret_name: str = DEFAULT_CONSTANTS.HELM_VALUES_SECRET_NAME
    redact_helm_certificate_keys: bool = True
    dry_run_helm_values: bool = False

    # Port forwarding
    port_forward: int = Field(default=DEFAULT_CONSTANTS.RELAY_PORT_FORWARD, ge=1, le=65535)
    ui_port_forward: int = Field(default=DEFAULT_CONSTANTS.UI_PORT_FORWARD, ge=1, le=65535)
    ui_open_browser: bool = True

    @field_validator("wait_duration", mode="before")
    @classmethod
    def _parse_wait_duration(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @classmethod
    def build(cls, **kwargs: Any) -> Parameters:
        """Construct Parameters, reporting invalid input as ConfigError."""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            problems = "\n".join(
                f"  • {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigError("Invalid parameters", details=problems) from e

    def resolved(self, values: ResolvedValues, namespace: str) -> Parameters:
        """Return a copy pinned to the namespace and component toggles in ``values``."""
        return self.model_copy(
            update={
                "namespace": namespace,
                "relay": bool(values.get("hubble.relay.enabled", False)),
                "ui": bool(values.get("hubble.ui.enabled", False)),
            }
        )
