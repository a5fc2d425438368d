"""Persistence of resolved values in a Kubernetes secret.

The secret holds three keys: ``values.yaml`` (sorted YAML, unredacted),
``installer`` (the installer kind that wrote it) and ``namespace``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml  # type: ignore[import-untyped]
from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController, KubernetesError

from .errors import ConfigError, InstallError, ValuesNotFoundError
from .values import ResolvedValues

VALUES_KEY = "values.yaml"
INSTALLER_KEY = "installer"
NAMESPACE_KEY = "namespace"


@dataclass(frozen=True)
class PersistedValuesRecord:
    """Values as last applied, with the installer and namespace that applied them."""

    values: ResolvedValues
    namespace: str
    installer: str


class ValuesStore:
    """Reads and writes the persisted values secret."""

    def __init__(
        self,
        controller: KubernetesController,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self.controller = controller
        self.constants = constants

    @property
    def labels(self) -> dict[str, str]:
        return {**self.constants.managed_labels, self.constants.VALUES_SECRET_LABEL: "true"}

    async def load_optional(
        self, secret_name: str, namespace: str
    ) -> PersistedValuesRecord | None:
        """Load a record, returning None if the secret does not exist."""
        try:
            data = await self.controller.get_secret_data(secret_name, namespace)
        except KubernetesError as e:
            raise InstallError(f"Unable to read secret {secret_name}", details=str(e)) from e
        if data is None:
            return None

        try:
            tree: Any = yaml.safe_load(data.get(VALUES_KEY) or "") or {}
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Corrupt values in secret {namespace}/{secret_name}", details=str(e)
            ) from e
        if not isinstance(tree, dict):
            raise ConfigError(
                f"Corrupt values in secret {namespace}/{secret_name}",
                details="values.yaml is not a mapping.",
            )
        return PersistedValuesRecord(
            values=ResolvedValues(tree),
            namespace=data.get(NAMESPACE_KEY) or namespace,
            installer=data.get(INSTALLER_KEY, ""),
        )

    async def load(self, secret_name: str, namespace: str) -> PersistedValuesRecord:
        """Load a record.

        Raises:
            ValuesNotFoundError: If the secret does not exist
        """
        record = await self.load_optional(secret_name, namespace)
        if record is None:
            raise ValuesNotFoundError(
                f"No persisted values found in {namespace}/{secret_name}",
                details="Was Hubble enabled with hubblectl in this namespace?",
            )
        return record

    async def find(
        self, secret_name: str, namespace: str | None = None
    ) -> PersistedValuesRecord | None:
        """Locate a record, searching every namespace when none is given."""
        if namespace:
            return await self.load_optional(secret_name, namespace)

        selector = f"{self.constants.VALUES_SECRET_LABEL}=true"
        try:
            refs = await self.controller.find_secrets(selector)
        except KubernetesError as e:
            raise InstallError("Unable to search for values secrets", details=str(e)) from e

        matches = sorted(
            (ref for ref in refs if ref.name == secret_name), key=lambda r: r.namespace
        )
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"Found {secret_name} in several namespaces "
                f"({', '.join(r.namespace for r in matches)}); using {matches[0].namespace}"
            )
        return await self.load_optional(secret_name, matches[0].namespace)

    async def save(
        self, record: PersistedValuesRecord, secret_name: str, namespace: str
    ) -> None:
        """Write a record, replacing any previous contents."""
        data = {
            VALUES_KEY: record.values.to_yaml(),
            INSTALLER_KEY: record.installer,
            NAMESPACE_KEY: record.namespace,
        }
        try:
            await self.controller.replace_secret(
                secret_name, namespace, data, labels=self.labels
            )
        except KubernetesError as e:
            raise InstallError(f"Unable to save values to {secret_name}", details=str(e)) from e
        logger.debug(f"Saved values to {namespace}/{secret_name}")

    async def delete(self, secret_name: str, namespace: str) -> None:
        """Delete a record; absent records are not an error."""
        try:
            deleted = await self.controller.delete_object("Secret", secret_name, namespace)
        except KubernetesError as e:
            raise InstallError(f"Unable to delete {secret_name}", details=str(e)) from e
        if deleted:
            logger.debug(f"Deleted values secret {namespace}/{secret_name}")
