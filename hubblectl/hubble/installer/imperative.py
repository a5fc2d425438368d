"""Imperative installer: creates and patches Hubble objects one by one."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from loguru import logger

from hubblectl.infra.k8s import KubernetesError

from ..certs import CAState
from ..errors import InstallError
from ..parameters import Parameters
from ..values import ResolvedValues
from .base import InstallationStatus, Installer, component_names, submitted_status
from .manifests import (
    ObjectRef,
    compute_merge_patch,
    ref_of,
    relay_objects,
    relay_refs,
    ui_objects,
    ui_refs,
)


class ImperativeInstaller(Installer):
    """Installs Hubble by reconciling individual Kubernetes objects.

    Existing objects are patched with a minimal merge patch, so repeated
    applies of unchanged values send no updates beyond the relay leaf
    certificates issued by a different CA.
    """

    kind = "classic"

    async def apply(self, params: Parameters, values: ResolvedValues) -> InstallationStatus:
        namespace = self._namespace(params)
        ca = await self.ca_manager.ensure(params, values)
        enabled = component_names(values, self.constants)

        if enabled[self.constants.RELAY_NAME]:
            self.console.info(f"Enabling Hubble Relay in namespace {namespace}")
            for manifest in relay_objects(values, namespace, ca, self.constants):
                if manifest["kind"] == "Secret" and await self._leaf_secret_current(
                    manifest, ca
                ):
                    continue
                await self._apply_object(manifest)
        else:
            await self._delete_all(relay_refs(namespace, self.constants))

        if enabled[self.constants.UI_NAME]:
            self.console.info(f"Enabling Hubble UI in namespace {namespace}")
            for manifest in ui_objects(values, namespace, self.constants):
                await self._apply_object(manifest)
        else:
            await self._delete_all(ui_refs(namespace, self.constants))

        await self._save_record(params, ca.fold_into(values))
        return submitted_status(values, self.constants)

    async def remove(self, params: Parameters, purge: bool = True) -> None:
        namespace = self._namespace(params)
        self.console.info(f"Disabling Hubble components in namespace {namespace}")
        await self._delete_all(ui_refs(namespace, self.constants))
        await self._delete_all(relay_refs(namespace, self.constants))
        await self._forget(params, purge)

    # =========================================================================
    # Object reconciliation
    # =========================================================================

    async def _apply_object(self, manifest: dict[str, Any]) -> None:
        ref = ref_of(manifest)
        try:
            current = await self.controller.get_object(ref.kind, ref.name, ref.namespace)
            if current is None:
                await self.controller.create_object(manifest)
                logger.info(f"Created {ref}")
                return
            patch = compute_merge_patch(current, manifest)
            if not patch:
                logger.debug(f"{ref} is up to date")
                return
            await self.controller.patch_object(ref.kind, ref.name, ref.namespace, patch)
            logger.info(f"Updated {ref}")
        except KubernetesError as e:
            raise InstallError(f"Unable to apply {ref}", details=str(e)) from e

    async def _leaf_secret_current(self, manifest: dict[str, Any], ca: CAState) -> bool:
        ref = ref_of(manifest)
        try:
            current = await self.controller.get_object(ref.kind, ref.name, ref.namespace)
        except KubernetesError as e:
            raise InstallError(f"Unable to read {ref}", details=str(e)) from e
        if current is None:
            return False
        encoded = (current.get("data") or {}).get("ca.crt", "")
        try:
            existing_ca = base64.b64decode(encoded).decode()
        except (binascii.Error, UnicodeDecodeError):
            return False
        return existing_ca.strip() == ca.ca.cert_pem.strip()

    async def _delete_all(self, refs: list[ObjectRef]) -> None:
        for ref in refs:
            try:
                if await self.controller.delete_object(ref.kind, ref.name, ref.namespace):
                    logger.info(f"Deleted {ref}")
            except KubernetesError as e:
                raise InstallError(f"Unable to delete {ref}", details=str(e)) from e
