"""Kr8s-based implementation of KubernetesController.

Uses the kr8s library for native async Kubernetes operations.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

import kr8s
from kr8s.asyncio.objects import (
    APIObject,
    ClusterRole,
    ClusterRoleBinding,
    ConfigMap,
    Deployment,
    Pod,
    Secret,
    Service,
    ServiceAccount,
)
from loguru import logger

from .controller import (
    DeploymentCondition,
    DeploymentStatus,
    KubernetesController,
    KubernetesError,
    PortForwardError,
    PortForwardHandle,
    SecretRef,
)

_KINDS: dict[str, type[APIObject]] = {
    "ClusterRole": ClusterRole,
    "ClusterRoleBinding": ClusterRoleBinding,
    "ConfigMap": ConfigMap,
    "Deployment": Deployment,
    "Secret": Secret,
    "Service": Service,
    "ServiceAccount": ServiceAccount,
}


def _kind_class(kind: str) -> type[APIObject]:
    try:
        return _KINDS[kind]
    except KeyError:
        raise KubernetesError(f"unsupported object kind: {kind}") from None


def _encode(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}


def _decode(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64decode(v).decode() for k, v in data.items()}


class Kr8sPortForwardHandle(PortForwardHandle):
    """Wraps a started kr8s PortForward."""

    def __init__(self, port_forward: Any, local_port: int) -> None:
        self._port_forward = port_forward
        self._local_port = local_port

    @property
    def local_port(self) -> int:
        return self._local_port

    async def close(self) -> None:
        await self._port_forward.stop()


class Kr8sController(KubernetesController):
    """Kubernetes controller using kr8s library.

    All methods are natively async, leveraging kr8s's async API.

    Note: The kr8s API client is NOT cached because it's tied to the event loop
    that was running when created. When using run_sync() which calls asyncio.run(),
    each call creates a new event loop, making the cached API unusable.
    """

    def __init__(self, context: str | None = None) -> None:
        """Initialize the kr8s controller.

        Args:
            context: kubeconfig context to use, or None for the active one
        """
        self.context = context

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        """Create a kr8s API client bound to the running event loop."""
        return await kr8s.asyncio.api(context=self.context)

    async def _get(
        self, kind: str, name: str, namespace: str | None
    ) -> APIObject | None:
        cls = _kind_class(kind)
        api = await self._get_api()
        try:
            if namespace is None:
                return await cls.get(name, api=api)
            return await cls.get(name, namespace=namespace, api=api)
        except kr8s.NotFoundError:
            return None
        except Exception as e:
            raise KubernetesError(f"failed to get {kind} {name}: {e}") from e

    # =========================================================================
    # Object Operations
    # =========================================================================

    async def get_object(
        self, kind: str, name: str, namespace: str | None
    ) -> dict[str, Any] | None:
        """Read an object, returning None if absent."""
        obj = await self._get(kind, name, namespace)
        return obj.raw if obj is not None else None

    async def create_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        """Create an object from a manifest."""
        kind = manifest["kind"]
        cls = _kind_class(kind)
        api = await self._get_api()
        obj = cls(manifest, api=api)
        try:
            await obj.create()
        except Exception as e:
            raise KubernetesError(
                f"failed to create {kind} {manifest['metadata']['name']}: {e}"
            ) from e
        logger.debug(f"Created {kind} {obj.name}")
        return obj.raw

    async def patch_object(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a JSON merge patch to an existing object."""
        obj = await self._get(kind, name, namespace)
        if obj is None:
            raise KubernetesError(f"cannot patch {kind} {name}: not found")
        try:
            await obj.patch(patch)
        except Exception as e:
            raise KubernetesError(f"failed to patch {kind} {name}: {e}") from e
        logger.debug(f"Patched {kind} {name}")
        return obj.raw

    async def delete_object(self, kind: str, name: str, namespace: str | None) -> bool:
        """Delete an object, returning False if it was already absent."""
        obj = await self._get(kind, name, namespace)
        if obj is None:
            return False
        try:
            await obj.delete()
        except kr8s.NotFoundError:
            return False
        except Exception as e:
            raise KubernetesError(f"failed to delete {kind} {name}: {e}") from e
        logger.debug(f"Deleted {kind} {name}")
        return True

    # =========================================================================
    # Secret Operations
    # =========================================================================

    async def get_secret_data(self, name: str, namespace: str) -> dict[str, str] | None:
        """Read a secret's data with values base64-decoded."""
        secret = await self._get("Secret", name, namespace)
        if secret is None:
            return None
        try:
            return _decode(secret.raw.get("data") or {})
        except (binascii.Error, UnicodeDecodeError) as e:
            raise KubernetesError(
                f"secret {namespace}/{name} holds undecodable data: {e}"
            ) from e

    async def replace_secret(
        self,
        name: str,
        namespace: str,
        data: dict[str, str],
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Create a secret, or replace the data of an existing one."""
        encoded = _encode(data)
        secret = await self._get("Secret", name, namespace)
        try:
            if secret is None:
                manifest = {
                    "apiVersion": "v1",
                    "kind": "Secret",
                    "type": "Opaque",
                    "metadata": {
                        "name": name,
                        "namespace": namespace,
                        "labels": dict(labels or {}),
                    },
                    "data": encoded,
                }
                await self.create_object(manifest)
                return

            # A JSON patch "add" on /data replaces the whole map in one request
            operations: list[dict[str, Any]] = [
                {"op": "add", "path": "/data", "value": encoded}
            ]
            if labels:
                operations.append(
                    {
                        "op": "add",
                        "path": "/metadata/labels",
                        "value": {**(secret.raw["metadata"].get("labels") or {}), **labels},
                    }
                )
            await secret.patch(operations, type="json")
        except KubernetesError:
            raise
        except Exception as e:
            raise KubernetesError(f"failed to write secret {name}: {e}") from e

    async def find_secrets(
        self, label_selector: str, namespace: str | None = None
    ) -> list[SecretRef]:
        """List secrets matching a label selector."""
        api = await self._get_api()
        try:
            return [
                SecretRef(name=s.name, namespace=s.namespace)
                async for s in Secret.list(
                    namespace=namespace or kr8s.ALL,
                    label_selector=label_selector,
                    api=api,
                )
            ]
        except Exception as e:
            raise KubernetesError(f"failed to list secrets: {e}") from e

    # =========================================================================
    # Workload Status
    # =========================================================================

    async def get_deployment_status(
        self, name: str, namespace: str
    ) -> DeploymentStatus | None:
        """Get rollout status of a deployment and its pods' waiting reasons."""
        deployment = await self._get("Deployment", name, namespace)
        if deployment is None:
            return None

        raw = deployment.raw
        spec = raw.get("spec", {})
        status = raw.get("status", {})
        result = DeploymentStatus(
            name=name,
            replicas=spec.get("replicas", 1),
            ready_replicas=status.get("readyReplicas", 0),
            updated_replicas=status.get("updatedReplicas", 0),
            available_replicas=status.get("availableReplicas", 0),
            generation=raw["metadata"].get("generation", 0),
            observed_generation=status.get("observedGeneration", 0),
            conditions=[
                DeploymentCondition(
                    type=c.get("type", ""),
                    status=c.get("status", ""),
                    reason=c.get("reason", ""),
                    message=c.get("message", ""),
                )
                for c in status.get("conditions", [])
            ],
        )

        match_labels = spec.get("selector", {}).get("matchLabels", {})
        if match_labels:
            selector = ",".join(f"{k}={v}" for k, v in sorted(match_labels.items()))
            api = await self._get_api()
            try:
                async for pod in Pod.list(
                    namespace=namespace, label_selector=selector, api=api
                ):
                    for cs in pod.raw.get("status", {}).get("containerStatuses", []):
                        waiting = cs.get("state", {}).get("waiting")
                        if waiting and waiting.get("reason"):
                            result.pod_waiting_reasons.append(waiting["reason"])
            except Exception as e:
                raise KubernetesError(f"failed to list pods of {name}: {e}") from e

        return result

    async def service_ready(self, name: str, namespace: str) -> bool:
        """Check whether a service has at least one ready backing pod."""
        service = await self._get("Service", name, namespace)
        if service is None:
            return False
        try:
            return len(await service.ready_pods()) > 0
        except Exception as e:
            raise KubernetesError(f"failed to check service {name}: {e}") from e

    # =========================================================================
    # Port Forwarding
    # =========================================================================

    async def open_port_forward(
        self,
        service: str,
        namespace: str,
        *,
        remote_port: int,
        local_port: int,
    ) -> PortForwardHandle:
        """Bind ``local_port`` and relay connections to ``service:remote_port``."""
        try:
            svc = await self._get("Service", service, namespace)
        except KubernetesError as e:
            raise PortForwardError(str(e)) from e
        if svc is None:
            raise PortForwardError(f"service {namespace}/{service} not found")

        # kr8s only picks a pod when a client connects to the local listener
        try:
            ready = await svc.ready_pods()
        except Exception as e:
            raise PortForwardError(f"failed to check service {service}: {e}") from e
        if not ready:
            raise PortForwardError(f"service {namespace}/{service} has no ready pods")

        port_forward = svc.portforward(remote_port=remote_port, local_port=local_port)
        try:
            await port_forward.start()
        except Exception as e:
            raise PortForwardError(
                f"failed to forward localhost:{local_port} -> "
                f"{service}:{remote_port}: {e}"
            ) from e
        return Kr8sPortForwardHandle(port_forward, local_port)
