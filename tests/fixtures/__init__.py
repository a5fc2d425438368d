"""Shared fixtures: an in-memory Kubernetes controller and helpers."""

from __future__ import annotations

import base64
import copy
from typing import Any
from unittest.mock import MagicMock

import pytest

from hubblectl.hubble.parameters import Parameters
from hubblectl.infra.k8s.controller import (
    DeploymentStatus,
    KubernetesController,
    KubernetesError,
    PortForwardError,
    PortForwardHandle,
    SecretRef,
)

__all__ = [
    "FakeController",
    "FakePortForward",
    "fake_controller",
    "mock_console",
    "make_params",
]


def _merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


class FakePortForward(PortForwardHandle):
    def __init__(self, local_port: int) -> None:
        self._local_port = local_port
        self.closed = False

    @property
    def local_port(self) -> int:
        return self._local_port

    async def close(self) -> None:
        self.closed = True


class FakeController(KubernetesController):
    """KubernetesController keeping objects in a dict.

    Objects are stored in API-server form: secret data is base64-encoded and
    every object gets a generation that increments when its spec changes.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.deployment_statuses: dict[str, DeploymentStatus] = {}
        self.ready_services: set[str] = set()
        self.port_forward_failures = 0
        self.port_forwards: list[FakePortForward] = []
        self.fail_on: set[tuple[str, str]] = set()

    def _check(self, op: str, name: str) -> None:
        if (op, name) in self.fail_on:
            raise KubernetesError(f"injected {op} failure for {name}")

    def has(self, kind: str, name: str, namespace: str | None = "kube-system") -> bool:
        return (kind, namespace, name) in self.objects

    def ops(self, op: str) -> list[tuple[str, str]]:
        return [(kind, name) for o, kind, name in self.calls if o == op]

    async def get_object(
        self, kind: str, name: str, namespace: str | None
    ) -> dict[str, Any] | None:
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    async def create_object(self, manifest: dict[str, Any]) -> dict[str, Any]:
        kind = manifest["kind"]
        name = manifest["metadata"]["name"]
        namespace = manifest["metadata"].get("namespace")
        self._check("create", name)
        if (kind, namespace, name) in self.objects:
            raise KubernetesError(f"{kind} {name} already exists")
        obj = copy.deepcopy(manifest)
        obj["metadata"]["generation"] = 1
        obj["metadata"]["uid"] = f"uid-{len(self.objects)}"
        self.objects[(kind, namespace, name)] = obj
        self.calls.append(("create", kind, name))
        return copy.deepcopy(obj)

    async def patch_object(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        self._check("patch", name)
        key = (kind, namespace, name)
        if key not in self.objects:
            raise KubernetesError(f"cannot patch {kind} {name}: not found")
        current = self.objects[key]
        updated = _merge_patch(current, patch)
        if updated.get("spec") != current.get("spec"):
            updated["metadata"]["generation"] = current["metadata"].get("generation", 1) + 1
        self.objects[key] = updated
        self.calls.append(("patch", kind, name))
        return copy.deepcopy(updated)

    async def delete_object(self, kind: str, name: str, namespace: str | None) -> bool:
        self._check("delete", name)
        if self.objects.pop((kind, namespace, name), None) is None:
            return False
        self.calls.append(("delete", kind, name))
        return True

    async def get_secret_data(self, name: str, namespace: str) -> dict[str, str] | None:
        obj = self.objects.get(("Secret", namespace, name))
        if obj is None:
            return None
        return {k: base64.b64decode(v).decode() for k, v in (obj.get("data") or {}).items()}

    async def replace_secret(
        self,
        name: str,
        namespace: str,
        data: dict[str, str],
        *,
        labels: dict[str, str] | None = None,
    ) -> None:
        self._check("replace", name)
        encoded = {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}
        key = ("Secret", namespace, name)
        existing = self.objects.get(key)
        if existing is None:
            self.objects[key] = {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
                "data": encoded,
            }
        else:
            existing["data"] = encoded
            existing["metadata"]["labels"] = {
                **(existing["metadata"].get("labels") or {}),
                **(labels or {}),
            }
        self.calls.append(("replace", "Secret", name))

    async def find_secrets(
        self, label_selector: str, namespace: str | None = None
    ) -> list[SecretRef]:
        wanted = dict(part.split("=", 1) for part in label_selector.split(",") if part)
        refs = []
        for (kind, ns, name), obj in self.objects.items():
            if kind != "Secret" or (namespace is not None and ns != namespace):
                continue
            labels = obj["metadata"].get("labels") or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                refs.append(SecretRef(name=name, namespace=ns or ""))
        return refs

    async def get_deployment_status(
        self, name: str, namespace: str
    ) -> DeploymentStatus | None:
        if name in self.deployment_statuses:
            return self.deployment_statuses[name]
        obj = self.objects.get(("Deployment", namespace, name))
        if obj is None:
            return None
        replicas = obj["spec"].get("replicas", 1)
        return DeploymentStatus(
            name=name,
            replicas=replicas,
            ready_replicas=replicas,
            updated_replicas=replicas,
            generation=obj["metadata"].get("generation", 1),
            observed_generation=obj["metadata"].get("generation", 1),
        )

    async def service_ready(self, name: str, namespace: str) -> bool:
        return name in self.ready_services

    async def open_port_forward(
        self,
        service: str,
        namespace: str,
        *,
        remote_port: int,
        local_port: int,
    ) -> PortForwardHandle:
        self.calls.append(("port-forward", "Service", service))
        if self.port_forward_failures > 0:
            self.port_forward_failures -= 1
            raise PortForwardError(f"service {namespace}/{service} unreachable")
        handle = FakePortForward(local_port)
        self.port_forwards.append(handle)
        return handle


def make_params(**overrides: Any) -> Parameters:
    """Parameters for tests: kube-system, no waiting."""
    defaults: dict[str, Any] = {"namespace": "kube-system", "wait": False}
    defaults.update(overrides)
    return Parameters(**defaults)


@pytest.fixture
def fake_controller() -> FakeController:
    """Fresh in-memory controller."""
    return FakeController()


@pytest.fixture
def mock_console() -> MagicMock:
    """Console double recording every call."""
    return MagicMock()
