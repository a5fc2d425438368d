"""Desired object manifests for the imperative installer.

Every builder returns plain dicts in API-server form (base64 secret data) so
they can be compared field by field against what the cluster holds.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Any

import yaml  # type: ignore[import-untyped]

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants

from ..certs import CAState, KeyPair
from ..values import ResolvedValues

TLS_DIR = "/var/lib/hubble-relay/tls"

NGINX_CONF = """\
server {
    listen       8081;
    listen       [::]:8081;
    server_name  localhost;
    root /app;
    index index.html;
    client_max_body_size 1G;

    location / {
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;

        location /api {
            proxy_http_version 1.1;
            proxy_pass_request_headers on;
            proxy_hide_header Access-Control-Allow-Origin;
            proxy_pass http://127.0.0.1:8090;
        }
        location / {
            try_files $uri $uri/ /index.html;
        }
    }
}
"""


@dataclass(frozen=True)
class ObjectRef:
    kind: str
    name: str
    namespace: str | None

    def __str__(self) -> str:
        if self.namespace is None:
            return f"{self.kind}/{self.name}"
        return f"{self.kind}/{self.namespace}/{self.name}"


def ref_of(manifest: dict[str, Any]) -> ObjectRef:
    metadata = manifest["metadata"]
    return ObjectRef(manifest["kind"], metadata["name"], metadata.get("namespace"))


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def _metadata(
    name: str, namespace: str | None, constants: HubbleConstants
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "name": name,
        "labels": {"k8s-app": name, **constants.managed_labels},
    }
    if namespace is not None:
        metadata["namespace"] = namespace
    return metadata


def _scheduling(values: ResolvedValues, prefix: str) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "nodeSelector": values.get(f"{prefix}.nodeSelector") or {"kubernetes.io/os": "linux"}
    }
    tolerations = values.get(f"{prefix}.tolerations")
    if tolerations:
        spec["tolerations"] = tolerations
    return spec


def _image(values: ResolvedValues, prefix: str) -> str:
    return f"{values.get(f'{prefix}.repository')}:{values.get(f'{prefix}.tag')}"


# =============================================================================
# Relay
# =============================================================================


def relay_config(values: ResolvedValues) -> str:
    """Render the relay's config.yaml."""
    server_tls = bool(values.get("hubble.relay.tls.server.enabled", False))
    config: dict[str, Any] = {
        "cluster-name": values.get("cluster.name", "default"),
        "peer-service": values.get("hubble.relay.peerService"),
        "listen-address": f":{values.get('hubble.relay.listenPort')}",
        "dial-timeout": values.get("hubble.relay.dialTimeout", "5s"),
        "retry-timeout": values.get("hubble.relay.retryTimeout", "30s"),
        "sort-buffer-len-max": values.get("hubble.relay.sortBufferLenMax", 100),
        "sort-buffer-drain-timeout": values.get("hubble.relay.sortBufferDrainTimeout", "1s"),
        "tls-client-cert-file": f"{TLS_DIR}/client.crt",
        "tls-client-key-file": f"{TLS_DIR}/client.key",
        "tls-hubble-server-ca-files": f"{TLS_DIR}/hubble-server-ca.crt",
        "disable-server-tls": not server_tls,
    }
    if server_tls:
        config["tls-relay-server-cert-file"] = f"{TLS_DIR}/server.crt"
        config["tls-relay-server-key-file"] = f"{TLS_DIR}/server.key"
    return yaml.safe_dump(config, sort_keys=True)


def tls_secret(
    name: str, namespace: str, pair: KeyPair, ca_pem: str, constants: HubbleConstants
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": _metadata(name, namespace, constants),
        "data": {
            "ca.crt": _b64(ca_pem),
            "tls.crt": _b64(pair.cert_pem),
            "tls.key": _b64(pair.key_pem),
        },
    }


def relay_objects(
    values: ResolvedValues,
    namespace: str,
    ca: CAState,
    constants: HubbleConstants = DEFAULT_CONSTANTS,
) -> list[dict[str, Any]]:
    """Relay manifests in creation order."""
    name = constants.RELAY_NAME
    config = relay_config(values)
    checksum = hashlib.sha256(config.encode()).hexdigest()
    listen_port = values.get("hubble.relay.listenPort")
    selector = {"k8s-app": name}

    return [
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": _metadata(name, namespace, constants),
        },
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": _metadata(constants.RELAY_CONFIG_NAME, namespace, constants),
            "data": {"config.yaml": config},
        },
        tls_secret(
            constants.RELAY_SERVER_CERTS_NAME, namespace, ca.relay_server, ca.ca.cert_pem, constants
        ),
        tls_secret(
            constants.RELAY_CLIENT_CERTS_NAME, namespace, ca.relay_client, ca.ca.cert_pem, constants
        ),
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": _metadata(name, namespace, constants),
            "spec": {
                "replicas": values.get("hubble.relay.replicas"),
                "selector": {"matchLabels": selector},
                "strategy": {
                    "type": "RollingUpdate",
                    "rollingUpdate": {"maxUnavailable": 1},
                },
                "template": {
                    "metadata": {
                        "labels": {**selector, **constants.managed_labels},
                        "annotations": {"hubblectl.io/config-checksum": checksum},
                    },
                    "spec": {
                        "serviceAccountName": name,
                        "automountServiceAccountToken": False,
                        "containers": [
                            {
                                "name": name,
                                "image": _image(values, "hubble.relay.image"),
                                "imagePullPolicy": "IfNotPresent",
                                "command": ["hubble-relay"],
                                "args": ["serve"],
                                "ports": [
                                    {
                                        "name": "grpc",
                                        "containerPort": listen_port,
                                        "protocol": "TCP",
                                    }
                                ],
                                "readinessProbe": {"tcpSocket": {"port": "grpc"}},
                                "livenessProbe": {"tcpSocket": {"port": "grpc"}},
                                "volumeMounts": [
                                    {
                                        "name": "config",
                                        "mountPath": "/etc/hubble-relay",
                                        "readOnly": True,
                                    },
                                    {"name": "tls", "mountPath": TLS_DIR, "readOnly": True},
                                ],
                            }
                        ],
                        "volumes": [
                            {
                                "name": "config",
                                "configMap": {
                                    "name": constants.RELAY_CONFIG_NAME,
                                    "items": [{"key": "config.yaml", "path": "config.yaml"}],
                                },
                            },
                            {
                                "name": "tls",
                                "projected": {
                                    "defaultMode": 0o400,
                                    "sources": [
                                        {
                                            "secret": {
                                                "name": constants.RELAY_CLIENT_CERTS_NAME,
                                                "items": [
                                                    {"key": "tls.crt", "path": "client.crt"},
                                                    {"key": "tls.key", "path": "client.key"},
                                                    {
                                                        "key": "ca.crt",
                                                        "path": "hubble-server-ca.crt",
                                                    },
                                                ],
                                            }
                                        },
                                        {
                                            "secret": {
                                                "name": constants.RELAY_SERVER_CERTS_NAME,
                                                "items": [
                                                    {"key": "tls.crt", "path": "server.crt"},
                                                    {"key": "tls.key", "path": "server.key"},
                                                ],
                                            }
                                        },
                                    ],
                                },
                            },
                        ],
                        **_scheduling(values, "hubble.relay"),
                    },
                },
            },
        },
        {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": _metadata(name, namespace, constants),
            "spec": {
                "type": "ClusterIP",
                "selector": selector,
                "ports": [
                    {
                        "protocol": "TCP",
                        "port": values.get("hubble.relay.servicePort"),
                        "targetPort": listen_port,
                    }
                ],
            },
        },
    ]


def relay_refs(
    namespace: str, constants: HubbleConstants = DEFAULT_CONSTANTS
) -> list[ObjectRef]:
    """Relay objects in deletion order."""
    return [
        ObjectRef("Service", constants.RELAY_NAME, namespace),
        ObjectRef("Deployment", constants.RELAY_NAME, namespace),
        ObjectRef("Secret", constants.RELAY_CLIENT_CERTS_NAME, namespace),
        ObjectRef("Secret", constants.RELAY_SERVER_CERTS_NAME, namespace),
        ObjectRef("ConfigMap", constants.RELAY_CONFIG_NAME, namespace),
        ObjectRef("ServiceAccount", constants.RELAY_NAME, namespace),
    ]


# =============================================================================
# UI
# =============================================================================


def ui_objects(
    values: ResolvedValues,
    namespace: str,
    constants: HubbleConstants = DEFAULT_CONSTANTS,
) -> list[dict[str, Any]]:
    """UI manifests in creation order."""
    name = constants.UI_NAME
    selector = {"k8s-app": name}
    relay_addr = f"{constants.RELAY_NAME}:{values.get('hubble.relay.servicePort')}"

    return [
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": _metadata(name, namespace, constants),
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRole",
            "metadata": _metadata(name, None, constants),
            "rules": [
                {
                    "apiGroups": ["networking.k8s.io"],
                    "resources": ["networkpolicies"],
                    "verbs": ["get", "list", "watch"],
                },
                {
                    "apiGroups": [""],
                    "resources": [
                        "componentstatuses",
                        "endpoints",
                        "namespaces",
                        "nodes",
                        "pods",
                        "services",
                    ],
                    "verbs": ["get", "list", "watch"],
                },
                {
                    "apiGroups": ["apiextensions.k8s.io"],
                    "resources": ["customresourcedefinitions"],
                    "verbs": ["get", "list", "watch"],
                },
                {
                    "apiGroups": ["cilium.io"],
                    "resources": ["*"],
                    "verbs": ["get", "list", "watch"],
                },
            ],
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": _metadata(name, None, constants),
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": name,
            },
            "subjects": [{"kind": "ServiceAccount", "name": name, "namespace": namespace}],
        },
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": _metadata(constants.UI_NGINX_CONFIG_NAME, namespace, constants),
            "data": {"nginx.conf": NGINX_CONF},
        },
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": _metadata(name, namespace, constants),
            "spec": {
                "replicas": values.get("hubble.ui.replicas"),
                "selector": {"matchLabels": selector},
                "template": {
                    "metadata": {"labels": {**selector, **constants.managed_labels}},
                    "spec": {
                        "serviceAccountName": name,
                        "containers": [
                            {
                                "name": "frontend",
                                "image": _image(values, "hubble.ui.frontend.image"),
                                "imagePullPolicy": "IfNotPresent",
                                "ports": [
                                    {"name": "http", "containerPort": constants.UI_FRONTEND_PORT}
                                ],
                                "volumeMounts": [
                                    {
                                        "name": "hubble-ui-nginx-conf",
                                        "mountPath": "/etc/nginx/conf.d/default.conf",
                                        "subPath": "nginx.conf",
                                    },
                                    {"name": "tmp-dir", "mountPath": "/tmp"},
                                ],
                            },
                            {
                                "name": "backend",
                                "image": _image(values, "hubble.ui.backend.image"),
                                "imagePullPolicy": "IfNotPresent",
                                "env": [
                                    {
                                        "name": "EVENTS_SERVER_PORT",
                                        "value": str(constants.UI_BACKEND_PORT),
                                    },
                                    {"name": "FLOWS_API_ADDR", "value": relay_addr},
                                ],
                                "ports": [
                                    {"name": "grpc", "containerPort": constants.UI_BACKEND_PORT}
                                ],
                            },
                        ],
                        "volumes": [
                            {
                                "name": "hubble-ui-nginx-conf",
                                "configMap": {
                                    "name": constants.UI_NGINX_CONFIG_NAME,
                                    "defaultMode": 0o644,
                                },
                            },
                            {"name": "tmp-dir", "emptyDir": {}},
                        ],
                        **_scheduling(values, "hubble.ui"),
                    },
                },
            },
        },
        {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": _metadata(name, namespace, constants),
            "spec": {
                "type": "ClusterIP",
                "selector": selector,
                "ports": [
                    {
                        "name": "http",
                        "port": values.get("hubble.ui.servicePort"),
                        "targetPort": constants.UI_FRONTEND_PORT,
                    }
                ],
            },
        },
    ]


def ui_refs(namespace: str, constants: HubbleConstants = DEFAULT_CONSTANTS) -> list[ObjectRef]:
    """UI objects in deletion order."""
    return [
        ObjectRef("Service", constants.UI_NAME, namespace),
        ObjectRef("Deployment", constants.UI_NAME, namespace),
        ObjectRef("ConfigMap", constants.UI_NGINX_CONFIG_NAME, namespace),
        ObjectRef("ClusterRoleBinding", constants.UI_NAME, None),
        ObjectRef("ClusterRole", constants.UI_NAME, None),
        ObjectRef("ServiceAccount", constants.UI_NAME, namespace),
    ]


# =============================================================================
# Diffing
# =============================================================================


def _contains(current: Any, desired: Any) -> bool:
    """Whether ``current`` already holds everything in ``desired``."""
    if isinstance(desired, dict):
        return isinstance(current, dict) and all(
            k in current and _contains(current[k], v) for k, v in desired.items()
        )
    if isinstance(desired, list):
        return (
            isinstance(current, list)
            and len(current) == len(desired)
            and all(_contains(c, d) for c, d in zip(current, desired, strict=True))
        )
    return bool(current == desired)


def compute_merge_patch(current: dict[str, Any], desired: dict[str, Any]) -> dict[str, Any]:
    """Build a JSON merge patch carrying only the fields of ``desired`` that differ.

    Fields present only in ``current`` (status, resourceVersion, server
    defaults) are left untouched. Lists are replaced wholesale when any
    element differs. An empty result means no update is needed.
    """
    patch: dict[str, Any] = {}
    for key, value in desired.items():
        existing = current.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            nested = compute_merge_patch(existing, value)
            if nested:
                patch[key] = nested
        elif key not in current or not _contains(existing, value):
            patch[key] = value
    return patch
