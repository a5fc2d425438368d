"""Kubernetes infrastructure abstraction layer.

This module provides a clean abstraction over the Kubernetes operations the
hubble core needs, backed by the kr8s library.

Example:
    from hubblectl.infra.k8s import get_k8s_controller, run_sync

    controller = get_k8s_controller("kind-kind")
    status = run_sync(controller.get_deployment_status("hubble-relay", "kube-system"))
"""

from .controller import (
    DeploymentCondition,
    DeploymentStatus,
    KubernetesController,
    KubernetesError,
    PortForwardError,
    PortForwardHandle,
    SecretRef,
)
from .helpers import get_k8s_controller, get_namespace
from .kr8s_controller import Kr8sController
from .utils import parse_duration, run_sync

__all__ = [
    # Controller classes
    "KubernetesController",
    "Kr8sController",
    "PortForwardHandle",
    # Errors
    "KubernetesError",
    "PortForwardError",
    # Data classes
    "DeploymentCondition",
    "DeploymentStatus",
    "SecretRef",
    # Utilities
    "get_k8s_controller",
    "get_namespace",
    "parse_duration",
    "run_sync",
]
