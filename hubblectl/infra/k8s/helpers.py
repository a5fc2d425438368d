from __future__ import annotations

import os

from cachetools.func import lru_cache  # type: ignore

from hubblectl.infra.constants import DEFAULT_CONSTANTS
from hubblectl.infra.k8s.controller import KubernetesController


@lru_cache(maxsize=8)
def get_k8s_controller(context: str | None = None) -> KubernetesController:
    """Get the KubernetesController for a kubeconfig context.

    Args:
        context: kubeconfig context name, or None for the active context

    Returns:
        An instance of KubernetesController
    """
    from hubblectl.infra.k8s.kr8s_controller import Kr8sController

    return Kr8sController(context)


def get_namespace(namespace: str | None = None) -> str:
    """Get the Hubble namespace from the argument, environment or default."""
    if namespace:
        return namespace
    return os.environ.get(
        DEFAULT_CONSTANTS.NAMESPACE_ENV_VAR, DEFAULT_CONSTANTS.DEFAULT_NAMESPACE
    )
