"""Utility functions for the Kubernetes infrastructure layer.

Provides helpers for running async code in sync contexts and for parsing
the duration strings accepted on the command line.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Coroutine
from typing import Any, TypeVar

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a blocking sync context.

    This is useful for calling the async hubble core and KubernetesController
    methods from synchronous CLI commands.

    Args:
        coro: The coroutine to execute

    Returns:
        The result of the coroutine

    Example:
        from hubblectl.infra.k8s import Kr8sController, run_sync

        controller = Kr8sController()
        status = run_sync(controller.get_deployment_status("hubble-relay", "kube-system"))
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop, create a new one
        return asyncio.run(coro)
    else:
        if loop.is_running():
            # Create a new loop in a thread to avoid blocking
            import concurrent.futures

            with concurrent.futures.ThreadPoolExecutor() as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)


def parse_duration(value: str | float | int) -> float:
    """Parse a duration like '30s', '5m', '1h30m' or '250ms' to seconds.

    Bare numbers are taken as seconds.

    Raises:
        ValueError: If the string is not a valid duration
    """
    if isinstance(value, int | float):
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        amount, unit = float(match.group(1)), match.group(2)
        total += amount * {"ms": 0.001, "s": 1, "m": 60, "h": 3600}[unit]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total
