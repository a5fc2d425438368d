"""Readiness polling for Hubble deployments."""

from __future__ import annotations

import asyncio

from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import DeploymentStatus, KubernetesController, KubernetesError

from .errors import ComponentFailedError, WaitTimeoutError
from .installer.base import ComponentState, ComponentStatus, InstallationStatus
from .parameters import Parameters

# Pod waiting reasons that will not resolve without user intervention
FAILURE_REASONS = frozenset(
    {
        "CrashLoopBackOff",
        "ImagePullBackOff",
        "ErrImagePull",
        "InvalidImageName",
        "CreateContainerConfigError",
    }
)


def evaluate(name: str, deployment: DeploymentStatus | None) -> ComponentStatus:
    """Classify one deployment as Unknown, Progressing, Ready or Failed."""
    if deployment is None:
        return ComponentStatus(name=name, state=ComponentState.UNKNOWN, message="not found")

    status = ComponentStatus(
        name=name,
        state=ComponentState.PROGRESSING,
        ready_replicas=deployment.ready_replicas,
        desired_replicas=deployment.replicas,
    )

    replica_failure = deployment.condition("ReplicaFailure")
    if replica_failure is not None and replica_failure.status == "True":
        status.state = ComponentState.FAILED
        status.message = replica_failure.message or replica_failure.reason
        return status

    progressing = deployment.condition("Progressing")
    if progressing is not None and progressing.reason == "ProgressDeadlineExceeded":
        status.state = ComponentState.FAILED
        status.message = progressing.message or progressing.reason
        return status

    fatal = sorted(set(deployment.pod_waiting_reasons) & FAILURE_REASONS)
    if fatal:
        status.state = ComponentState.FAILED
        status.message = f"pods waiting: {', '.join(fatal)}"
        return status

    if (
        deployment.observed_generation >= deployment.generation
        and deployment.ready_replicas >= deployment.replicas
        and deployment.updated_replicas >= deployment.replicas
    ):
        status.state = ComponentState.READY
    else:
        status.message = (
            f"{deployment.ready_replicas}/{deployment.replicas} replicas ready"
        )
    return status


class ReadinessWaiter:
    """Polls the enabled components until they are ready, fail or time out."""

    def __init__(
        self,
        controller: KubernetesController,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
        poll_interval: float | None = None,
    ) -> None:
        self.controller = controller
        self.constants = constants
        self.poll_interval = (
            poll_interval if poll_interval is not None else constants.STATUS_POLL_INTERVAL
        )

    def _components(self, params: Parameters) -> dict[str, bool]:
        return {
            self.constants.RELAY_NAME: bool(params.relay),
            self.constants.UI_NAME: bool(params.ui),
        }

    async def status(self, params: Parameters) -> InstallationStatus:
        """Observe the current state of each component once."""
        namespace = params.namespace or self.constants.DEFAULT_NAMESPACE
        result = InstallationStatus()
        for name, enabled in self._components(params).items():
            if not enabled:
                result.components[name] = ComponentStatus(
                    name=name, state=ComponentState.DISABLED
                )
                continue
            try:
                deployment = await self.controller.get_deployment_status(name, namespace)
            except KubernetesError as e:
                logger.warning(f"Unable to read status of {name}: {e}")
                result.components[name] = ComponentStatus(
                    name=name, state=ComponentState.UNKNOWN, message=str(e)
                )
                continue
            result.components[name] = evaluate(name, deployment)
        return result

    async def wait_ready(
        self, params: Parameters, timeout: float | None = None
    ) -> InstallationStatus:
        """Block until every enabled component is ready.

        Args:
            params: Parameters with namespace and relay/ui toggles resolved
            timeout: Seconds to wait (defaults to params.wait_duration)

        Returns:
            The final InstallationStatus, all components Ready or Disabled

        Raises:
            ComponentFailedError: A component reached a failed state
            WaitTimeoutError: The deadline passed first
        """
        timeout = params.wait_duration if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            status = await self.status(params)
            logger.debug(f"Hubble status: {status.states()}")

            if status.failed:
                names = ", ".join(c.name for c in status.failed)
                raise ComponentFailedError(
                    f"Hubble components failed: {names}",
                    status,
                    details="; ".join(f"{c.name}: {c.message}" for c in status.failed),
                )
            if status.ready:
                return status

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise WaitTimeoutError(
                    f"Timed out after {timeout:g}s waiting for Hubble to become ready",
                    status,
                    details="Increase --wait-duration or check the pods in the namespace.",
                )
            await asyncio.sleep(min(self.poll_interval, remaining))
