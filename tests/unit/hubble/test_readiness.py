"""Tests for readiness evaluation and waiting."""

import pytest

from hubblectl.hubble.errors import ComponentFailedError, WaitTimeoutError
from hubblectl.hubble.installer import ComponentState
from hubblectl.hubble.readiness import ReadinessWaiter, evaluate
from hubblectl.infra.k8s import DeploymentCondition, DeploymentStatus
from tests.fixtures import FakeController, make_params


def _status(**kwargs) -> DeploymentStatus:
    defaults = {
        "name": "hubble-relay",
        "replicas": 1,
        "ready_replicas": 1,
        "updated_replicas": 1,
        "generation": 2,
        "observed_generation": 2,
    }
    defaults.update(kwargs)
    return DeploymentStatus(**defaults)


class TestEvaluate:
    """Tests for single-deployment classification."""

    def test_missing_deployment_is_unknown(self) -> None:
        assert evaluate("hubble-relay", None).state == ComponentState.UNKNOWN

    def test_rolled_out_is_ready(self) -> None:
        assert evaluate("hubble-relay", _status()).state == ComponentState.READY

    def test_stale_generation_is_progressing(self) -> None:
        result = evaluate("hubble-relay", _status(observed_generation=1))
        assert result.state == ComponentState.PROGRESSING

    def test_not_enough_ready_replicas_is_progressing(self) -> None:
        result = evaluate("hubble-relay", _status(replicas=2, updated_replicas=2))
        assert result.state == ComponentState.PROGRESSING
        assert result.message == "1/2 replicas ready"

    def test_replica_failure_is_failed(self) -> None:
        status = _status(
            ready_replicas=0,
            conditions=[DeploymentCondition("ReplicaFailure", "True", "FailedCreate", "quota")],
        )
        result = evaluate("hubble-relay", status)
        assert result.state == ComponentState.FAILED
        assert result.message == "quota"

    def test_progress_deadline_is_failed(self) -> None:
        status = _status(
            ready_replicas=0,
            conditions=[DeploymentCondition("Progressing", "False", "ProgressDeadlineExceeded")],
        )
        assert evaluate("hubble-relay", status).state == ComponentState.FAILED

    @pytest.mark.parametrize(
        "reason",
        [
            "CrashLoopBackOff",
            "ImagePullBackOff",
            "ErrImagePull",
            "InvalidImageName",
            "CreateContainerConfigError",
        ],
    )
    def test_fatal_pod_reasons_fail(self, reason: str) -> None:
        status = _status(ready_replicas=0, pod_waiting_reasons=[reason])
        result = evaluate("hubble-relay", status)
        assert result.state == ComponentState.FAILED
        assert reason in result.message

    def test_container_creating_is_progressing(self) -> None:
        status = _status(ready_replicas=0, pod_waiting_reasons=["ContainerCreating"])
        assert evaluate("hubble-relay", status).state == ComponentState.PROGRESSING


class TestReadinessWaiter:
    """Tests for the polling loop."""

    @pytest.fixture
    def waiter(self, fake_controller: FakeController) -> ReadinessWaiter:
        return ReadinessWaiter(fake_controller, poll_interval=0.01)

    @pytest.mark.asyncio
    async def test_relay_only_becomes_ready(
        self, waiter: ReadinessWaiter, fake_controller: FakeController
    ) -> None:
        params = make_params(relay=True, ui=False)
        fake_controller.deployment_statuses["hubble-relay"] = _status(ready_replicas=0)

        async def _become_ready() -> None:
            fake_controller.deployment_statuses["hubble-relay"] = _status()

        original = fake_controller.get_deployment_status
        calls = 0

        async def _get(name: str, namespace: str):
            nonlocal calls
            calls += 1
            if calls == 3:
                await _become_ready()
            return await original(name, namespace)

        fake_controller.get_deployment_status = _get  # type: ignore[method-assign]

        status = await waiter.wait_ready(params, timeout=30)

        assert status.states() == {
            "hubble-relay": ComponentState.READY,
            "hubble-ui": ComponentState.DISABLED,
        }

    @pytest.mark.asyncio
    async def test_timeout_carries_last_status(
        self, waiter: ReadinessWaiter, fake_controller: FakeController
    ) -> None:
        fake_controller.deployment_statuses["hubble-relay"] = _status(ready_replicas=0)

        with pytest.raises(WaitTimeoutError) as excinfo:
            await waiter.wait_ready(make_params(relay=True), timeout=0.05)

        relay = excinfo.value.status.components["hubble-relay"]
        assert relay.state == ComponentState.PROGRESSING

    @pytest.mark.asyncio
    async def test_failure_stops_waiting(
        self, waiter: ReadinessWaiter, fake_controller: FakeController
    ) -> None:
        fake_controller.deployment_statuses["hubble-ui"] = _status(
            name="hubble-ui", ready_replicas=0, pod_waiting_reasons=["ImagePullBackOff"]
        )
        fake_controller.deployment_statuses["hubble-relay"] = _status()

        with pytest.raises(ComponentFailedError) as excinfo:
            await waiter.wait_ready(make_params(relay=True, ui=True), timeout=30)

        assert "hubble-ui" in excinfo.value.message
        assert excinfo.value.status.components["hubble-relay"].state == ComponentState.READY

    @pytest.mark.asyncio
    async def test_disabled_components_are_not_polled(
        self, waiter: ReadinessWaiter, fake_controller: FakeController
    ) -> None:
        status = await waiter.wait_ready(make_params(relay=False, ui=False), timeout=1)
        assert status.ready
