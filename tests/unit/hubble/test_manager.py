"""Tests for the enable/disable/port-forward/ui workflows."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import yaml

from hubblectl.hubble import HubbleManager
from hubblectl.hubble.errors import ConfigError
from hubblectl.hubble.installer import ComponentState
from hubblectl.hubble.readiness import ReadinessWaiter
from hubblectl.hubble.redaction import REDACTED
from hubblectl.hubble.tunnel import TunnelManager
from hubblectl.hubble.values import ConfigMerger, ResolvedValues
from hubblectl.hubble.values_store import PersistedValuesRecord, ValuesStore
from tests.fixtures import FakeController, make_params

SECRET = "hubble-cli-helm-values"


@pytest.fixture
def manager(fake_controller: FakeController, mock_console: MagicMock) -> HubbleManager:
    return HubbleManager(
        fake_controller,
        console=mock_console,
        mode="classic",
        waiter=ReadinessWaiter(fake_controller, poll_interval=0.01),
        tunnels=TunnelManager(
            fake_controller,
            keepalive_interval=0.01,
            backoff_initial=0.01,
            backoff_max=0.02,
            launch_browser=MagicMock(),
        ),
    )


class TestEnable:
    """Tests for HubbleManager.enable."""

    @pytest.mark.asyncio
    async def test_relay_only_with_wait(self, manager: HubbleManager) -> None:
        status = await manager.enable(
            make_params(relay=True, wait=True, wait_duration="30s")
        )

        assert status is not None
        assert status.states() == {
            "hubble-relay": ComponentState.READY,
            "hubble-ui": ComponentState.DISABLED,
        }

    @pytest.mark.asyncio
    async def test_without_wait_returns_progressing(self, manager: HubbleManager) -> None:
        status = await manager.enable(make_params(ui=True))

        assert status is not None
        assert status.states()["hubble-ui"] == ComponentState.PROGRESSING

    @pytest.mark.asyncio
    async def test_dry_run_prints_redacted_values(
        self,
        manager: HubbleManager,
        fake_controller: FakeController,
        mock_console: MagicMock,
    ) -> None:
        # Seed a record holding key material
        await ValuesStore(fake_controller).save(
            PersistedValuesRecord(
                values=ResolvedValues({"hubble": {"tls": {"ca": {"key": "secret-key"}}}}),
                namespace="kube-system",
                installer="classic",
            ),
            SECRET,
            "kube-system",
        )
        fake_controller.calls.clear()

        result = await manager.enable(make_params(dry_run_helm_values=True))

        assert result is None
        printed = mock_console.print.call_args[0][0]
        tree = yaml.safe_load(printed)
        assert tree["hubble"]["tls"]["ca"]["key"] == REDACTED
        assert fake_controller.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_unredacted(
        self, manager: HubbleManager, mock_console: MagicMock
    ) -> None:
        await manager.enable(
            make_params(
                dry_run_helm_values=True,
                redact_helm_certificate_keys=False,
                helm_set=("hubble.tls.ca.key=plain",),
            )
        )

        tree = yaml.safe_load(mock_console.print.call_args[0][0])
        assert tree["hubble"]["tls"]["ca"]["key"] == "plain"

    @pytest.mark.asyncio
    async def test_writes_generated_values_file(
        self, manager: HubbleManager, tmp_path: Path
    ) -> None:
        target = tmp_path / "values.yaml"

        await manager.enable(make_params(helm_gen_values_file=target, dry_run_helm_values=True))

        tree = yaml.safe_load(target.read_text())
        assert tree["hubble"]["relay"]["enabled"] is True

    @pytest.mark.asyncio
    async def test_prior_values_are_reused(
        self, manager: HubbleManager, fake_controller: FakeController
    ) -> None:
        await manager.enable(make_params(ui=True))

        await manager.enable(make_params())

        record = await ValuesStore(fake_controller).load(SECRET, "kube-system")
        assert record.values.get("hubble.ui.enabled") is True
        assert fake_controller.has("Deployment", "hubble-ui")

    @pytest.mark.asyncio
    async def test_installer_change_warns(
        self,
        manager: HubbleManager,
        fake_controller: FakeController,
        mock_console: MagicMock,
    ) -> None:
        await ValuesStore(fake_controller).save(
            PersistedValuesRecord(
                values=ResolvedValues({}), namespace="kube-system", installer="helm"
            ),
            SECRET,
            "kube-system",
        )

        await manager.enable(make_params())

        mock_console.warn.assert_called_once()
        assert "helm" in mock_console.warn.call_args[0][0]


class TestDisable:
    """Tests for HubbleManager.disable."""

    @pytest.mark.asyncio
    async def test_recovers_namespace_and_removes_everything(
        self, manager: HubbleManager, fake_controller: FakeController
    ) -> None:
        await manager.enable(make_params(namespace="cilium", ui=True))
        fake_controller.calls.clear()

        await manager.disable(make_params(namespace=None))

        assert fake_controller.objects == {}
        deleted = [name for _, name in fake_controller.ops("delete")]
        assert SECRET in deleted
        assert deleted.index(SECRET) > deleted.index("hubble-relay")

    @pytest.mark.asyncio
    async def test_keep_ca(self, manager: HubbleManager, fake_controller: FakeController) -> None:
        await manager.enable(make_params())

        await manager.disable(make_params(keep_ca=True))

        assert fake_controller.has("Secret", "hubble-ca")
        assert not fake_controller.has("Secret", SECRET)

    @pytest.mark.asyncio
    async def test_disable_twice(
        self, manager: HubbleManager, fake_controller: FakeController
    ) -> None:
        await manager.enable(make_params())

        await manager.disable(make_params())
        await manager.disable(make_params())

        assert fake_controller.objects == {}


class TestForwarding:
    """Tests for port-forward and ui."""

    @pytest.mark.asyncio
    async def test_port_forward_targets_relay_service_port(
        self, manager: HubbleManager, fake_controller: FakeController
    ) -> None:
        await manager.enable(make_params(helm_set=("hubble.relay.servicePort=8080",)))
        fake_controller.ready_services.add("hubble-relay")
        start = AsyncMock(wraps=manager.tunnels.start)
        manager.tunnels.start = start  # type: ignore[method-assign]

        task = asyncio.create_task(manager.port_forward(make_params(namespace=None)))
        while not fake_controller.port_forwards:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        local_port, target = start.call_args[0]
        assert local_port == 4245
        assert target.port == 8080
        assert target.namespace == "kube-system"
        assert fake_controller.port_forwards[-1].closed

    @pytest.mark.asyncio
    async def test_ui_requires_enabled_ui(self, manager: HubbleManager) -> None:
        await manager.enable(make_params(ui=False))

        with pytest.raises(ConfigError):
            await manager.ui(make_params())

    @pytest.mark.asyncio
    async def test_ui_opens_browser(
        self, manager: HubbleManager, fake_controller: FakeController
    ) -> None:
        await manager.enable(make_params(ui=True))
        fake_controller.ready_services.add("hubble-ui")

        task = asyncio.create_task(manager.ui(make_params(ui_port_forward=12001)))
        while not fake_controller.port_forwards:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        manager.tunnels.launch_browser.assert_called_once_with("http://localhost:12001")


def test_builds_installer_for_mode(fake_controller: FakeController) -> None:
    manager = HubbleManager(fake_controller, mode="helm")
    assert isinstance(manager.merger, ConfigMerger)
    assert manager.installer.kind == "helm"
