"""Tests for the imperative installer."""

from unittest.mock import MagicMock

import pytest

from hubblectl.hubble.errors import CertificateError, InstallError
from hubblectl.hubble.installer import ComponentState, ImperativeInstaller
from hubblectl.hubble.values import ConfigMerger
from hubblectl.hubble.values_store import ValuesStore
from tests.fixtures import FakeController, make_params

SECRET = "hubble-cli-helm-values"


@pytest.fixture
def installer(fake_controller: FakeController, mock_console: MagicMock) -> ImperativeInstaller:
    return ImperativeInstaller(fake_controller, console=mock_console)


def _resolve(**overrides):
    params = make_params(**overrides)
    values = ConfigMerger().resolve(params)
    return params.resolved(values, "kube-system"), values


class TestApply:
    """Tests for ImperativeInstaller.apply."""

    @pytest.mark.asyncio
    async def test_creates_relay_objects(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()

        status = await installer.apply(params, values)

        assert fake_controller.has("Deployment", "hubble-relay")
        assert fake_controller.has("Service", "hubble-relay")
        assert fake_controller.has("ConfigMap", "hubble-relay-config")
        assert fake_controller.has("Secret", "hubble-relay-server-certs")
        assert fake_controller.has("Secret", "hubble-relay-client-certs")
        assert not fake_controller.has("Deployment", "hubble-ui")
        assert status.states() == {
            "hubble-relay": ComponentState.PROGRESSING,
            "hubble-ui": ComponentState.DISABLED,
        }

    @pytest.mark.asyncio
    async def test_creates_ui_objects_when_enabled(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve(ui=True)

        await installer.apply(params, values)

        assert fake_controller.has("Deployment", "hubble-ui")
        assert fake_controller.has("ClusterRole", "hubble-ui", None)
        assert fake_controller.has("ClusterRoleBinding", "hubble-ui", None)

    @pytest.mark.asyncio
    async def test_saves_record_after_resources(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()

        await installer.apply(params, values)

        creates = [name for op, _, name in fake_controller.calls if op in ("create", "replace")]
        assert creates[-1] == SECRET
        record = await ValuesStore(fake_controller).load(SECRET, "kube-system")
        assert record.installer == "classic"
        assert record.values.get("hubble.tls.ca.cert")
        assert record.values.get("hubble.relay.replicas") == 1

    @pytest.mark.asyncio
    async def test_reapply_sends_no_patches(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve(ui=True)
        await installer.apply(params, values)
        fake_controller.calls.clear()

        await installer.apply(params, values)

        assert fake_controller.ops("create") == []
        assert fake_controller.ops("patch") == []

    @pytest.mark.asyncio
    async def test_changed_values_patch_only_changed_objects(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()
        await installer.apply(params, values)
        fake_controller.calls.clear()

        params, values = _resolve(helm_set=("hubble.relay.replicas=3",))
        await installer.apply(params, values)

        assert fake_controller.ops("patch") == [("Deployment", "hubble-relay")]
        deployment = await fake_controller.get_object("Deployment", "hubble-relay", "kube-system")
        assert deployment is not None
        assert deployment["spec"]["replicas"] == 3

    @pytest.mark.asyncio
    async def test_leaf_secrets_replaced_when_ca_changes(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()
        await installer.apply(params, values)
        await fake_controller.delete_object("Secret", "hubble-ca", "kube-system")
        fake_controller.calls.clear()

        await installer.apply(params, values)

        patched = fake_controller.ops("patch")
        assert ("Secret", "hubble-relay-server-certs") in patched
        assert ("Secret", "hubble-relay-client-certs") in patched

    @pytest.mark.asyncio
    async def test_disabling_ui_removes_its_objects(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve(ui=True)
        await installer.apply(params, values)

        params, values = _resolve(ui=False)
        await installer.apply(params, values)

        assert not fake_controller.has("Deployment", "hubble-ui")
        assert not fake_controller.has("ClusterRole", "hubble-ui", None)
        assert fake_controller.has("Deployment", "hubble-relay")

    @pytest.mark.asyncio
    async def test_cluster_failure_raises_install_error(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        fake_controller.fail_on.add(("create", "hubble-relay-config"))
        params, values = _resolve()

        with pytest.raises(InstallError) as excinfo:
            await installer.apply(params, values)

        assert "hubble-relay-config" in excinfo.value.message
        assert fake_controller.has("ServiceAccount", "hubble-relay")
        assert not fake_controller.has("Secret", SECRET)

    @pytest.mark.asyncio
    async def test_missing_ca_without_create(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve(create_ca=False)

        with pytest.raises(CertificateError):
            await installer.apply(params, values)

        assert fake_controller.calls == []


class TestRemove:
    """Tests for ImperativeInstaller.remove."""

    @pytest.mark.asyncio
    async def test_removes_everything(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve(ui=True)
        await installer.apply(params, values)

        await installer.remove(params, purge=True)

        assert fake_controller.objects == {}

    @pytest.mark.asyncio
    async def test_values_secret_deleted_last(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()
        await installer.apply(params, values)
        fake_controller.calls.clear()

        await installer.remove(params, purge=False)

        deleted = [name for _, name in fake_controller.ops("delete")]
        assert deleted[-1] == SECRET
        assert fake_controller.has("Secret", "hubble-ca")

    @pytest.mark.asyncio
    async def test_remove_twice_succeeds(
        self, installer: ImperativeInstaller, fake_controller: FakeController
    ) -> None:
        params, values = _resolve()
        await installer.apply(params, values)

        await installer.remove(params)
        await installer.remove(params)

        assert fake_controller.objects == {}
