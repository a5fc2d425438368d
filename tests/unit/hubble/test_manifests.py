"""Tests for manifest builders and merge patch computation."""

import base64

import pytest
import yaml

from hubblectl.hubble.certs import CAState, generate_ca
from hubblectl.hubble.installer.manifests import (
    compute_merge_patch,
    relay_config,
    relay_objects,
    relay_refs,
    ref_of,
    ui_objects,
    ui_refs,
)
from hubblectl.hubble.values import ConfigMerger
from tests.fixtures import make_params


@pytest.fixture(scope="module")
def ca_state() -> CAState:
    ca = generate_ca()
    return CAState(ca=ca, relay_server=ca, relay_client=ca)


@pytest.fixture
def values():
    return ConfigMerger().resolve(
        make_params(ui=True, helm_set=("hubble.relay.replicas=2",))
    )


class TestRelayObjects:
    """Tests for relay manifests."""

    def test_object_kinds_in_order(self, values, ca_state: CAState) -> None:
        kinds = [m["kind"] for m in relay_objects(values, "kube-system", ca_state)]
        assert kinds == [
            "ServiceAccount",
            "ConfigMap",
            "Secret",
            "Secret",
            "Deployment",
            "Service",
        ]

    def test_deployment_uses_values(self, values, ca_state: CAState) -> None:
        deployment = relay_objects(values, "kube-system", ca_state)[4]
        container = deployment["spec"]["template"]["spec"]["containers"][0]
        assert deployment["spec"]["replicas"] == 2
        assert container["image"] == "quay.io/cilium/hubble-relay:v1.14.2"
        assert container["ports"][0]["containerPort"] == 4245

    def test_service_maps_port_80_to_listen_port(self, values, ca_state: CAState) -> None:
        service = relay_objects(values, "kube-system", ca_state)[5]
        assert service["spec"]["ports"][0]["port"] == 80
        assert service["spec"]["ports"][0]["targetPort"] == 4245

    def test_cert_secrets_carry_ca(self, values, ca_state: CAState) -> None:
        secret = relay_objects(values, "kube-system", ca_state)[2]
        assert secret["type"] == "kubernetes.io/tls"
        assert base64.b64decode(secret["data"]["ca.crt"]).decode() == ca_state.ca.cert_pem

    def test_all_objects_are_labelled(self, values, ca_state: CAState) -> None:
        for manifest in relay_objects(values, "kube-system", ca_state):
            labels = manifest["metadata"]["labels"]
            assert labels["app.kubernetes.io/managed-by"] == "hubblectl"
            assert manifest["metadata"]["namespace"] == "kube-system"

    def test_config_points_at_peer_service(self, values) -> None:
        config = yaml.safe_load(relay_config(values))
        assert config["peer-service"] == "hubble-peer.kube-system.svc.cluster.local:443"
        assert config["listen-address"] == ":4245"
        assert config["disable-server-tls"] is True

    def test_refs_match_objects(self, values, ca_state: CAState) -> None:
        built = {ref_of(m) for m in relay_objects(values, "kube-system", ca_state)}
        assert built == set(relay_refs("kube-system"))


class TestUIObjects:
    """Tests for UI manifests."""

    def test_cluster_scoped_objects_have_no_namespace(self, values) -> None:
        objects = {m["kind"]: m for m in ui_objects(values, "kube-system")}
        assert "namespace" not in objects["ClusterRole"]["metadata"]
        assert "namespace" not in objects["ClusterRoleBinding"]["metadata"]
        subject = objects["ClusterRoleBinding"]["subjects"][0]
        assert subject["namespace"] == "kube-system"

    def test_backend_talks_to_relay(self, values) -> None:
        deployment = next(m for m in ui_objects(values, "kube-system") if m["kind"] == "Deployment")
        backend = deployment["spec"]["template"]["spec"]["containers"][1]
        env = {e["name"]: e["value"] for e in backend["env"]}
        assert env["FLOWS_API_ADDR"] == "hubble-relay:80"

    def test_refs_match_objects(self, values) -> None:
        built = {ref_of(m) for m in ui_objects(values, "kube-system")}
        assert built == set(ui_refs("kube-system"))


class TestComputeMergePatch:
    """Tests for minimal merge patches."""

    def test_identical_objects_need_no_patch(self) -> None:
        desired = {"spec": {"replicas": 1, "selector": {"a": "b"}}}
        assert compute_merge_patch(desired, desired) == {}

    def test_cluster_assigned_fields_are_ignored(self) -> None:
        current = {
            "metadata": {"name": "x", "uid": "123", "resourceVersion": "9"},
            "spec": {"replicas": 1, "progressDeadlineSeconds": 600},
            "status": {"readyReplicas": 1},
        }
        desired = {"metadata": {"name": "x"}, "spec": {"replicas": 1}}
        assert compute_merge_patch(current, desired) == {}

    def test_only_changed_fields_are_patched(self) -> None:
        current = {"spec": {"replicas": 1, "paused": False}, "data": {"a": "1"}}
        desired = {"spec": {"replicas": 3, "paused": False}, "data": {"a": "1"}}
        assert compute_merge_patch(current, desired) == {"spec": {"replicas": 3}}

    def test_list_with_server_defaults_is_unchanged(self) -> None:
        current = {"ports": [{"port": 80, "protocol": "TCP", "targetPort": 4245}]}
        desired = {"ports": [{"port": 80, "targetPort": 4245}]}
        assert compute_merge_patch(current, desired) == {}

    def test_changed_list_is_replaced_whole(self) -> None:
        current = {"ports": [{"port": 80}, {"port": 81}]}
        desired = {"ports": [{"port": 80}]}
        assert compute_merge_patch(current, desired) == {"ports": [{"port": 80}]}

    def test_missing_field_is_added(self) -> None:
        assert compute_merge_patch({"a": 1}, {"a": 1, "b": {"c": 2}}) == {"b": {"c": 2}}
