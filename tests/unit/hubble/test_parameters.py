"""Tests for invocation parameters."""

import pytest
from pydantic import ValidationError

from hubblectl.hubble.errors import ConfigError
from hubblectl.hubble.parameters import Parameters
from hubblectl.hubble.values import ResolvedValues


def test_defaults() -> None:
    params = Parameters()

    assert params.relay is None
    assert params.ui is None
    assert params.create_ca is True
    assert params.wait_duration == 300
    assert params.port_forward == 4245
    assert params.ui_port_forward == 12000
    assert params.helm_values_secret_name == "hubble-cli-helm-values"


@pytest.mark.parametrize(("raw", "seconds"), [("90s", 90), ("2m", 120), (15, 15)])
def test_wait_duration_parsing(raw, seconds) -> None:
    assert Parameters.build(wait_duration=raw).wait_duration == seconds


@pytest.mark.parametrize(
    "kwargs",
    [
        {"wait_duration": "whenever"},
        {"wait_duration": "0s"},
        {"port_forward": 0},
        {"ui_port_forward": 70000},
    ],
)
def test_build_reports_config_error(kwargs) -> None:
    with pytest.raises(ConfigError) as excinfo:
        Parameters.build(**kwargs)

    assert excinfo.value.details


def test_parameters_are_frozen() -> None:
    params = Parameters()

    with pytest.raises(ValidationError):
        params.relay = True  # type: ignore[misc]


def test_resolved_pins_namespace_and_components() -> None:
    params = Parameters(relay=None, ui=None)
    values = ResolvedValues({"hubble": {"relay": {"enabled": True}, "ui": {"enabled": False}}})

    resolved = params.resolved(values, "cilium")

    assert resolved.namespace == "cilium"
    assert resolved.relay is True
    assert resolved.ui is False
    assert params.namespace is None
