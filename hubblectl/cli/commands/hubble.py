"""Hubble lifecycle commands.

This module provides the enable, disable, port-forward and ui commands.
"""

from pathlib import Path
from typing import Annotated

import typer

from hubblectl.hubble import Parameters
from hubblectl.infra.constants import DEFAULT_CONSTANTS
from hubblectl.infra.k8s import run_sync

from ..context import get_cli_context
from ..shared.console import with_error_handling

# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

SecretNameOption = Annotated[
    str,
    typer.Option(
        "--helm-values-secret-name",
        help="Secret holding the values of the last enable",
    ),
]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@with_error_handling
def enable(
    ctx: typer.Context,
    relay: Annotated[
        bool | None,
        typer.Option("--relay/--no-relay", help="Deploy Hubble Relay"),
    ] = None,
    relay_image: Annotated[
        str | None,
        typer.Option("--relay-image", help="Image path to use for Relay"),
    ] = None,
    relay_version: Annotated[
        str | None,
        typer.Option("--relay-version", help="Version of Relay to deploy"),
    ] = None,
    ui: Annotated[
        bool | None,
        typer.Option("--ui/--no-ui", help="Enable Hubble UI"),
    ] = None,
    ui_image: Annotated[
        str | None,
        typer.Option("--ui-image", help="Image path to use for UI"),
    ] = None,
    ui_backend_image: Annotated[
        str | None,
        typer.Option("--ui-backend-image", help="Image path to use for UI backend"),
    ] = None,
    ui_version: Annotated[
        str | None,
        typer.Option("--ui-version", help="Version of UI to deploy"),
    ] = None,
    create_ca: Annotated[
        bool,
        typer.Option(
            "--create-ca/--no-create-ca",
            help="Automatically create CA if needed",
        ),
    ] = True,
    wait: Annotated[
        bool,
        typer.Option("--wait/--no-wait", help="Wait for status to report success"),
    ] = True,
    wait_duration: Annotated[
        str,
        typer.Option("--wait-duration", help="Maximum time to wait for status (e.g. 5m, 90s)"),
    ] = DEFAULT_CONSTANTS.STATUS_WAIT_DURATION,
    chart_directory: Annotated[
        Path | None,
        typer.Option(
            "--chart-directory", help="Helm chart directory (required by the helm installer)"
        ),
    ] = None,
    helm_values: Annotated[
        list[Path] | None,
        typer.Option("--helm-values", "-f", help="Values file (can specify multiple)"),
    ] = None,
    helm_set: Annotated[
        list[str] | None,
        typer.Option("--helm-set", help="Set values (key1=val1,key2=val2)"),
    ] = None,
    helm_set_string: Annotated[
        list[str] | None,
        typer.Option("--helm-set-string", help="Set string values (key1=val1,key2=val2)"),
    ] = None,
    helm_set_file: Annotated[
        list[str] | None,
        typer.Option("--helm-set-file", help="Set values from files (key1=path1,key2=path2)"),
    ] = None,
    helm_auto_gen_values: Annotated[
        Path | None,
        typer.Option("--helm-auto-gen-values", help="Write the resolved values to this file"),
    ] = None,
    helm_values_secret_name: SecretNameOption = DEFAULT_CONSTANTS.HELM_VALUES_SECRET_NAME,
    redact_helm_certificate_keys: Annotated[
        bool,
        typer.Option(
            "--redact-helm-certificate-keys/--no-redact-helm-certificate-keys",
            help="Do not print certificate keys in displayed values",
        ),
    ] = True,
    dry_run_helm_values: Annotated[
        bool,
        typer.Option("--dry-run-helm-values", help="Print the resolved values and exit"),
    ] = False,
) -> None:
    """Enable Hubble observability.

    Examples:
        hubblectl enable
        hubblectl enable --ui
        hubblectl -n cilium enable --helm-set hubble.relay.replicas=2
        hubblectl enable --dry-run-helm-values
    """
    cli = get_cli_context(ctx)
    params = Parameters.build(
        context=cli.kube_context,
        namespace=cli.namespace,
        relay=relay,
        relay_image=relay_image,
        relay_version=relay_version,
        ui=ui,
        ui_image=ui_image,
        ui_backend_image=ui_backend_image,
        ui_version=ui_version,
        create_ca=create_ca,
        wait=wait,
        wait_duration=wait_duration,
        chart_directory=chart_directory,
        helm_values=tuple(helm_values or ()),
        helm_set=tuple(helm_set or ()),
        helm_set_string=tuple(helm_set_string or ()),
        helm_set_file=tuple(helm_set_file or ()),
        helm_gen_values_file=helm_auto_gen_values,
        helm_values_secret_name=helm_values_secret_name,
        redact_helm_certificate_keys=redact_helm_certificate_keys,
        dry_run_helm_values=dry_run_helm_values,
    )

    status = run_sync(cli.manager().enable(params))
    if status is not None:
        cli.console.print_status(status)


@with_error_handling
def disable(
    ctx: typer.Context,
    helm_values_secret_name: SecretNameOption = DEFAULT_CONSTANTS.HELM_VALUES_SECRET_NAME,
    keep_ca: Annotated[
        bool,
        typer.Option("--keep-ca", help="Keep the hubble-ca secret"),
    ] = False,
) -> None:
    """Disable Hubble observability.

    Without --namespace the installation is located through its values secret.

    Examples:
        hubblectl disable
        hubblectl -n cilium disable --keep-ca
    """
    cli = get_cli_context(ctx)
    params = Parameters.build(
        context=cli.kube_context,
        namespace=cli.namespace,
        helm_values_secret_name=helm_values_secret_name,
        keep_ca=keep_ca,
    )
    run_sync(cli.manager().disable(params))


@with_error_handling
def port_forward(
    ctx: typer.Context,
    port_forward: Annotated[
        int,
        typer.Option("--port-forward", help="Local port to forward to"),
    ] = DEFAULT_CONSTANTS.RELAY_PORT_FORWARD,
    helm_values_secret_name: SecretNameOption = DEFAULT_CONSTANTS.HELM_VALUES_SECRET_NAME,
) -> None:
    """Forward the relay port to the local machine.

    Runs until interrupted with Ctrl-C; a dropped tunnel is re-established.

    Examples:
        hubblectl port-forward
        hubblectl port-forward --port-forward 14245
    """
    cli = get_cli_context(ctx)
    params = Parameters.build(
        context=cli.kube_context,
        namespace=cli.namespace,
        port_forward=port_forward,
        helm_values_secret_name=helm_values_secret_name,
    )
    run_sync(cli.manager().port_forward(params))


@with_error_handling
def ui(
    ctx: typer.Context,
    port_forward: Annotated[
        int,
        typer.Option("--port-forward", help="Local port to use for the port forward"),
    ] = DEFAULT_CONSTANTS.UI_PORT_FORWARD,
    open_browser: Annotated[
        bool,
        typer.Option(
            "--open-browser/--no-open-browser",
            help="Open the browser once the port forward is up",
        ),
    ] = True,
    helm_values_secret_name: SecretNameOption = DEFAULT_CONSTANTS.HELM_VALUES_SECRET_NAME,
) -> None:
    """Open the Hubble UI.

    Examples:
        hubblectl ui
        hubblectl ui --port-forward 8080 --no-open-browser
    """
    cli = get_cli_context(ctx)
    params = Parameters.build(
        context=cli.kube_context,
        namespace=cli.namespace,
        ui_port_forward=port_forward,
        ui_open_browser=open_browser,
        helm_values_secret_name=helm_values_secret_name,
    )
    run_sync(cli.manager().ui(params))
