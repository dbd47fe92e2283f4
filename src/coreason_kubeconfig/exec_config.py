# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

"""
Renders resolved parameters into the exec credential plugin and the generated kubeconfig.
"""

import base64
import shutil
from collections.abc import Callable
from pathlib import Path

from coreason_kubeconfig.exceptions import InputError
from coreason_kubeconfig.models import (
    EXEC_API_VERSION,
    AccessDescriptor,
    AuthInfo,
    Cluster,
    Context,
    ExecConfig,
    KubeconfigNames,
    ResolvedConfig,
)

PathToSelf = Callable[[], str]

PINNIPED_EXECUTABLE = "pinniped"


def default_path_to_self() -> str:
    """
    Returns the absolute path of the `pinniped` executable found on PATH.

    Callers that install the CLI under another name or location pass their own
    `path_to_self` to `KubeconfigResolver`.

    Raises:
        InputError: If no `pinniped` executable is on PATH.
    """
    located = shutil.which(PINNIPED_EXECUTABLE)
    if located is None:
        raise InputError(
            f"could not determine the Pinniped executable path: no {PINNIPED_EXECUTABLE!r} executable found on PATH"
        )
    return str(Path(located).resolve())


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def new_exec_config(resolved: ResolvedConfig, path_to_self: PathToSelf = default_path_to_self) -> ExecConfig:
    """
    Builds the exec plugin invocation for the resolved parameters.

    The argument list is ordered: Concierge flags, the credential cache flag, then either
    the static-token login or the OIDC login flags, with the `login static` /
    `login oidc` subcommand prepended.

    Args:
        resolved: The fully resolved configuration.
        path_to_self: Returns the command to invoke.

    Returns:
        ExecConfig: The exec credential plugin configuration.

    Raises:
        InputError: If both static token inputs are set, if no OIDC issuer is known for an
            OIDC login, or if the executable path cannot be determined.
    """
    request = resolved.request
    command = path_to_self()

    args: list[str] = []
    if not request.concierge_disabled:
        args += [
            "--enable-concierge",
            f"--concierge-api-group-suffix={request.api_group_suffix}",
            f"--concierge-authenticator-name={request.authenticator_name}",
            f"--concierge-authenticator-type={request.authenticator_type}",
            f"--concierge-endpoint={request.concierge_endpoint}",
            f"--concierge-ca-bundle-data={_b64(request.concierge_ca_bundle)}",
        ]

    if request.credential_cache is not None:
        args.append(f"--credential-cache={request.credential_cache}")

    if request.static_token or request.static_token_env:
        if request.static_token and request.static_token_env:
            raise InputError("only one of --static-token and --static-token-env can be specified")
        args = ["login", "static", *args]
        if request.static_token:
            args.append(f"--token={request.static_token}")
        else:
            args.append(f"--token-env={request.static_token_env}")
        return _exec_config(command, args, request.install_hint)

    args = ["login", "oidc", *args]
    if not request.oidc_issuer:
        raise InputError("could not autodiscover --oidc-issuer and none was provided")

    args += [
        f"--issuer={request.oidc_issuer}",
        f"--client-id={request.oidc_client_id}",
        f"--scopes={','.join(request.oidc_scopes)}",
    ]
    if request.oidc_skip_browser:
        args.append("--skip-browser")
    if request.oidc_skip_listen:
        args.append("--skip-listen")
    if request.oidc_listen_port:
        args.append(f"--listen-port={request.oidc_listen_port}")
    if request.oidc_ca_bundle:
        args.append(f"--ca-bundle-data={_b64(request.oidc_ca_bundle)}")
    if request.oidc_session_cache:
        args.append(f"--session-cache={request.oidc_session_cache}")
    if request.oidc_debug_session_cache:
        args.append("--debug-session-cache")
    if request.oidc_request_audience:
        args.append(f"--request-audience={request.oidc_request_audience}")
    if request.upstream_idp_name:
        args.append(f"--upstream-identity-provider-name={request.upstream_idp_name}")
    if request.upstream_idp_type:
        args.append(f"--upstream-identity-provider-type={request.upstream_idp_type}")
    if request.upstream_idp_flow:
        args.append(f"--upstream-identity-provider-flow={request.upstream_idp_flow}")

    return _exec_config(command, args, request.install_hint)


def _exec_config(command: str, args: list[str], install_hint: str) -> ExecConfig:
    return ExecConfig(
        api_version=EXEC_API_VERSION,
        command=command,
        args=args,
        env=[],
        provide_cluster_info=True,
        install_hint=install_hint,
    )


def new_exec_kubeconfig(cluster: Cluster, exec_config: ExecConfig, names: KubeconfigNames) -> AccessDescriptor:
    """Wraps `cluster` and `exec_config` in a single-context kubeconfig named by `names`."""
    return AccessDescriptor(
        clusters={names.cluster_name: cluster},
        users={names.user_name: AuthInfo(exec_config=exec_config)},
        contexts={names.context_name: Context(cluster=names.cluster_name, user=names.user_name)},
        current_context=names.context_name,
    )
