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
Fills absent request fields from discovered Concierge state. Explicit input always wins.
"""

from typing import Any, assert_never

from coreason_kubeconfig.frontend import get_concierge_frontend
from coreason_kubeconfig.credential_issuer import log_strategies
from coreason_kubeconfig.exceptions import NotFoundError
from coreason_kubeconfig.models import (
    Cluster,
    ConciergeMode,
    CredentialIssuer,
    ImpersonationProxyFrontend,
    JWTAuthenticator,
    ResolutionRequest,
    TokenCredentialRequestAPIFrontend,
    WebhookAuthenticator,
    decode_ca_data,
)
from coreason_kubeconfig.transport import count_ca_certs
from coreason_kubeconfig.utils.logger import logger


def discover_concierge_params(
    credential_issuer: CredentialIssuer,
    request: ResolutionRequest,
    cluster: Cluster,
) -> ResolutionRequest:
    """
    Resolves the Concierge mode, endpoint and CA bundle.

    The TokenCredentialRequestAPI frontend reports a server and CA; when either is empty the
    values of the user's current cluster are used, since that frontend is served by the
    cluster's own API server.

    Args:
        credential_issuer: The converged CredentialIssuer snapshot.
        request: The request so far.
        cluster: The user's current kubeconfig cluster.

    Returns:
        ResolutionRequest: A copy with mode, endpoint and CA bundle populated.

    Raises:
        NotFoundError: If no strategy provides a usable frontend.
        MalformedDataError: If the discovered CA data is not valid base64.
    """
    try:
        frontend = get_concierge_frontend(credential_issuer, request.concierge_mode)
    except NotFoundError:
        log_strategies(credential_issuer)
        raise

    updates: dict[str, Any] = {}

    match frontend:
        case TokenCredentialRequestAPIFrontend():
            discovered_mode = ConciergeMode.TOKEN_CREDENTIAL_REQUEST_API
            info = frontend.token_credential_request_info
            discovered_endpoint = info.server or cluster.server
            ca_data = info.certificate_authority_data
            discovered_ca: bytes | None = None if ca_data else cluster.certificate_authority_data
            mode_message = "discovered Concierge operating in TokenCredentialRequest API mode"
        case ImpersonationProxyFrontend():
            discovered_mode = ConciergeMode.IMPERSONATION_PROXY
            discovered_endpoint = frontend.impersonation_proxy_info.endpoint
            ca_data = frontend.impersonation_proxy_info.certificate_authority_data
            discovered_ca = None
            mode_message = "discovered Concierge operating in impersonation proxy mode"
        case _:
            assert_never(frontend)

    if request.concierge_mode is ConciergeMode.AUTO:
        logger.info(mode_message)
        updates["concierge_mode"] = discovered_mode

    if not request.concierge_endpoint:
        logger.bind(endpoint=discovered_endpoint).info("discovered Concierge endpoint")
        updates["concierge_endpoint"] = discovered_endpoint

    if not request.concierge_ca_bundle:
        if discovered_ca is None:
            discovered_ca = decode_ca_data(ca_data, "autodiscovered Concierge CA bundle")
        logger.bind(roots=count_ca_certs(discovered_ca)).info("discovered Concierge certificate authority bundle")
        updates["concierge_ca_bundle"] = discovered_ca

    return request.model_copy(update=updates)


def discover_authenticator_params(
    authenticator: WebhookAuthenticator | JWTAuthenticator,
    request: ResolutionRequest,
) -> ResolutionRequest:
    """
    Resolves the authenticator reference and, for JWTAuthenticators, the OIDC issuer,
    request audience and OIDC CA bundle.

    Returns:
        ResolutionRequest: A copy with the discovered fields populated.

    Raises:
        MalformedDataError: If a JWTAuthenticator carries invalid CA data.
    """
    updates: dict[str, Any] = {}

    # The reference is only replaced when the caller named neither the type nor the name.
    set_reference = not request.authenticator_type and not request.authenticator_name

    match authenticator:
        case WebhookAuthenticator():
            if set_reference:
                logger.bind(name=authenticator.name).info("discovered WebhookAuthenticator")
                updates["authenticator_type"] = authenticator.authenticator_type
                updates["authenticator_name"] = authenticator.name
        case JWTAuthenticator():
            if set_reference:
                logger.bind(name=authenticator.name).info("discovered JWTAuthenticator")
                updates["authenticator_type"] = authenticator.authenticator_type
                updates["authenticator_name"] = authenticator.name

            if not request.oidc_issuer:
                logger.bind(issuer=authenticator.issuer).info("discovered OIDC issuer")
                updates["oidc_issuer"] = authenticator.issuer

            if not request.oidc_request_audience:
                logger.bind(audience=authenticator.audience).info("discovered OIDC audience")
                updates["oidc_request_audience"] = authenticator.audience

            tls_ca = authenticator.tls.certificate_authority_data if authenticator.tls else ""
            if not request.oidc_ca_bundle and tls_ca:
                decoded = decode_ca_data(
                    tls_ca,
                    f"tried to autodiscover --oidc-ca-bundle, but JWTAuthenticator {authenticator.name} "
                    "has invalid spec.tls.certificateAuthorityData",
                )
                logger.bind(roots=count_ca_certs(decoded)).info("discovered OIDC CA bundle")
                updates["oidc_ca_bundle"] = decoded
        case _:
            assert_never(authenticator)

    return request.model_copy(update=updates)
