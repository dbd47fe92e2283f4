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
Chooses the Concierge frontend from a CredentialIssuer's strategies.
"""

from coreason_kubeconfig.exceptions import NotFoundError
from coreason_kubeconfig.models import (
    ConciergeMode,
    CredentialIssuer,
    ImpersonationProxyFrontend,
    KnownFrontend,
    Strategy,
    StrategyStatus,
    StrategyType,
    TokenCredentialRequestAPIFrontend,
    TokenCredentialRequestAPIInfo,
    UnknownFrontend,
)


def backfill_legacy_frontend(strategy: Strategy, credential_issuer: CredentialIssuer) -> Strategy:
    """
    Returns `strategy` with a TokenCredentialRequestAPI frontend synthesized from the
    legacy `kubeConfigInfo` block, for servers that predate per-strategy frontends.

    The input strategy is never modified; a copy is returned when a backfill applies.
    """
    if (
        strategy.type == StrategyType.KUBE_CLUSTER_SIGNING_CERTIFICATE
        and strategy.frontend is None
        and credential_issuer.kube_config_info is not None
    ):
        info = credential_issuer.kube_config_info
        return strategy.model_copy(
            update={
                "frontend": TokenCredentialRequestAPIFrontend(
                    token_credential_request_info=TokenCredentialRequestAPIInfo(
                        server=info.server,
                        certificate_authority_data=info.certificate_authority_data,
                    )
                )
            }
        )
    return strategy


def get_concierge_frontend(credential_issuer: CredentialIssuer, mode: ConciergeMode) -> KnownFrontend:
    """
    Returns the frontend of the first successful strategy that matches `mode`.

    Strategies are considered in the order the server reported them.

    Raises:
        NotFoundError: If no strategy qualifies.
    """
    for strategy in credential_issuer.strategies:
        if strategy.status != StrategyStatus.SUCCESS:
            continue

        strategy = backfill_legacy_frontend(strategy, credential_issuer)

        frontend = strategy.frontend
        match frontend:
            case None | UnknownFrontend():
                continue
            case TokenCredentialRequestAPIFrontend() | ImpersonationProxyFrontend():
                if mode.matches(frontend):
                    return frontend

    if mode is ConciergeMode.AUTO:
        raise NotFoundError("could not autodiscover --concierge-mode")
    raise NotFoundError(f"could not find successful Concierge strategy matching --concierge-mode={mode.value}")
