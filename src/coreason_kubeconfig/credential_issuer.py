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
Locates the CredentialIssuer and waits for its strategies to converge.
"""

import anyio

from coreason_kubeconfig.concierge_client import ConciergeClient
from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import (
    AmbiguousError,
    DeadlineExceededError,
)
from coreason_kubeconfig.models import CredentialIssuer
from coreason_kubeconfig.utils.logger import logger

DEFAULT_LOOKUP_TIMEOUT = 20.0
DEFAULT_POLL_INTERVAL = 2.0


def log_strategies(credential_issuer: CredentialIssuer) -> None:
    for strategy in credential_issuer.strategies:
        logger.bind(
            type=strategy.type,
            status=strategy.status,
            reason=strategy.reason,
            message=strategy.message,
        ).info("found CredentialIssuer strategy")


async def lookup_credential_issuer(
    client: ConciergeClient,
    name: str,
    deadline: Deadline,
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
) -> CredentialIssuer:
    """
    Fetches the named CredentialIssuer, or the only one in the cluster.

    Args:
        client: The Concierge API client.
        name: Explicit object name, or empty to autodiscover.
        deadline: The run deadline.
        lookup_timeout: Upper bound for this single lookup.

    Raises:
        NotFoundError: If the named object does not exist.
        AmbiguousError: If no name was given and zero or several exist.
    """
    with deadline.bound("looking up CredentialIssuer", limit=lookup_timeout):
        if name:
            return await client.get_credential_issuer(name)
        results = await client.list_credential_issuers()

    if not results:
        raise AmbiguousError(
            "no CredentialIssuers were found, so the --concierge-credential-issuer flag must be specified",
            candidates=[],
        )
    if len(results) > 1:
        raise AmbiguousError(
            "multiple CredentialIssuers were found, so the --concierge-credential-issuer flag must be specified. "
            f"Found: {', '.join(result.name for result in results)}",
            candidates=results,
        )

    result = results[0]
    logger.bind(name=result.name).info("discovered CredentialIssuer")
    return result


async def wait_for_credential_issuer(
    client: ConciergeClient,
    name: str,
    deadline: Deadline,
    skip_wait: bool = False,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
) -> CredentialIssuer:
    """
    Looks up the CredentialIssuer and, unless `skip_wait`, re-fetches it every
    `poll_interval` seconds until no strategy is pending.

    Returns:
        CredentialIssuer: The first snapshot observed with no pending strategy.

    Raises:
        DeadlineExceededError: If strategies are still pending when the deadline elapses.
    """
    credential_issuer = await lookup_credential_issuer(client, name, deadline, lookup_timeout)
    if skip_wait:
        return credential_issuer

    attempts = 1
    while credential_issuer.has_pending_strategy():
        log_strategies(credential_issuer)
        logger.bind(attempts=attempts, elapsed=deadline.elapsed_str(), remaining=deadline.remaining_str()).info(
            "waiting for CredentialIssuer pending strategies to finish"
        )
        try:
            with deadline.bound("waiting for CredentialIssuer pending strategies"):
                await anyio.sleep(poll_interval)
        except DeadlineExceededError as e:
            raise DeadlineExceededError(
                f"{e}; CredentialIssuer {credential_issuer.name!r} still has pending strategies"
            ) from e
        credential_issuer = await lookup_credential_issuer(client, name, deadline, lookup_timeout)
        attempts += 1

    return credential_issuer
