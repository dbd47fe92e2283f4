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
Locates the Concierge authenticator to use.
"""

from coreason_kubeconfig.concierge_client import ConciergeClient
from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import AmbiguousError, InputError
from coreason_kubeconfig.models import JWTAuthenticator, WebhookAuthenticator
from coreason_kubeconfig.utils.logger import logger

DEFAULT_LOOKUP_TIMEOUT = 20.0


async def lookup_authenticator(
    client: ConciergeClient,
    authenticator_type: str,
    authenticator_name: str,
    deadline: Deadline,
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
) -> WebhookAuthenticator | JWTAuthenticator:
    """
    Fetches the explicitly named authenticator, or the only one of either kind.

    Args:
        client: The Concierge API client.
        authenticator_type: "webhook" or "jwt" (case-insensitive), or empty.
        authenticator_name: The object name, or empty.
        deadline: The run deadline.
        lookup_timeout: Upper bound for the lookup.

    Raises:
        InputError: If an unsupported type is given.
        NotFoundError: If the named object does not exist.
        AmbiguousError: If type/name were not both given and zero or several exist.
    """
    with deadline.bound("looking up authenticator", limit=lookup_timeout):
        if authenticator_type and authenticator_name:
            match authenticator_type.lower():
                case "webhook":
                    return await client.get_webhook_authenticator(authenticator_name)
                case "jwt":
                    return await client.get_jwt_authenticator(authenticator_name)
                case _:
                    raise InputError(
                        f'invalid authenticator type "{authenticator_type}", supported values are "webhook" and "jwt"'
                    )

        jwt_authenticators = await client.list_jwt_authenticators()
        webhook_authenticators = await client.list_webhook_authenticators()

    results: list[WebhookAuthenticator | JWTAuthenticator] = [*jwt_authenticators, *webhook_authenticators]
    if not results:
        raise AmbiguousError(
            "no authenticators were found, so the "
            "--concierge-authenticator-type/--concierge-authenticator-name flags must be specified",
            candidates=[],
        )
    if len(results) > 1:
        for jwt_authenticator in jwt_authenticators:
            logger.bind(name=jwt_authenticator.name).info("found JWTAuthenticator")
        for webhook in webhook_authenticators:
            logger.bind(name=webhook.name).info("found WebhookAuthenticator")
        raise AmbiguousError(
            "multiple authenticators were found, so the "
            "--concierge-authenticator-type/--concierge-authenticator-name flags must be specified. "
            f"Found: {', '.join(f'{r.authenticator_type}/{r.name}' for r in results)}",
            candidates=results,
        )
    return results[0]
