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
Supervisor upstream IDP discovery: OIDC metadata first, then the Supervisor's IDP list.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from coreason_kubeconfig.config import ResolverSettings
from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import DiscoveryError, MalformedDataError
from coreason_kubeconfig.models import ResolutionRequest, UpstreamIDP
from coreason_kubeconfig.models_internal import IDPDiscoveryResponse, OIDCDiscoveryResponse
from coreason_kubeconfig.selection import select_upstream_idp_flow, select_upstream_idp_name_and_type
from coreason_kubeconfig.transport import (
    DEFAULT_MAX_RESPONSE_BYTES,
    HTTPClientFactory,
    new_http_client,
    safe_json_fetch,
)
from coreason_kubeconfig.utils.logger import logger


class SupervisorDiscoveryClient:
    """
    Fetches a Supervisor's discovery documents.

    Attributes:
        issuer (str): The OIDC issuer URL.
        client (httpx.AsyncClient): Client trusting the issuer's CA bundle.
        max_response_bytes (int): Size cap for each response body.
    """

    def __init__(
        self,
        issuer: str,
        client: httpx.AsyncClient,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self.issuer = issuer
        self.client = client
        self.max_response_bytes = max_response_bytes

    @property
    def discovery_url(self) -> str:
        return self.issuer.rstrip("/") + "/.well-known/openid-configuration"

    async def fetch_idps_endpoint(self) -> str | None:
        """
        Reads the IDP discovery endpoint from the issuer's OIDC metadata.

        Returns:
            str | None: The endpoint, or None when the issuer does not advertise one.

        Raises:
            DiscoveryError: If the metadata cannot be fetched or names a different issuer.
            MalformedDataError: If the metadata is not a valid discovery document.
        """
        try:
            data: Any = await safe_json_fetch(self.client, self.discovery_url, self.max_response_bytes)
        except DiscoveryError as e:
            raise DiscoveryError(f"while fetching OIDC discovery data from issuer: {e}") from e
        except MalformedDataError as e:
            raise MalformedDataError(f"while fetching OIDC discovery data from issuer: {e}") from e

        try:
            config = OIDCDiscoveryResponse.model_validate(data)
        except ValidationError as e:
            raise MalformedDataError(f"while fetching OIDC discovery data from issuer: {e}") from e

        if config.issuer != self.issuer:
            raise DiscoveryError(
                "while fetching OIDC discovery data from issuer: issuer did not match the issuer returned "
                f"by provider, expected {self.issuer!r} got {config.issuer!r}"
            )

        return config.pinniped_idps_endpoint or None

    async def fetch_upstream_idps(self, endpoint: str) -> list[UpstreamIDP]:
        """
        Fetches the Supervisor's upstream IDP list, in server order.

        Raises:
            DiscoveryError: On transport failure or a non-200 response.
            MalformedDataError: If the body cannot be decoded.
        """
        try:
            data: Any = await safe_json_fetch(self.client, endpoint, self.max_response_bytes)
        except DiscoveryError as e:
            raise DiscoveryError(f"unable to fetch IDP discovery data from issuer: {e}") from e
        except MalformedDataError as e:
            raise MalformedDataError(f"unable to fetch the Pinniped IDP discovery document: {e}") from e

        try:
            return IDPDiscoveryResponse.model_validate(data).pinniped_identity_providers
        except ValidationError as e:
            raise MalformedDataError(f"unable to fetch the Pinniped IDP discovery document: {e}") from e


async def discover_supervisor_upstream_idp(
    request: ResolutionRequest,
    deadline: Deadline,
    settings: ResolverSettings | None = None,
    http_client_factory: HTTPClientFactory = new_http_client,
) -> ResolutionRequest:
    """
    Fills the upstream IDP name, type and flow from the Supervisor, where absent.

    Nothing is fetched when there is no issuer or when name, type and flow are all
    explicit. An issuer without the Supervisor extension, or with no upstreams, leaves
    the request unchanged.

    Args:
        request: The request so far.
        deadline: The run deadline.
        settings: Timeouts and response size cap.
        http_client_factory: Builds the HTTP client from a CA bundle and timeout.

    Returns:
        ResolutionRequest: A copy with the upstream fields populated.

    Raises:
        DiscoveryError: If either discovery request fails.
        MalformedDataError: If a CA bundle or response body cannot be decoded.
        NotFoundError: If the explicit flow is not advertised by the chosen upstream.
        AmbiguousError: If zero or several upstreams match the explicit input.
    """
    if not request.oidc_issuer or request.upstream_idp_fully_specified:
        return request

    settings = settings or ResolverSettings()

    async with http_client_factory(request.oidc_ca_bundle or None, settings.http_timeout) as client:
        discovery = SupervisorDiscoveryClient(request.oidc_issuer, client, settings.max_response_bytes)

        with deadline.bound("fetching OIDC discovery document"):
            endpoint = await discovery.fetch_idps_endpoint()
        if endpoint is None:
            logger.bind(issuer=request.oidc_issuer).debug("issuer does not advertise upstream IDP discovery")
            return request

        with deadline.bound("fetching upstream IDP discovery document"):
            idps = await discovery.fetch_upstream_idps(endpoint)

    if not idps:
        return request

    idp = select_upstream_idp_name_and_type(idps, request.upstream_idp_name, request.upstream_idp_type)
    flow = select_upstream_idp_flow(idp, request.upstream_idp_flow)

    updates: dict[str, str] = {}
    if not request.upstream_idp_name:
        updates["upstream_idp_name"] = idp.name
    if not request.upstream_idp_type:
        updates["upstream_idp_type"] = idp.type
    if not request.upstream_idp_flow and flow:
        updates["upstream_idp_flow"] = flow
    if updates:
        logger.bind(name=idp.name, type=idp.type, flow=flow).info(
            "discovered Supervisor upstream identity provider"
        )
    return request.model_copy(update=updates)
