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
Internal wire models for OIDC and Supervisor IDP discovery.
These are not exposed in the public API.
"""

from pydantic import BaseModel, ConfigDict, Field

from coreason_kubeconfig.models import UpstreamIDP

SUPERVISOR_DISCOVERY_CLAIM = "discovery.supervisor.pinniped.dev/v1alpha1"


class SupervisorDiscovery(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    pinniped_identity_providers_endpoint: str = ""


class OIDCDiscoveryResponse(BaseModel):
    """
    OIDC Configuration from .well-known/openid-configuration, reduced to the claims we read.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    issuer: str = Field(..., description="The OIDC issuer URL.")
    supervisor_discovery: SupervisorDiscovery | None = Field(
        default=None,
        alias=SUPERVISOR_DISCOVERY_CLAIM,
        description="Pinniped Supervisor extension claims.",
    )

    @property
    def pinniped_idps_endpoint(self) -> str:
        if self.supervisor_discovery is None:
            return ""
        return self.supervisor_discovery.pinniped_identity_providers_endpoint


class IDPDiscoveryResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    pinniped_identity_providers: list[UpstreamIDP] = Field(default_factory=list)
