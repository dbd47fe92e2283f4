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
Configuration for the coreason-kubeconfig package.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ResolverSettings(BaseSettings):
    """
    Tuning knobs for the resolution run. Not part of the user's request.

    Attributes:
        poll_interval (float): Seconds between CredentialIssuer readiness polls.
        validate_interval (float): Seconds between cluster reachability probes.
        probe_timeout (float): Per-attempt timeout for a reachability probe.
        lookup_timeout (float): Upper bound for a single Concierge API lookup.
        http_timeout (float): Timeout for OIDC and IDP discovery requests.
        max_response_bytes (int): Size cap for discovery response bodies.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_KUBECONFIG_",
        case_sensitive=False,
    )

    poll_interval: float = Field(default=2.0, description="Seconds between CredentialIssuer polls.")
    validate_interval: float = Field(default=2.0, description="Seconds between reachability probes.")
    probe_timeout: float = Field(default=10.0, description="Per-attempt reachability probe timeout.")
    lookup_timeout: float = Field(default=20.0, description="Timeout for a single Concierge API call.")
    http_timeout: float = Field(default=30.0, description="Timeout for discovery HTTP requests.")
    max_response_bytes: int = Field(default=1024 * 1024, description="Maximum discovery response size.")

    @field_validator(
        "poll_interval",
        "validate_interval",
        "probe_timeout",
        "lookup_timeout",
        "http_timeout",
        "max_response_bytes",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v
