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
Custom exceptions for the coreason-kubeconfig package.
"""

from typing import Any


class CoreasonKubeconfigError(Exception):
    """Base exception for all coreason-kubeconfig errors."""


class InputError(CoreasonKubeconfigError):
    """Raised when explicit input is invalid or conflicting. Never retried."""


class NotFoundError(CoreasonKubeconfigError):
    """Raised when an object requested by name does not exist."""


class AmbiguousError(CoreasonKubeconfigError):
    """
    Raised when autodiscovery finds zero or several candidates and the caller
    did not supply enough explicit input to settle on exactly one.

    Attributes:
        candidates (list[Any]): The candidates that were discovered.
    """

    def __init__(self, message: str, candidates: list[Any] | None = None) -> None:
        super().__init__(message)
        self.candidates = list(candidates or [])


class MalformedDataError(CoreasonKubeconfigError):
    """Raised when server-supplied data (CA bundle, discovery body) cannot be decoded."""


class DiscoveryError(CoreasonKubeconfigError):
    """Raised when an OIDC or upstream IDP discovery request fails."""


class DeadlineExceededError(CoreasonKubeconfigError):
    """Raised when the overall resolution deadline elapses."""


class ClusterUnreachableError(CoreasonKubeconfigError):
    """Raised internally when a validation probe against the cluster fails."""


class OversizedResponseError(CoreasonKubeconfigError):
    """Raised when an HTTP response is too large."""


class ClusterAPIError(CoreasonKubeconfigError):
    """Raised when a Kubernetes API request for Concierge objects fails."""
