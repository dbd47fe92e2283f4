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
Autodiscovers Concierge and Supervisor settings and generates an exec-plugin kubeconfig for a cluster.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import ResolverSettings
from .exceptions import (
    AmbiguousError,
    CoreasonKubeconfigError,
    DeadlineExceededError,
    DiscoveryError,
    InputError,
    MalformedDataError,
    NotFoundError,
)
from .kubeconfig_loader import load_kubeconfig, write_kubeconfig_yaml
from .models import AccessDescriptor, ConciergeMode, ResolutionRequest
from .resolver import KubeconfigResolver

__all__ = [
    "AccessDescriptor",
    "AmbiguousError",
    "ConciergeMode",
    "CoreasonKubeconfigError",
    "DeadlineExceededError",
    "DiscoveryError",
    "InputError",
    "KubeconfigResolver",
    "MalformedDataError",
    "NotFoundError",
    "ResolutionRequest",
    "ResolverSettings",
    "load_kubeconfig",
    "write_kubeconfig_yaml",
]
