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
KubeconfigResolver: runs autodiscovery end to end and produces the exec-plugin kubeconfig.
"""

import re
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from typing import IO

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_kubeconfig.authenticator import lookup_authenticator
from coreason_kubeconfig.concierge_client import ConciergeClient, open_concierge_client
from coreason_kubeconfig.config import ResolverSettings
from coreason_kubeconfig.credential_issuer import wait_for_credential_issuer
from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import CoreasonKubeconfigError, InputError
from coreason_kubeconfig.exec_config import PathToSelf, default_path_to_self, new_exec_config, new_exec_kubeconfig
from coreason_kubeconfig.kubeconfig_loader import current_context_names, load_kubeconfig, write_kubeconfig_yaml
from coreason_kubeconfig.models import AccessDescriptor, AuthInfo, Cluster, ResolutionRequest, ResolvedConfig
from coreason_kubeconfig.params import discover_authenticator_params, discover_concierge_params
from coreason_kubeconfig.supervisor_discovery import discover_supervisor_upstream_idp
from coreason_kubeconfig.transport import HTTPClientFactory, new_http_client
from coreason_kubeconfig.utils.logger import logger
from coreason_kubeconfig.validation import validate_kubeconfig

tracer = trace.get_tracer(__name__)

ConciergeClientFactory = Callable[[Cluster, AuthInfo, str, float], AbstractAsyncContextManager[ConciergeClient]]

_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN = re.compile(rf"^{_DNS1123_LABEL}(\.{_DNS1123_LABEL})*$")


def validate_api_group_suffix(suffix: str) -> None:
    """
    Checks that `suffix` is a DNS-1123 subdomain with at least two labels.

    Raises:
        InputError: If the suffix is invalid.
    """
    problems = []
    if "." not in suffix:
        problems.append("must contain '.'")
    if len(suffix) > 253:
        problems.append("must be no more than 253 characters")
    if not _DNS1123_SUBDOMAIN.match(suffix):
        problems.append(
            "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric characters, '-' or '.', "
            "and must start and end with an alphanumeric character"
        )
    if problems:
        raise InputError(f"invalid API group suffix: {'; '.join(problems)}")


class KubeconfigResolver:
    """
    Resolves a partially specified request into a kubeconfig whose user runs the exec plugin.

    Attributes:
        settings (ResolverSettings): Poll intervals, timeouts and size caps.
    """

    def __init__(
        self,
        settings: ResolverSettings | None = None,
        concierge_client_factory: ConciergeClientFactory = open_concierge_client,
        path_to_self: PathToSelf = default_path_to_self,
        http_client_factory: HTTPClientFactory = new_http_client,
    ) -> None:
        """
        Initialize the KubeconfigResolver.

        Args:
            settings: Tuning knobs. Defaults to `ResolverSettings()` read from the environment.
            concierge_client_factory: Opens a Concierge API client for a kubeconfig cluster and user.
            path_to_self: Returns the command the exec plugin should invoke.
            http_client_factory: Builds HTTP clients for discovery and validation.
        """
        self.settings = settings or ResolverSettings()
        self.concierge_client_factory = concierge_client_factory
        self.path_to_self = path_to_self
        self.http_client_factory = http_client_factory

    async def resolve(self, request: ResolutionRequest) -> AccessDescriptor:
        """
        Runs the whole resolution under a single deadline of `request.timeout` seconds.

        Args:
            request: The caller's explicit input.

        Returns:
            AccessDescriptor: The generated kubeconfig.

        Raises:
            CoreasonKubeconfigError: Any typed failure from a resolution stage.
        """
        with tracer.start_as_current_span("resolve_kubeconfig") as span:
            span.set_attribute("concierge.enabled", not request.concierge_disabled)
            try:
                kubeconfig = await self._resolve(request, Deadline(request.timeout))
            except CoreasonKubeconfigError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            span.set_status(Status(StatusCode.OK))
            return kubeconfig

    async def resolve_to_yaml(self, request: ResolutionRequest, out: IO[str]) -> AccessDescriptor:
        """Resolves `request` and writes the generated kubeconfig to `out` as YAML."""
        kubeconfig = await self.resolve(request)
        write_kubeconfig_yaml(kubeconfig, out)
        return kubeconfig

    async def _resolve(self, request: ResolutionRequest, deadline: Deadline) -> AccessDescriptor:
        validate_api_group_suffix(request.api_group_suffix)

        current = load_kubeconfig(request.kubeconfig_path)
        names = current_context_names(current, request.kubeconfig_context)
        cluster = current.clusters[names.cluster_name]
        user = current.users[names.user_name]
        new_names = names.with_suffix(request.generated_name_suffix)

        if not request.concierge_disabled:
            async with AsyncExitStack() as stack:
                # Loading credentials may run an exec or auth-provider plugin.
                with deadline.bound("connecting to the cluster API", limit=self.settings.lookup_timeout):
                    client = await stack.enter_async_context(
                        self.concierge_client_factory(
                            cluster, user, request.api_group_suffix, self.settings.lookup_timeout
                        )
                    )
                credential_issuer = await wait_for_credential_issuer(
                    client,
                    request.credential_issuer,
                    deadline,
                    skip_wait=request.skip_wait,
                    poll_interval=self.settings.poll_interval,
                    lookup_timeout=self.settings.lookup_timeout,
                )
                authenticator = await lookup_authenticator(
                    client,
                    request.authenticator_type,
                    request.authenticator_name,
                    deadline,
                    lookup_timeout=self.settings.lookup_timeout,
                )

            request = discover_concierge_params(credential_issuer, request, cluster)
            request = discover_authenticator_params(authenticator, request)

            # kubectl talks to the Concierge endpoint from here on.
            cluster = cluster.model_copy(
                update={
                    "server": request.concierge_endpoint,
                    "certificate_authority_data": request.concierge_ca_bundle,
                }
            )

        request = await discover_supervisor_upstream_idp(
            request, deadline, self.settings, http_client_factory=self.http_client_factory
        )

        resolved = ResolvedConfig(request=request, cluster=cluster, names=new_names)
        exec_config = new_exec_config(resolved, self.path_to_self)
        kubeconfig = new_exec_kubeconfig(cluster, exec_config, new_names)

        await validate_kubeconfig(
            kubeconfig,
            deadline,
            skip_validation=request.skip_validation,
            probe_timeout=self.settings.probe_timeout,
            validate_interval=self.settings.validate_interval,
            http_client_factory=self.http_client_factory,
        )

        logger.bind(context=new_names.context_name).debug("generated kubeconfig")
        return kubeconfig
