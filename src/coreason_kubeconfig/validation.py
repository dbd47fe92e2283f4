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
Checks that the generated kubeconfig's cluster endpoint is reachable.
"""

import anyio
import httpx

from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import (
    ClusterUnreachableError,
    DeadlineExceededError,
    InputError,
    MalformedDataError,
)
from coreason_kubeconfig.models import Kubeconfig
from coreason_kubeconfig.transport import HTTPClientFactory, new_http_client, parse_ca_bundle
from coreason_kubeconfig.utils.logger import logger

DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_VALIDATE_INTERVAL = 2.0


async def _probe(client: httpx.AsyncClient, server: str) -> None:
    try:
        response = await client.get(server)
    except httpx.HTTPError as e:
        raise ClusterUnreachableError(f"{type(e).__name__}: {e}") from e
    # Any answer below 500 (including 401/403) means the endpoint is serving.
    if response.status_code >= 500:
        raise ClusterUnreachableError(f"unexpected status code {response.status_code}")


async def _attempt(client: httpx.AsyncClient, server: str, deadline: Deadline) -> ClusterUnreachableError | None:
    # The per-probe timeout is enforced by the client; the bound only stops at the run deadline.
    try:
        with deadline.bound("validating connection to the cluster"):
            await _probe(client, server)
    except ClusterUnreachableError as e:
        return e
    return None


async def validate_kubeconfig(
    kubeconfig: Kubeconfig,
    deadline: Deadline,
    skip_validation: bool = False,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    validate_interval: float = DEFAULT_VALIDATE_INTERVAL,
    http_client_factory: HTTPClientFactory = new_http_client,
) -> None:
    """
    Probes the server of the kubeconfig's current context until it answers.

    A response with status below 500 counts as reachable. After a failed first probe,
    probes are repeated every `validate_interval` seconds until the deadline.

    Args:
        kubeconfig: The generated kubeconfig.
        deadline: The run deadline.
        skip_validation: Return immediately without probing.
        probe_timeout: Upper bound for a single probe.
        validate_interval: Seconds between probes.
        http_client_factory: Builds the HTTP client from a CA bundle and timeout.

    Raises:
        InputError: If the kubeconfig lacks a context, a cluster or a usable CA bundle.
        DeadlineExceededError: If the cluster is still unreachable when the deadline elapses.
    """
    if skip_validation:
        return

    context = kubeconfig.contexts.get(kubeconfig.current_context)
    if context is None:
        raise InputError("invalid kubeconfig (no context)")
    cluster = kubeconfig.clusters.get(context.cluster)
    if cluster is None:
        raise InputError("invalid kubeconfig (no cluster)")

    if not cluster.certificate_authority_data:
        raise InputError("invalid kubeconfig (no certificateAuthorityData)")
    try:
        parse_ca_bundle(cluster.certificate_authority_data)
    except MalformedDataError as e:
        raise InputError("invalid kubeconfig (no certificateAuthorityData)") from e

    async with http_client_factory(cluster.certificate_authority_data, probe_timeout) as client:
        error = await _attempt(client, cluster.server, deadline)
        if error is None:
            logger.info("validated connection to the cluster")
            return

        logger.info(
            "could not immediately connect to the cluster but it may be initializing, will retry until timeout"
        )
        attempts = 0
        while True:
            try:
                with deadline.bound("waiting for the cluster to become reachable"):
                    await anyio.sleep(validate_interval)
            except DeadlineExceededError as e:
                raise DeadlineExceededError(f"{e}; last error: {error}") from e

            attempts += 1
            error = await _attempt(client, cluster.server, deadline)
            if error is None:
                logger.bind(attempts=attempts).info("validated connection to the cluster")
                return
            logger.bind(
                attempts=attempts,
                elapsed=deadline.elapsed_str(),
                remaining=deadline.remaining_str(),
                error=str(error),
            ).error(
                "could not connect to cluster, retrying..."
            )
