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
Read access to Concierge objects (CredentialIssuers and authenticators) in a cluster.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

import aiohttp
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config
from kubernetes_asyncio.client.exceptions import ApiException
from kubernetes_asyncio.config import ConfigException

from coreason_kubeconfig.exceptions import ClusterAPIError, InputError, NotFoundError
from coreason_kubeconfig.models import (
    AuthInfo,
    Cluster,
    CredentialIssuer,
    JWTAuthenticator,
    WebhookAuthenticator,
)
from coreason_kubeconfig.utils.logger import logger

CONCIERGE_API_VERSION = "v1alpha1"


class ConciergeClient(Protocol):
    """The get/list operations the resolver needs from the cluster API."""

    async def get_credential_issuer(self, name: str) -> CredentialIssuer: ...

    async def list_credential_issuers(self) -> list[CredentialIssuer]: ...

    async def get_webhook_authenticator(self, name: str) -> WebhookAuthenticator: ...

    async def list_webhook_authenticators(self) -> list[WebhookAuthenticator]: ...

    async def get_jwt_authenticator(self, name: str) -> JWTAuthenticator: ...

    async def list_jwt_authenticators(self) -> list[JWTAuthenticator]: ...


class KubernetesConciergeClient:
    """
    ConciergeClient backed by the Kubernetes custom objects API.

    Attributes:
        api (CustomObjectsApi): kubernetes_asyncio API bound to the cluster.
        api_group_suffix (str): The Concierge API group suffix (e.g. pinniped.dev).
        timeout (float | None): Per-request timeout in seconds.
    """

    def __init__(
        self,
        api: k8s_client.CustomObjectsApi,
        api_group_suffix: str,
        timeout: float | None = None,
    ) -> None:
        self.api = api
        self.api_group_suffix = api_group_suffix
        self.timeout = timeout

    def _group(self, group: str) -> str:
        return f"{group}.concierge.{self.api_group_suffix}"

    async def _get(self, group: str, resource: str, name: str | None = None) -> dict[str, Any]:
        api_group = self._group(group)
        try:
            if name:
                body = await self.api.get_cluster_custom_object(
                    api_group, CONCIERGE_API_VERSION, resource, name, _request_timeout=self.timeout
                )
            else:
                body = await self.api.list_cluster_custom_object(
                    api_group, CONCIERGE_API_VERSION, resource, _request_timeout=self.timeout
                )
        except ApiException as e:
            if e.status == 404 and name:
                raise NotFoundError(f'{resource}.{api_group} "{name}" not found') from e
            raise ClusterAPIError(f"failed to get {resource}: unexpected http response status {e.status}") from e
        except TimeoutError as e:
            raise ClusterAPIError(f"failed to get {resource}: request timed out") from e
        except (aiohttp.ClientError, ConfigException) as e:
            raise ClusterAPIError(f"failed to get {resource}: {e}") from e

        if not isinstance(body, dict):
            raise ClusterAPIError(f"failed to decode {resource} response: expected a JSON object")
        return body

    async def _list(self, group: str, resource: str) -> list[dict[str, Any]]:
        body = await self._get(group, resource)
        return list(body.get("items") or [])

    async def get_credential_issuer(self, name: str) -> CredentialIssuer:
        return CredentialIssuer.from_object(await self._get("config", "credentialissuers", name))

    async def list_credential_issuers(self) -> list[CredentialIssuer]:
        return [CredentialIssuer.from_object(item) for item in await self._list("config", "credentialissuers")]

    async def get_webhook_authenticator(self, name: str) -> WebhookAuthenticator:
        return WebhookAuthenticator.from_object(await self._get("authentication", "webhookauthenticators", name))

    async def list_webhook_authenticators(self) -> list[WebhookAuthenticator]:
        items = await self._list("authentication", "webhookauthenticators")
        return [WebhookAuthenticator.from_object(item) for item in items]

    async def get_jwt_authenticator(self, name: str) -> JWTAuthenticator:
        return JWTAuthenticator.from_object(await self._get("authentication", "jwtauthenticators", name))

    async def list_jwt_authenticators(self) -> list[JWTAuthenticator]:
        items = await self._list("authentication", "jwtauthenticators")
        return [JWTAuthenticator.from_object(item) for item in items]


def single_context_kubeconfig(cluster: Cluster, user: AuthInfo) -> dict[str, Any]:
    """A kubeconfig dict holding only `cluster` and `user`, joined by its current context."""
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": "cluster", "cluster": cluster.to_dict()}],
        "users": [{"name": "user", "user": user.model_dump(by_alias=True, exclude_none=True)}],
        "contexts": [{"name": "context", "context": {"cluster": "cluster", "user": "user"}}],
        "current-context": "context",
    }


async def new_cluster_configuration(cluster: Cluster, user: AuthInfo) -> k8s_client.Configuration:
    """
    Builds a kubernetes_asyncio Configuration authenticated as the kubeconfig `user`.

    Every credential kind kubernetes_asyncio understands is supported: tokens and token
    files, basic auth, client certificates, and exec or auth-provider plugins, which are
    run here to obtain their credential.

    Raises:
        InputError: If the credentials cannot be loaded.
    """
    configuration = k8s_client.Configuration()
    try:
        await k8s_config.load_kube_config_from_dict(
            config_dict=single_context_kubeconfig(cluster, user),
            client_configuration=configuration,
            persist_config=False,
        )
    except (ConfigException, OSError, ValueError) as e:
        raise InputError(f"could not configure Kubernetes client: {e}") from e

    logger.bind(server=configuration.host).debug("configured Kubernetes client")
    return configuration


@asynccontextmanager
async def open_concierge_client(
    cluster: Cluster,
    user: AuthInfo,
    api_group_suffix: str,
    timeout: float,
) -> AsyncIterator[ConciergeClient]:
    """Yields a KubernetesConciergeClient for the kubeconfig `cluster` and `user`, closing it on exit."""
    configuration = await new_cluster_configuration(cluster, user)
    async with k8s_client.ApiClient(configuration=configuration) as api_client:
        yield KubernetesConciergeClient(k8s_client.CustomObjectsApi(api_client), api_group_suffix, timeout)
