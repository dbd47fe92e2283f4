# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

import base64
import datetime
from collections.abc import AsyncIterator, Callable, Generator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from loguru import logger

from coreason_kubeconfig.concierge_client import ConciergeClient, KubernetesConciergeClient
from coreason_kubeconfig.models import AuthInfo, Cluster, CredentialIssuer


def _make_certificate(common_name: str, ca: bool = True) -> tuple[bytes, bytes]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture(scope="session")
def ca_pem() -> bytes:
    """A self-signed CA certificate in PEM form."""
    return _make_certificate("test-ca")[0]


@pytest.fixture(scope="session")
def other_ca_pem() -> bytes:
    return _make_certificate("other-ca")[0]


@pytest.fixture(scope="session")
def client_cert_and_key() -> tuple[bytes, bytes]:
    return _make_certificate("test-client", ca=False)


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]], None, None]:
    """Collects this package's loguru records (message and bound extras) emitted during the test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(
        lambda message: records.append(message.record), level="DEBUG", filter="coreason_kubeconfig"
    )
    yield records
    logger.remove(handler_id)


def messages(records: list[dict[str, Any]]) -> list[str]:
    return [record["message"] for record in records]


@pytest.fixture
def concierge_client() -> AsyncMock:
    """A Concierge client with no objects unless a test configures some."""
    client = AsyncMock(spec=KubernetesConciergeClient)
    client.list_credential_issuers.return_value = []
    client.list_jwt_authenticators.return_value = []
    client.list_webhook_authenticators.return_value = []
    return client


def concierge_factory(
    client: ConciergeClient,
    calls: list[tuple[Cluster, AuthInfo, str]] | None = None,
) -> Callable[[Cluster, AuthInfo, str, float], Any]:
    @asynccontextmanager
    async def factory(cluster: Cluster, user: AuthInfo, suffix: str, timeout: float) -> AsyncIterator[ConciergeClient]:
        if calls is not None:
            calls.append((cluster, user, suffix))
        yield client

    return factory


def mock_http_factory(
    handler: Callable[[httpx.Request], httpx.Response],
    calls: list[tuple[bytes | None, float]] | None = None,
) -> Callable[[bytes | None, float], httpx.AsyncClient]:
    """An HTTP client factory whose clients are served by `handler`."""

    def factory(ca_bundle: bytes | None, timeout: float) -> httpx.AsyncClient:
        if calls is not None:
            calls.append((ca_bundle, timeout))
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

    return factory


def tcr_strategy(server: str = "https://a", ca_data: str = "AAAA", **overrides: Any) -> dict[str, Any]:
    strategy = {
        "type": "KubeClusterSigningCertificate",
        "status": "Success",
        "reason": "FetchedKey",
        "message": "key was fetched successfully",
        "frontend": {
            "type": "TokenCredentialRequestAPI",
            "tokenCredentialRequestInfo": {"server": server, "certificateAuthorityData": ca_data},
        },
    }
    strategy.update(overrides)
    return strategy


def impersonation_strategy(endpoint: str, ca_data: str, **overrides: Any) -> dict[str, Any]:
    strategy = {
        "type": "ImpersonationProxy",
        "status": "Success",
        "reason": "Listening",
        "message": "impersonation proxy is ready to accept client connections",
        "frontend": {
            "type": "ImpersonationProxy",
            "impersonationProxyInfo": {"endpoint": endpoint, "certificateAuthorityData": ca_data},
        },
    }
    strategy.update(overrides)
    return strategy


def pending_strategy() -> dict[str, Any]:
    return {
        "type": "ImpersonationProxy",
        "status": "Error",
        "reason": "Pending",
        "message": "waiting for load balancer",
    }


def make_credential_issuer(
    name: str = "pinniped-concierge-config",
    strategies: list[dict[str, Any]] | None = None,
    kube_config_info: dict[str, Any] | None = None,
) -> CredentialIssuer:
    status: dict[str, Any] = {"strategies": strategies or []}
    if kube_config_info is not None:
        status["kubeConfigInfo"] = kube_config_info
    return CredentialIssuer.from_object({"metadata": {"name": name}, "status": status})


@pytest.fixture
def kubeconfig_file(tmp_path: Path, ca_pem: bytes) -> Path:
    """A kubeconfig with one context, `kind`, whose user has a bearer token."""
    raw = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": "kind-cluster",
                "cluster": {"server": "https://cluster.example.com:6443", "certificate-authority-data": b64(ca_pem)},
            },
            {"name": "other-cluster", "cluster": {"server": "https://other.example.com"}},
        ],
        "users": [
            {"name": "kind-user", "user": {"token": "t0ken"}},
            {"name": "other-user", "user": {"username": "admin", "password": "secret"}},
        ],
        "contexts": [
            {"name": "kind", "context": {"cluster": "kind-cluster", "user": "kind-user"}},
            {"name": "other", "context": {"cluster": "other-cluster", "user": "other-user"}},
            {"name": "dangling-cluster", "context": {"cluster": "missing", "user": "kind-user"}},
            {"name": "dangling-user", "context": {"cluster": "kind-cluster", "user": "missing"}},
        ],
        "current-context": "kind",
    }
    path = tmp_path / "kubeconfig.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return path
