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
HTTP transport helpers: trust roots built from PEM bundles and bounded JSON fetches.
"""

import json
import ssl
from collections.abc import Callable
from typing import Any

import httpx
from cryptography import x509
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_kubeconfig.exceptions import DiscoveryError, MalformedDataError, OversizedResponseError
from coreason_kubeconfig.utils.logger import logger

DEFAULT_MAX_RESPONSE_BYTES = 1024 * 1024

HTTPClientFactory = Callable[[bytes | None, float], httpx.AsyncClient]


def parse_ca_bundle(pem_data: bytes) -> list[x509.Certificate]:
    """
    Parses every certificate in a PEM bundle.

    Raises:
        MalformedDataError: If the bundle contains no parseable certificate.
    """
    try:
        return x509.load_pem_x509_certificates(pem_data)
    except ValueError as e:
        raise MalformedDataError(f"could not parse CA bundle: {e}") from e


def count_ca_certs(pem_data: bytes) -> int:
    """Returns the number of certificates in a PEM bundle, or 0 if it cannot be parsed."""
    if not pem_data:
        return 0
    try:
        return len(parse_ca_bundle(pem_data))
    except MalformedDataError:
        return 0


def build_ssl_context(ca_bundle: bytes | None) -> ssl.SSLContext | bool:
    """
    Builds the `verify` argument for httpx.

    An empty bundle means "use the system trust store". A non-empty bundle becomes the
    only trust root.

    Raises:
        MalformedDataError: If the bundle is not a valid PEM certificate bundle.
    """
    if not ca_bundle:
        return True
    parse_ca_bundle(ca_bundle)
    try:
        return ssl.create_default_context(cadata=ca_bundle.decode("ascii"))
    except (ssl.SSLError, UnicodeDecodeError) as e:
        raise MalformedDataError(f"could not load CA bundle: {e}") from e


def new_http_client(ca_bundle: bytes | None, timeout: float) -> httpx.AsyncClient:
    """
    Creates an instrumented async HTTP client trusting `ca_bundle`.

    Args:
        ca_bundle: PEM bundle to trust, or empty for the system trust store.
        timeout: Per-request timeout in seconds.

    Returns:
        httpx.AsyncClient: A client the caller is responsible for closing.
    """
    client = httpx.AsyncClient(verify=build_ssl_context(ca_bundle), timeout=timeout)
    HTTPXClientInstrumentor().instrument_client(client)
    return client


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
) -> Any:
    """
    GETs `url` and decodes a JSON body no larger than `max_bytes`.

    Raises:
        DiscoveryError: On transport failure or a non-200 response.
        OversizedResponseError: If the body exceeds `max_bytes`.
        MalformedDataError: If the body is not valid JSON.
    """
    try:
        async with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise DiscoveryError(
                    f"unexpected http response status from {url}: {response.status_code} {response.reason_phrase}"
                )

            content_length = response.headers.get("Content-Length")
            if content_length and int(content_length) > max_bytes:
                raise OversizedResponseError(f"Response from {url} exceeds {max_bytes} bytes")

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} exceeds {max_bytes} bytes")
    except httpx.HTTPError as e:
        logger.debug(f"GET {url} failed: {e}")
        raise DiscoveryError(f"request to {url} failed: {e}") from e

    try:
        return json.loads(bytes(body))
    except ValueError as e:
        raise MalformedDataError(f"could not parse response JSON from {url}: {e}") from e
