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
Tests for trust-root handling and bounded JSON fetches.
"""

import ssl
from collections.abc import AsyncIterator

import httpx
import pytest

from coreason_kubeconfig.exceptions import DiscoveryError, MalformedDataError, OversizedResponseError
from coreason_kubeconfig.transport import (
    build_ssl_context,
    count_ca_certs,
    new_http_client,
    parse_ca_bundle,
    safe_json_fetch,
)


def test_parse_and_count_ca_bundle(ca_pem: bytes, other_ca_pem: bytes) -> None:
    assert len(parse_ca_bundle(ca_pem)) == 1
    assert count_ca_certs(ca_pem + other_ca_pem) == 2
    assert count_ca_certs(b"") == 0
    assert count_ca_certs(b"garbage") == 0


def test_parse_ca_bundle_rejects_garbage() -> None:
    with pytest.raises(MalformedDataError, match="could not parse CA bundle"):
        parse_ca_bundle(b"-----BEGIN CERTIFICATE-----\nnope\n-----END CERTIFICATE-----\n")


def test_build_ssl_context(ca_pem: bytes) -> None:
    assert build_ssl_context(b"") is True
    assert build_ssl_context(None) is True
    context = build_ssl_context(ca_pem)
    assert isinstance(context, ssl.SSLContext)
    assert len(context.get_ca_certs()) == 1

    with pytest.raises(MalformedDataError):
        build_ssl_context(b"not a certificate")


@pytest.mark.asyncio
async def test_new_http_client(ca_pem: bytes) -> None:
    async with new_http_client(ca_pem, 7.0) as client:
        assert isinstance(client, httpx.AsyncClient)
        assert client.timeout.read == 7.0


def _client(transport: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport)


@pytest.mark.asyncio
async def test_safe_json_fetch_success() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True}))
    async with _client(transport) as client:
        assert await safe_json_fetch(client, "https://idp.example.com/doc") == {"ok": True}


@pytest.mark.asyncio
async def test_safe_json_fetch_non_200() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with _client(transport) as client:
        expected = "unexpected http response status from https://idp.example.com/doc: 404"
        with pytest.raises(DiscoveryError, match=expected):
            await safe_json_fetch(client, "https://idp.example.com/doc")


@pytest.mark.asyncio
async def test_safe_json_fetch_oversized() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": "x" * 100}))
    async with _client(transport) as client:
        with pytest.raises(OversizedResponseError):
            await safe_json_fetch(client, "https://idp.example.com/doc", max_bytes=10)


@pytest.mark.asyncio
async def test_safe_json_fetch_oversized_without_content_length() -> None:
    async def chunks() -> AsyncIterator[bytes]:
        for part in (b"[", b"1," * 20, b"1]"):
            yield part

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=chunks())

    async with _client(httpx.MockTransport(handler)) as client:
        with pytest.raises(OversizedResponseError):
            await safe_json_fetch(client, "https://idp.example.com/doc", max_bytes=16)


@pytest.mark.asyncio
async def test_safe_json_fetch_invalid_json() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
    async with _client(transport) as client:
        with pytest.raises(MalformedDataError, match="could not parse response JSON"):
            await safe_json_fetch(client, "https://idp.example.com/doc")


@pytest.mark.asyncio
async def test_safe_json_fetch_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(httpx.MockTransport(handler)) as client:
        with pytest.raises(DiscoveryError, match="connection refused"):
            await safe_json_fetch(client, "https://idp.example.com/doc")
