# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

from typing import Any
from unittest.mock import AsyncMock

import anyio
import pytest
from conftest import make_credential_issuer, messages, pending_strategy, tcr_strategy

from coreason_kubeconfig.credential_issuer import lookup_credential_issuer, wait_for_credential_issuer
from coreason_kubeconfig.deadline import Deadline
from coreason_kubeconfig.exceptions import AmbiguousError, DeadlineExceededError, NotFoundError
from coreason_kubeconfig.models import CredentialIssuer


@pytest.mark.asyncio
async def test_lookup_by_name(concierge_client: AsyncMock) -> None:
    ci = make_credential_issuer("named")
    concierge_client.get_credential_issuer.return_value = ci

    assert await lookup_credential_issuer(concierge_client, "named", Deadline(10)) is ci
    concierge_client.get_credential_issuer.assert_awaited_once_with("named")
    concierge_client.list_credential_issuers.assert_not_awaited()


@pytest.mark.asyncio
async def test_lookup_by_name_not_found(concierge_client: AsyncMock) -> None:
    concierge_client.get_credential_issuer.side_effect = NotFoundError('credentialissuers "named" not found')
    with pytest.raises(NotFoundError, match="not found"):
        await lookup_credential_issuer(concierge_client, "named", Deadline(10))


@pytest.mark.asyncio
async def test_lookup_none_found(concierge_client: AsyncMock) -> None:
    with pytest.raises(AmbiguousError, match="no CredentialIssuers were found") as exc:
        await lookup_credential_issuer(concierge_client, "", Deadline(10))
    assert exc.value.candidates == []


@pytest.mark.asyncio
async def test_lookup_ambiguous(concierge_client: AsyncMock) -> None:
    candidates = [make_credential_issuer("one"), make_credential_issuer("two")]
    concierge_client.list_credential_issuers.return_value = candidates

    with pytest.raises(AmbiguousError, match="--concierge-credential-issuer flag must be specified") as exc:
        await lookup_credential_issuer(concierge_client, "", Deadline(10))
    assert "Found: one, two" in str(exc.value)
    assert exc.value.candidates == candidates


@pytest.mark.asyncio
async def test_lookup_single(concierge_client: AsyncMock, log_records: list[dict[str, Any]]) -> None:
    ci = make_credential_issuer("only")
    concierge_client.list_credential_issuers.return_value = [ci]

    assert await lookup_credential_issuer(concierge_client, "", Deadline(10)) is ci
    discovered = [r for r in log_records if r["message"] == "discovered CredentialIssuer"]
    assert discovered[0]["extra"]["name"] == "only"


@pytest.mark.asyncio
async def test_lookup_sub_timeout(concierge_client: AsyncMock) -> None:
    async def hang(name: str) -> CredentialIssuer:
        await anyio.sleep(5)
        raise AssertionError("unreachable")

    concierge_client.get_credential_issuer.side_effect = hang
    with pytest.raises(DeadlineExceededError, match="looking up CredentialIssuer: timed out after 0.05s"):
        await lookup_credential_issuer(concierge_client, "slow", Deadline(60), lookup_timeout=0.05)


@pytest.mark.asyncio
async def test_wait_until_converged(concierge_client: AsyncMock, log_records: list[dict[str, Any]]) -> None:
    pending = make_credential_issuer("ci", [pending_strategy()])
    ready = make_credential_issuer("ci", [tcr_strategy()])
    concierge_client.get_credential_issuer.side_effect = [pending, pending, ready]

    result = await wait_for_credential_issuer(concierge_client, "ci", Deadline(10), poll_interval=0.01)

    assert result is ready
    assert concierge_client.get_credential_issuer.await_count == 3
    waiting = [r for r in log_records if r["message"] == "waiting for CredentialIssuer pending strategies to finish"]
    assert [r["extra"]["attempts"] for r in waiting] == [1, 2]
    assert all(r["extra"]["elapsed"] == "0s" for r in waiting)
    strategy_logs = [r for r in log_records if r["message"] == "found CredentialIssuer strategy"]
    assert strategy_logs[0]["extra"]["reason"] == "Pending"


@pytest.mark.asyncio
async def test_wait_not_needed(concierge_client: AsyncMock, log_records: list[dict[str, Any]]) -> None:
    concierge_client.get_credential_issuer.return_value = make_credential_issuer("ci", [tcr_strategy()])

    await wait_for_credential_issuer(concierge_client, "ci", Deadline(10), poll_interval=0.01)

    assert concierge_client.get_credential_issuer.await_count == 1
    assert "waiting for CredentialIssuer pending strategies to finish" not in messages(log_records)


@pytest.mark.asyncio
async def test_wait_deadline_exceeded(concierge_client: AsyncMock) -> None:
    concierge_client.get_credential_issuer.return_value = make_credential_issuer("ci", [pending_strategy()])

    with pytest.raises(DeadlineExceededError, match="CredentialIssuer 'ci' still has pending strategies"):
        await wait_for_credential_issuer(concierge_client, "ci", Deadline(0.1), poll_interval=0.02)
    assert concierge_client.get_credential_issuer.await_count >= 2


@pytest.mark.asyncio
async def test_skip_wait_returns_pending_issuer(concierge_client: AsyncMock) -> None:
    pending = make_credential_issuer("ci", [pending_strategy()])
    concierge_client.list_credential_issuers.return_value = [pending]

    result = await wait_for_credential_issuer(concierge_client, "", Deadline(10), skip_wait=True)

    assert result is pending
    assert concierge_client.list_credential_issuers.await_count == 1
