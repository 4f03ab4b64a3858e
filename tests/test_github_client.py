"""GitHub client tests: host allowlist, error translation, read retries."""

from __future__ import annotations

import time

import httpx
import pytest
from github_actions_mcp.config import LimitsConfig
from github_actions_mcp.errors import (CONFIG, NETWORK, PROVIDER_ERROR,
                                       SafeError)
from github_actions_mcp.github_client import GitHubClient, RequestBudget


def _budget(total_timeout_s: float = 5.0) -> RequestBudget:
    return RequestBudget(total_timeout_s=total_timeout_s)


def _client(handler, **limits: object) -> GitHubClient:  # noqa: ANN001
    return GitHubClient(
        limits=LimitsConfig(max_backoff_s=0.0, **limits),  # type: ignore[arg-type]
        transport=httpx.MockTransport(handler),
    )


def test_github_client_rejects_non_github_api_host() -> None:
    with pytest.raises(SafeError) as exc:
        _ = GitHubClient(limits=LimitsConfig(), api_base_url="https://example.com")

    assert exc.value.code == CONFIG


@pytest.mark.asyncio
async def test_request_json_sends_auth_and_version_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    out = await _client(handler).request_json(method="GET", path="/repos/octo/repo", token="tok", budget=_budget())

    assert out == {"ok": True}
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert seen[0].headers["Accept"] == "application/vnd.github+json"
    assert seen[0].headers["X-GitHub-Api-Version"] == "2022-11-28"


@pytest.mark.asyncio
async def test_request_json_without_token_is_unauthenticated() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    _ = await _client(handler).request_json(method="GET", path="/repos/octo/repo/releases", budget=_budget())

    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_request_json_raises_on_invalid_json() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not-json")

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler, max_attempts=1).request_json(method="GET", path="/x", budget=_budget())

    assert exc.value.code == PROVIDER_ERROR
    assert "invalid json" in exc.value.message.lower()


@pytest.mark.asyncio
async def test_request_json_404_is_provider_error_with_message() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(404, json={"message": "Not Found"})

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler, max_attempts=3).request_json(method="GET", path="/repos/octo/repo", budget=_budget())

    assert exc.value.code == PROVIDER_ERROR
    assert exc.value.status_code == 404
    assert exc.value.provider_message == "Not Found"
    assert exc.value.hint is None
    assert exc.value.message == "GitHub API error: 404 Not Found - Not Found"
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_request_json_error_payload_non_json_uses_status_text() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, content=b"not-json")

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler, max_attempts=1).request_json(method="GET", path="/boom", budget=_budget())

    assert exc.value.code == PROVIDER_ERROR
    assert exc.value.provider_message == "Request failed with status code 500"


@pytest.mark.asyncio
async def test_request_json_retries_on_500_then_succeeds() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(500, json={"message": "oops"})
        return httpx.Response(200, json={"ok": True})

    out = await _client(handler, max_attempts=2).request_json(method="GET", path="/x", budget=_budget())

    assert out == {"ok": True}
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_request_json_retries_on_429_until_attempts_exhausted() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(429, json={"message": "rate limited"})

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler, max_attempts=3).request_json(method="GET", path="/x", budget=_budget())

    assert exc.value.status_code == 429
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_request_json_transport_error_raises_network() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("nope")

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler, max_attempts=2).request_json(method="GET", path="/x", budget=_budget())

    assert exc.value.code == NETWORK
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_request_json_raises_when_max_attempts_zero() -> None:
    client = GitHubClient(limits=LimitsConfig(max_attempts=0))

    with pytest.raises(SafeError) as exc:
        _ = await client.request_json(method="GET", path="/x", budget=_budget())

    assert exc.value.code == NETWORK


@pytest.mark.asyncio
async def test_request_no_content_accepts_204() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        return httpx.Response(204)

    out = await _client(handler).request_no_content(method="POST", path="/x", token="tok", json_body={}, budget=_budget())

    assert out is None


@pytest.mark.asyncio
async def test_request_no_content_does_not_follow_redirects() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(302, headers={"Location": "https://elsewhere.example/"})

    with pytest.raises(SafeError) as exc:
        _ = await _client(handler).request_no_content(method="POST", path="/x", token="tok", budget=_budget())

    assert exc.value.code == "UnexpectedProtocol"
    assert calls["n"] == 1


def test_github_client_helpers_are_deterministic() -> None:
    client = GitHubClient(limits=LimitsConfig(max_attempts=1, max_backoff_s=0.0))

    assert "Authorization" not in client._headers(None)  # pylint: disable=protected-access
    assert client._headers("t")["Authorization"] == "Bearer t"  # pylint: disable=protected-access
    assert client._compute_backoff_s(1) >= 0.0  # pylint: disable=protected-access
    assert client._is_retryable(429, None) is True  # pylint: disable=protected-access
    assert client._is_retryable(404, None) is False  # pylint: disable=protected-access
    assert client._is_retryable(None, None) is False  # pylint: disable=protected-access
    assert client._is_retryable(None, httpx.ReadTimeout("t")) is True  # pylint: disable=protected-access


def test_timeout_is_bounded_by_budget_and_limits() -> None:
    client = GitHubClient(limits=LimitsConfig(total_timeout_s=30.0, connect_timeout_s=5.0, read_timeout_s=20.0))

    timeout = client._timeout(RequestBudget(total_timeout_s=60.0))  # pylint: disable=protected-access

    assert timeout.connect == 5.0
    assert timeout.read == 20.0
    assert timeout.pool == 30.0


def test_timeout_shrinks_with_remaining_budget() -> None:
    client = GitHubClient(limits=LimitsConfig())
    budget = RequestBudget(total_timeout_s=30.0, started_at=time.monotonic() - 28.0)

    timeout = client._timeout(budget)  # pylint: disable=protected-access

    assert timeout.connect is not None and timeout.connect <= 2.0
    assert timeout.read is not None and timeout.read <= 2.0
    assert timeout.pool is not None and timeout.pool <= 2.0


@pytest.mark.asyncio
async def test_exhausted_budget_fails_without_any_request() -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={})

    spent = RequestBudget(total_timeout_s=1.0, started_at=time.monotonic() - 5.0)
    client = _client(handler)

    with pytest.raises(SafeError) as read_exc:
        _ = await client.request_json(method="GET", path="/x", budget=spent)
    with pytest.raises(SafeError) as write_exc:
        await client.request_no_content(method="POST", path="/x", token="tok", budget=spent)

    assert read_exc.value.code == NETWORK
    assert write_exc.value.code == NETWORK
    assert "budget" in write_exc.value.message
    assert calls["n"] == 0
