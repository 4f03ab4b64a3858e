"""GitHub REST client wrapper.

Provides:
- strict host allowlist and no-redirect behavior
- finite timeouts on every request, bounded by a per-call time budget
- bounded retries with backoff for read requests only
- a single-attempt, no-content request for side-effecting calls
- translation of non-2xx responses into SafeError
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import GITHUB_API_BASE_URL, LimitsConfig
from .errors import CONFIG, NETWORK, PROVIDER_ERROR, UNEXPECTED_PROTOCOL, SafeError, provider_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RequestBudget:
    """Wall-clock budget for a single tool call, shared by every request the call makes."""

    total_timeout_s: float
    started_at: float = field(default_factory=time.monotonic)

    def remaining_s(self) -> float:
        return self.total_timeout_s - (time.monotonic() - self.started_at)


def _provider_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return f"Request failed with status code {resp.status_code}"


class GitHubClient:
    """Minimal GitHub REST client.

    The token is supplied per request so that a caller-provided token can override the
    configured default on any single call.
    """

    def __init__(
        self,
        *,
        limits: LimitsConfig,
        api_base_url: str = GITHUB_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create a GitHub REST client.

        Args:
            limits: Timeouts/retry limits.
            api_base_url: Must be https://api.github.com (enforced).
            transport: Optional httpx transport for tests.
        """
        self._limits = limits
        self._api_base_url = api_base_url.rstrip("/")
        self._transport = transport

        if self._api_base_url != GITHUB_API_BASE_URL:
            raise SafeError(code=CONFIG, message="Only https://api.github.com is allowed")

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _timeout(self, budget: RequestBudget) -> httpx.Timeout:
        total = min(budget.remaining_s(), self._limits.total_timeout_s)
        return httpx.Timeout(
            timeout=total,
            connect=min(self._limits.connect_timeout_s, total),
            read=min(self._limits.read_timeout_s, total),
        )

    def _ensure_budget(self, budget: RequestBudget, method: str, path: str) -> None:
        if budget.remaining_s() <= 0:
            logger.warning("GitHub %s %s skipped: call time budget exhausted", method, path)
            raise SafeError(code=NETWORK, message="Request time budget exhausted")

    def _client(self, budget: RequestBudget) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            timeout=self._timeout(budget),
            transport=self._transport,
        )

    def _compute_backoff_s(self, attempt_index: int) -> float:
        # attempt_index: 1 for first retry, 2 for second retry...
        base = min(self._limits.max_backoff_s, 0.5 * (2 ** (attempt_index - 1)))
        jitter = min(0.05, 0.01 * attempt_index)
        return min(self._limits.max_backoff_s, base + jitter)

    def _is_retryable(self, status_code: int | None, exc: Exception | None) -> bool:
        if exc is not None:
            return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))
        if status_code is None:
            return False
        return status_code == 429 or 500 <= status_code <= 599

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        budget: RequestBudget,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> object:
        """Make a read request and return decoded JSON.

        Retries 429/5xx responses and transport errors up to `max_attempts`.
        """
        url = f"{self._api_base_url}{path}"
        last_exc: Exception | None = None

        async with self._client(budget) as client:
            for attempt in range(1, self._limits.max_attempts + 1):
                self._ensure_budget(budget, method, path)
                try:
                    resp = await client.request(
                        method,
                        url,
                        headers=self._headers(token),
                        params=params,
                        json=json_body,
                        timeout=self._timeout(budget),
                    )
                except (httpx.TimeoutException, httpx.TransportError) as exc:
                    last_exc = exc
                    if attempt < self._limits.max_attempts:
                        logger.warning("GitHub %s %s failed (%s); retrying", method, path, type(exc).__name__)
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    raise SafeError(code=NETWORK, message="Network request failed") from exc

                if resp.status_code >= 400:
                    if attempt < self._limits.max_attempts and self._is_retryable(resp.status_code, None):
                        logger.warning("GitHub %s %s returned %s; retrying", method, path, resp.status_code)
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    raise provider_error(
                        status_code=resp.status_code,
                        reason=resp.reason_phrase,
                        provider_message=_provider_message(resp),
                    )

                try:
                    return resp.json()
                except json.JSONDecodeError as exc:
                    raise SafeError(code=PROVIDER_ERROR, message="GitHub returned invalid JSON") from exc

        raise SafeError(code=NETWORK, message="Network request failed") from last_exc

    async def request_no_content(
        self,
        *,
        method: str,
        path: str,
        budget: RequestBudget,
        token: str,
        json_body: dict[str, Any] | None = None,
    ) -> None:
        """Make exactly one request whose only success shape is 204 with an empty body.

        Never retried: the request may have a side effect even when the response is lost.
        """
        url = f"{self._api_base_url}{path}"
        self._ensure_budget(budget, method, path)

        async with self._client(budget) as client:
            try:
                resp = await client.request(method, url, headers=self._headers(token), json=json_body)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                raise SafeError(code=NETWORK, message=f"Network request failed ({type(exc).__name__})") from exc

        if resp.status_code >= 400:
            raise provider_error(
                status_code=resp.status_code,
                reason=resp.reason_phrase,
                provider_message=_provider_message(resp),
            )
        if resp.status_code != 204 or resp.content:
            raise SafeError(
                code=UNEXPECTED_PROTOCOL,
                message=f"Unexpected response status: {resp.status_code}",
                status_code=resp.status_code,
            )
