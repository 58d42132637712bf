"""GitHub REST client wrapper.

Provides:
- strict host allowlist and no-redirect behavior
- bounded retries with backoff
- finite timeouts
- error translation into the triage taxonomy
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .config import LimitsConfig
from .errors import GITHUB_API_ERROR, NOT_FOUND, TriageError, github_auth_failed

logger = logging.getLogger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"

TokenProvider = Callable[[], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class RequestBudget:
    """Budget for a single gateway call."""

    total_timeout_s: float


def static_token_provider(token: str) -> TokenProvider:
    """Wrap a fixed token (GITHUB_TOKEN) in the async provider interface."""

    async def provide() -> str:
        return token

    return provide


def _error_hint(resp: httpx.Response) -> str | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return None


class GitHubClient:
    """Minimal GitHub REST client."""

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        limits: LimitsConfig,
        api_base_url: str = GITHUB_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create a GitHub REST client.

        Args:
            token_provider: Async callable that returns the API token.
            limits: Timeouts/retry limits.
            api_base_url: Must be https://api.github.com (enforced).
            transport: Optional httpx transport for tests.
        """
        self._token_provider = token_provider
        self._limits = limits
        self._api_base_url = api_base_url.rstrip("/")
        self._transport = transport

        if self._api_base_url != GITHUB_API_BASE_URL:
            raise TriageError(code="Config", message="Only https://api.github.com is allowed")

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

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
        if status_code == 429:
            return True
        return 500 <= status_code <= 599

    def _timeout(self, budget: RequestBudget) -> httpx.Timeout:
        return httpx.Timeout(
            timeout=min(budget.total_timeout_s, self._limits.total_timeout_s),
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )

    def _raise_for_status(self, resp: httpx.Response, *, what: str) -> None:
        hint = _error_hint(resp)
        if resp.status_code in (401, 403):
            raise github_auth_failed(status_code=resp.status_code)
        if resp.status_code == 404:
            raise TriageError(code=NOT_FOUND, message=f"{what} not found", hint=hint, status_code=404)
        raise TriageError(
            code=GITHUB_API_ERROR,
            message="GitHub request failed",
            hint=hint,
            status_code=resp.status_code,
        )

    async def _send(
        self,
        *,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, str] | None = None,
        budget: RequestBudget,
        what: str = "GitHub resource",
    ) -> httpx.Response:
        """Send one logical request with bounded retries; return a 2xx response."""
        url = f"{self._api_base_url}{path}"
        token = await self._token_provider()

        last_exc: Exception | None = None
        last_status: int | None = None

        async with httpx.AsyncClient(
            follow_redirects=False,
            timeout=self._timeout(budget),
            transport=self._transport,
        ) as client:
            for attempt in range(1, self._limits.max_attempts + 1):
                try:
                    resp = await client.request(
                        method,
                        url,
                        headers=self._headers(token),
                        json=json_body,
                        params=params,
                    )
                except (httpx.TimeoutException, httpx.TransportError) as exc:
                    last_exc = exc
                    if attempt < self._limits.max_attempts:
                        logger.warning("GitHub %s %s failed (%s), retrying", method, path, type(exc).__name__)
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    raise TriageError(code=GITHUB_API_ERROR, message="Network request to GitHub failed") from exc

                last_status = resp.status_code
                if resp.status_code < 400:
                    return resp

                if attempt < self._limits.max_attempts and self._is_retryable(resp.status_code, None):
                    logger.warning("GitHub %s %s returned %s, retrying", method, path, resp.status_code)
                    await asyncio.sleep(self._compute_backoff_s(attempt))
                    continue

                self._raise_for_status(resp, what=what)

        raise TriageError(code=GITHUB_API_ERROR, message=f"Request failed (status={last_status})") from last_exc

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, str] | None = None,
        budget: RequestBudget,
        what: str = "GitHub resource",
    ) -> object:
        """Make a request and return decoded JSON.

        GitHub APIs may return either an object (dict) or an array (list).
        """
        resp = await self._send(
            method=method,
            path=path,
            json_body=json_body,
            params=params,
            budget=budget,
            what=what,
        )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except json.JSONDecodeError as exc:
            raise TriageError(code=GITHUB_API_ERROR, message="GitHub returned invalid JSON") from exc
