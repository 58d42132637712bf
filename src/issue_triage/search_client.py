"""Brave Search client used for external context.

Both calls are best-effort from the tool's point of view: any failure is raised
as ``ExternalApiError`` and the tool layer degrades to empty results.
"""

from __future__ import annotations

from typing import Any

import httpx

from .config import LimitsConfig
from .errors import EXTERNAL_API_ERROR, TriageError

BRAVE_API_BASE_URL = "https://api.search.brave.com/res/v1"


class BraveSearchClient:
    """Minimal client for the Brave web search and summarizer endpoints."""

    def __init__(
        self,
        *,
        api_key: str | None,
        limits: LimitsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._limits = limits
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
            "X-Subscription-Token": self._api_key or "",
        }

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        if not self._api_key:
            raise TriageError(code=EXTERNAL_API_ERROR, message="BRAVE_API_KEY is not configured")

        timeout = httpx.Timeout(
            timeout=self._limits.total_timeout_s,
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )
        try:
            async with httpx.AsyncClient(
                follow_redirects=False,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(f"{BRAVE_API_BASE_URL}{path}", headers=self._headers(), params=params)
        except httpx.HTTPError as exc:
            raise TriageError(code=EXTERNAL_API_ERROR, message="Search request failed") from exc

        if resp.status_code >= 400:
            raise TriageError(
                code=EXTERNAL_API_ERROR,
                message=f"Brave Search API error: {resp.reason_phrase or resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TriageError(code=EXTERNAL_API_ERROR, message="Search API returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise TriageError(code=EXTERNAL_API_ERROR, message="Search API returned invalid JSON")
        return data

    async def web_search(
        self,
        *,
        query: str,
        country: str | None = None,
        search_lang: str | None = None,
        result_filter: list[str] | None = None,
        summary: bool = True,
    ) -> dict[str, Any]:
        params = {"q": query, "summary": "1" if summary else "0"}
        if country:
            params["country"] = country
        if search_lang:
            params["search_lang"] = search_lang
        if result_filter:
            params["result_filter"] = ",".join(result_filter)
        return await self._get("/web/search", params)

    async def summarize(self, key: str) -> dict[str, Any]:
        return await self._get("/summarizer/search", {"key": key, "entity_info": "1"})
