"""GitHub GraphQL client wrapper.

Shares host allowlist, retries and timeouts with the REST client. Intended
only for fixed query documents owned by the gateway.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .errors import GITHUB_API_ERROR, NOT_FOUND, TriageError
from .github_client import GitHubClient, RequestBudget


@dataclass(frozen=True, slots=True)
class GraphQLResult:
    """Parsed GraphQL response."""

    data: dict[str, Any]


class GitHubGraphQLClient(GitHubClient):
    """Minimal GitHub GraphQL client (POST /graphql only)."""

    async def execute(
        self,
        *,
        query: str,
        variables: dict[str, Any] | None = None,
        budget: RequestBudget,
    ) -> GraphQLResult:
        """Execute a fixed GraphQL query and return parsed data."""
        if not isinstance(query, str) or not query.strip():
            raise TriageError(code="InternalError", message="GraphQL query is missing")

        resp = await self._send(
            method="POST",
            path="/graphql",
            json_body={"query": query, "variables": variables or {}},
            budget=budget,
        )

        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise TriageError(code=GITHUB_API_ERROR, message="GitHub returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise TriageError(code=GITHUB_API_ERROR, message="GitHub returned invalid JSON")

        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            hint = None
            code = GITHUB_API_ERROR
            if isinstance(first, dict):
                if isinstance(first.get("message"), str):
                    hint = first["message"]
                if first.get("type") == "NOT_FOUND":
                    code = NOT_FOUND
            raise TriageError(code=code, message="GitHub GraphQL request failed", hint=hint)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise TriageError(code=GITHUB_API_ERROR, message="GitHub GraphQL returned no data")

        return GraphQLResult(data=data)
