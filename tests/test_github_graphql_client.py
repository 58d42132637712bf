"""GitHub GraphQL client tests."""

from __future__ import annotations

import json

import httpx
import pytest
from issue_triage.config import LimitsConfig
from issue_triage.errors import TriageError
from issue_triage.github_client import RequestBudget, static_token_provider
from issue_triage.github_graphql_client import GitHubGraphQLClient


def _client(handler) -> GitHubGraphQLClient:
    return GitHubGraphQLClient(
        token_provider=static_token_provider("tok"),
        limits=LimitsConfig(max_attempts=1),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_posts_query_and_variables_to_graphql_endpoint() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["method"] = request.method
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"viewer": {"login": "octocat"}}})

    result = await _client(handler).execute(
        query="query { viewer { login } }",
        variables={"a": 1},
        budget=RequestBudget(total_timeout_s=5.0),
    )

    assert result.data == {"viewer": {"login": "octocat"}}
    assert seen["url"] == "https://api.github.com/graphql"
    assert seen["method"] == "POST"
    assert seen["payload"] == {"query": "query { viewer { login } }", "variables": {"a": 1}}


@pytest.mark.asyncio
async def test_graphql_not_found_error_maps_to_not_found() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": {"node": None}, "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a node"}]},
        )

    with pytest.raises(TriageError) as exc:
        await _client(handler).execute(query="query { x }", budget=RequestBudget(total_timeout_s=5.0))

    assert exc.value.code == "NotFound"
    assert exc.value.hint == "Could not resolve to a node"


@pytest.mark.asyncio
async def test_graphql_other_errors_map_to_github_api_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "Field 'x' doesn't exist"}]})

    with pytest.raises(TriageError) as exc:
        await _client(handler).execute(query="query { x }", budget=RequestBudget(total_timeout_s=5.0))

    assert exc.value.code == "GitHubApiError"


@pytest.mark.asyncio
async def test_graphql_missing_data_is_an_error() -> None:
    with pytest.raises(TriageError) as exc:
        await _client(lambda _r: httpx.Response(200, json={"data": None})).execute(
            query="query { x }", budget=RequestBudget(total_timeout_s=5.0)
        )

    assert exc.value.code == "GitHubApiError"


@pytest.mark.asyncio
async def test_graphql_rejects_empty_query() -> None:
    with pytest.raises(TriageError):
        await _client(lambda _r: httpx.Response(200, json={"data": {}})).execute(
            query="   ", budget=RequestBudget(total_timeout_s=5.0)
        )
