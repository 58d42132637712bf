"""Repository-scoped GitHub gateway.

All pagination, filtering and response normalization live here. Callers get
domain records from ``models`` and ``TriageError`` on failure; nothing is
cached, so every read is a fresh fetch.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Any

from .config import AppConfig
from .errors import GITHUB_API_ERROR, NOT_FOUND, VALIDATION_ERROR, TriageError
from .github_client import GitHubClient, RequestBudget
from .github_graphql_client import GitHubGraphQLClient
from .models import (
    Discussion,
    Issue,
    Label,
    TimelineEvent,
    discussion_from_graphql,
    issue_from_graphql,
    issue_from_rest,
    label_from_payload,
    timeline_event_from_rest,
)

logger = logging.getLogger(__name__)

STATUS_FIELD_NAME = "Status"

_DISCUSSION_FIELDS = """
fragment DiscussionFields on Discussion {
  id
  title
  body
  url
  createdAt
  closed
  isAnswered
  author { login }
  comments(first: 50) {
    totalCount
    nodes {
      body
      createdAt
      author { login }
    }
  }
}
""".strip()


_QUERY_ISSUES_WITH_PROJECT_FIELDS = """
query($owner: String!, $name: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    issues(first: $first, after: $after, states: OPEN, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        number
        title
        body
        state
        stateReason
        createdAt
        updatedAt
        url
        author { login }
        labels(first: 20) { nodes { name color } }
        assignees(first: 10) { nodes { login } }
        comments { totalCount }
        projectItems(first: 10) {
          nodes {
            fieldValues(first: 20) {
              nodes {
                ... on ProjectV2ItemFieldSingleSelectValue {
                  name
                  field { ... on ProjectV2FieldCommon { name } }
                }
                ... on ProjectV2ItemFieldTextValue {
                  text
                  field { ... on ProjectV2FieldCommon { name } }
                }
                ... on ProjectV2ItemFieldDateValue {
                  date
                  field { ... on ProjectV2FieldCommon { name } }
                }
              }
            }
          }
        }
      }
    }
  }
}
""".strip()


_QUERY_LIST_DISCUSSIONS = (
    """
query($owner: String!, $name: String!, $first: Int!) {
  repository(owner: $owner, name: $name) {
    discussions(first: $first, orderBy: {field: CREATED_AT, direction: DESC}) {
      totalCount
      nodes { ...DiscussionFields }
    }
  }
}
""".strip()
    + "\n\n"
    + _DISCUSSION_FIELDS
)


_QUERY_DISCUSSION_BY_ID = (
    """
query($id: ID!) {
  node(id: $id) {
    __typename
    ...DiscussionFields
  }
}
""".strip()
    + "\n\n"
    + _DISCUSSION_FIELDS
)


def days_ago(days: int, *, now: datetime | None = None) -> str:
    """Return the RFC3339 timestamp for ``days`` days before ``now``."""
    current = now or datetime.now(timezone.utc)
    return (current - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")


def has_project_item(node: dict[str, Any]) -> bool:
    conn = node.get("projectItems")
    nodes = conn.get("nodes") if isinstance(conn, dict) else None
    return isinstance(nodes, list) and len(nodes) > 0


def has_status_field(node: dict[str, Any]) -> bool:
    """Return True if any project item of the issue carries a ``Status`` value."""
    conn = node.get("projectItems")
    items = conn.get("nodes") if isinstance(conn, dict) else None
    for item in items or []:
        values = item.get("fieldValues") if isinstance(item, dict) else None
        value_nodes = values.get("nodes") if isinstance(values, dict) else None
        for value in value_nodes or []:
            if not isinstance(value, dict):
                continue
            field = value.get("field")
            if isinstance(field, dict) and field.get("name") == STATUS_FIELD_NAME:
                return True
    return False


class GitHubGateway:
    """Single seam between the service and one GitHub repository."""

    def __init__(
        self,
        *,
        config: AppConfig,
        github: GitHubClient,
        graphql: GitHubGraphQLClient,
    ) -> None:
        self._owner = config.repo_owner
        self._repo = config.repo_name
        self._limits = config.limits
        self._github = github
        self._graphql = graphql

    @property
    def repository(self) -> str:
        return f"{self._owner}/{self._repo}"

    def _path(self, suffix: str = "") -> str:
        return f"/repos/{self._owner}/{self._repo}{suffix}"

    def _budget(self) -> RequestBudget:
        return RequestBudget(total_timeout_s=self._limits.total_timeout_s)

    async def _paginate(
        self,
        path: str,
        *,
        params: dict[str, str] | None = None,
        per_page: int | None = None,
        page_limit: int | None = None,
        what: str,
    ) -> AsyncIterator[object]:
        """Yield raw list items page by page.

        A page shorter than ``per_page`` is the last one. ``page_limit`` is a soft
        cap against runaway loops.
        """
        size = per_page or self._limits.per_page
        limit = page_limit or self._limits.page_limit
        page = 1
        while True:
            if page > limit:
                logger.info("Hit page limit for %s, stopping at page %s", path, page)
                return

            query = dict(params or {})
            query["per_page"] = str(size)
            query["page"] = str(page)
            data = await self._github.request_json(
                method="GET",
                path=path,
                params=query,
                budget=self._budget(),
                what=what,
            )
            if not isinstance(data, list):
                raise TriageError(code=GITHUB_API_ERROR, message=f"Unexpected {what.lower()} response")

            for item in data:
                yield item

            if len(data) < size:
                return
            page += 1

    async def list_issues(
        self,
        *,
        state: str = "open",
        labels: list[str] | None = None,
        since: str | None = None,
        page_limit: int | None = None,
        sort: str | None = None,
        direction: str | None = None,
        per_page: int | None = None,
    ) -> list[Issue]:
        """List repository issues, excluding pull requests."""
        params: dict[str, str] = {"state": state}
        if labels:
            params["labels"] = ",".join(labels)
        if since:
            params["since"] = since
        if sort:
            params["sort"] = sort
        if direction:
            params["direction"] = direction

        issues: list[Issue] = []
        async for raw in self._paginate(
            self._path("/issues"),
            params=params,
            per_page=per_page,
            page_limit=page_limit,
            what="Issues",
        ):
            issue = issue_from_rest(raw)
            if issue.is_pull_request:
                continue
            issues.append(issue)
        return issues

    async def get_issue(self, number: int) -> Issue:
        data = await self._github.request_json(
            method="GET",
            path=self._path(f"/issues/{number}"),
            budget=self._budget(),
            what=f"Issue #{number}",
        )
        return issue_from_rest(data)

    async def list_labels(self) -> list[Label]:
        labels: list[Label] = []
        async for raw in self._paginate(self._path("/labels"), what="Labels"):
            label = label_from_payload(raw)
            if label is not None:
                labels.append(label)
        return labels

    async def set_labels(self, number: int, names: list[str]) -> list[Label]:
        """Replace the full label set of an issue."""
        data = await self._github.request_json(
            method="PUT",
            path=self._path(f"/issues/{number}/labels"),
            json_body={"labels": list(names)},
            budget=self._budget(),
            what=f"Issue #{number}",
        )
        if not isinstance(data, list):
            raise TriageError(code=GITHUB_API_ERROR, message="Unexpected labels response")
        return [label for label in (label_from_payload(x) for x in data) if label is not None]

    async def update_issue_body(self, number: int, body: str) -> Issue:
        data = await self._github.request_json(
            method="PATCH",
            path=self._path(f"/issues/{number}"),
            json_body={"body": body},
            budget=self._budget(),
            what=f"Issue #{number}",
        )
        return issue_from_rest(data)

    async def list_timeline_events(self, number: int) -> list[TimelineEvent]:
        events: list[TimelineEvent] = []
        async for raw in self._paginate(self._path(f"/issues/{number}/timeline"), what=f"Issue #{number}"):
            event = timeline_event_from_rest(raw)
            if event is not None:
                events.append(event)
        return events

    async def list_issues_without_status(self) -> list[Issue]:
        """Open issues tracked on a project board that have no ``Status`` value.

        Issues with no project association are excluded: they cannot be told apart
        from issues that are simply not tracked.
        """
        out: list[Issue] = []
        after: str | None = None
        for _ in range(self._limits.page_limit):
            result = await self._graphql.execute(
                query=_QUERY_ISSUES_WITH_PROJECT_FIELDS,
                variables={
                    "owner": self._owner,
                    "name": self._repo,
                    "first": self._limits.per_page,
                    "after": after,
                },
                budget=self._budget(),
            )
            repo = result.data.get("repository")
            conn = repo.get("issues") if isinstance(repo, dict) else None
            if not isinstance(conn, dict):
                raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issues response")

            for node in conn.get("nodes") or []:
                if not isinstance(node, dict):
                    continue
                if has_project_item(node) and not has_status_field(node):
                    out.append(issue_from_graphql(node))

            page_info = conn.get("pageInfo")
            if not isinstance(page_info, dict) or page_info.get("hasNextPage") is not True:
                break
            cursor = page_info.get("endCursor")
            if not isinstance(cursor, str):
                break
            after = cursor
        else:
            logger.info("Hit page limit while listing issues without status")
        return out

    async def list_discussions(self, limit: int) -> tuple[list[Discussion], int]:
        if limit < 1 or limit > 100:
            raise TriageError(code=VALIDATION_ERROR, message="limit must be between 1 and 100")

        result = await self._graphql.execute(
            query=_QUERY_LIST_DISCUSSIONS,
            variables={"owner": self._owner, "name": self._repo, "first": limit},
            budget=self._budget(),
        )
        repo = result.data.get("repository")
        conn = repo.get("discussions") if isinstance(repo, dict) else None
        if not isinstance(conn, dict):
            raise TriageError(code=GITHUB_API_ERROR, message="Unexpected discussions response")

        discussions = [discussion_from_graphql(n) for n in conn.get("nodes") or [] if isinstance(n, dict)]
        total = conn.get("totalCount")
        return discussions, total if isinstance(total, int) else len(discussions)

    async def get_discussion(self, discussion_id: str) -> Discussion:
        result = await self._graphql.execute(
            query=_QUERY_DISCUSSION_BY_ID,
            variables={"id": discussion_id},
            budget=self._budget(),
        )
        node = result.data.get("node")
        if not isinstance(node, dict) or node.get("__typename") != "Discussion":
            raise TriageError(code=NOT_FOUND, message=f"Discussion {discussion_id} not found")
        return discussion_from_graphql(node)
