"""Domain records and payload normalization.

GitHub returns the same concepts in several shapes (REST vs GraphQL, labels as
bare strings or objects). Everything is normalized here so that callers only
ever see one canonical record per concept.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .errors import GITHUB_API_ERROR, TriageError

DEFAULT_LABEL_COLOR = "default"


@dataclass(frozen=True, slots=True)
class Label:
    """A repository label."""

    name: str
    color: str = DEFAULT_LABEL_COLOR
    description: str | None = None

    def to_dict(self, *, with_description: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "color": self.color}
        if with_description:
            out["description"] = self.description
        return out


@dataclass(frozen=True, slots=True)
class Issue:
    """Snapshot of a GitHub issue."""

    number: int
    title: str
    body: str | None
    state: str
    state_reason: str | None
    created_at: str
    updated_at: str | None
    labels: tuple[Label, ...]
    author: str | None = None
    assignees: tuple[str, ...] = ()
    comments: int = 0
    url: str | None = None
    is_pull_request: bool = False

    @property
    def label_names(self) -> list[str]:
        return [label.name for label in self.labels]

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "state_reason": self.state_reason,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "labels": [label.to_dict() for label in self.labels],
            "author": self.author,
            "assignees": list(self.assignees),
            "comments": self.comments,
            "url": self.url,
        }


@dataclass(frozen=True, slots=True)
class DiscussionComment:
    author: str | None
    body: str
    created_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"author": self.author, "body": self.body, "created_at": self.created_at}


@dataclass(frozen=True, slots=True)
class Discussion:
    """A GitHub discussion (read only)."""

    id: str
    title: str
    body: str
    author: str | None
    url: str | None
    created_at: str | None
    closed: bool
    is_answered: bool
    comment_count: int
    comments: tuple[DiscussionComment, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "author": self.author,
            "url": self.url,
            "created_at": self.created_at,
            "closed": self.closed,
            "is_answered": self.is_answered,
            "comment_count": self.comment_count,
            "comments": [c.to_dict() for c in self.comments],
        }


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    """One entry of an issue timeline, reduced to what triage needs."""

    date: str
    type: str
    actor: str
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "type": self.type, "actor": self.actor, "details": self.details}


def parse_timestamp(value: str) -> datetime:
    """Parse a GitHub RFC3339 timestamp into an aware UTC datetime."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


def _login(obj: object) -> str | None:
    if isinstance(obj, dict) and isinstance(obj.get("login"), str):
        return obj["login"]
    return None


def _lower_or_none(value: object) -> str | None:
    return value.lower() if isinstance(value, str) else None


def label_from_payload(raw: object) -> Label | None:
    """Normalize a label given as a bare string or as an object."""
    if isinstance(raw, str):
        return Label(name=raw) if raw else None
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        return None
    color = raw.get("color")
    description = raw.get("description")
    return Label(
        name=name,
        color=color if isinstance(color, str) and color else DEFAULT_LABEL_COLOR,
        description=description if isinstance(description, str) else None,
    )


def _labels(raw: object) -> tuple[Label, ...]:
    if not isinstance(raw, list):
        return ()
    seen: set[str] = set()
    out: list[Label] = []
    for item in raw:
        label = label_from_payload(item)
        if label is None or label.name in seen:
            continue
        seen.add(label.name)
        out.append(label)
    return tuple(out)


def issue_from_rest(data: object) -> Issue:
    """Normalize a REST issue payload."""
    if not isinstance(data, dict):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")
    number = data.get("number")
    title = data.get("title")
    state = data.get("state")
    created_at = data.get("created_at")
    if not isinstance(number, int) or not isinstance(title, str) or not isinstance(state, str):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")
    if not isinstance(created_at, str):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")

    body = data.get("body")
    updated_at = data.get("updated_at")
    assignees = data.get("assignees")
    comments = data.get("comments")
    url = data.get("html_url")

    return Issue(
        number=number,
        title=title,
        body=body if isinstance(body, str) else None,
        state=state.lower(),
        state_reason=_lower_or_none(data.get("state_reason")),
        created_at=created_at,
        updated_at=updated_at if isinstance(updated_at, str) else None,
        labels=_labels(data.get("labels")),
        author=_login(data.get("user")),
        assignees=tuple(a for a in (_login(x) for x in assignees or []) if a) if isinstance(assignees, list) else (),
        comments=comments if isinstance(comments, int) else 0,
        url=url if isinstance(url, str) else None,
        is_pull_request=data.get("pull_request") is not None,
    )


def issue_from_graphql(node: object) -> Issue:
    """Normalize a GraphQL Issue node."""
    if not isinstance(node, dict):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")
    number = node.get("number")
    title = node.get("title")
    state = node.get("state")
    created_at = node.get("createdAt")
    if not isinstance(number, int) or not isinstance(title, str) or not isinstance(state, str):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")
    if not isinstance(created_at, str):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected issue response")

    labels_conn = node.get("labels")
    assignees_conn = node.get("assignees")
    comments_conn = node.get("comments")
    body = node.get("body")
    updated_at = node.get("updatedAt")
    url = node.get("url")
    total_comments = comments_conn.get("totalCount") if isinstance(comments_conn, dict) else None
    assignee_nodes = assignees_conn.get("nodes") if isinstance(assignees_conn, dict) else None

    return Issue(
        number=number,
        title=title,
        body=body if isinstance(body, str) else None,
        state=state.lower(),
        state_reason=_lower_or_none(node.get("stateReason")),
        created_at=created_at,
        updated_at=updated_at if isinstance(updated_at, str) else None,
        labels=_labels(labels_conn.get("nodes") if isinstance(labels_conn, dict) else None),
        author=_login(node.get("author")),
        assignees=tuple(a for a in (_login(x) for x in assignee_nodes) if a) if isinstance(assignee_nodes, list) else (),
        comments=total_comments if isinstance(total_comments, int) else 0,
        url=url if isinstance(url, str) else None,
    )


def discussion_from_graphql(node: object) -> Discussion:
    """Normalize a GraphQL Discussion node."""
    if not isinstance(node, dict):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected discussion response")
    discussion_id = node.get("id")
    title = node.get("title")
    if not isinstance(discussion_id, str) or not isinstance(title, str):
        raise TriageError(code=GITHUB_API_ERROR, message="Unexpected discussion response")

    comments_conn = node.get("comments")
    comment_nodes = comments_conn.get("nodes") if isinstance(comments_conn, dict) else None
    total = comments_conn.get("totalCount") if isinstance(comments_conn, dict) else None

    comments: list[DiscussionComment] = []
    for c in comment_nodes or []:
        if not isinstance(c, dict) or not isinstance(c.get("body"), str):
            continue
        created = c.get("createdAt")
        comments.append(
            DiscussionComment(
                author=_login(c.get("author")),
                body=c["body"],
                created_at=created if isinstance(created, str) else None,
            )
        )

    body = node.get("body")
    url = node.get("url")
    created_at = node.get("createdAt")
    return Discussion(
        id=discussion_id,
        title=title,
        body=body if isinstance(body, str) else "",
        author=_login(node.get("author")),
        url=url if isinstance(url, str) else None,
        created_at=created_at if isinstance(created_at, str) else None,
        closed=bool(node.get("closed")),
        is_answered=bool(node.get("isAnswered")),
        comment_count=total if isinstance(total, int) else len(comments),
        comments=tuple(comments),
    )


def _event_details(event: dict[str, Any]) -> str:
    kind = event.get("event")
    label = event.get("label")
    label_name = label.get("name") if isinstance(label, dict) else None
    assignee = _login(event.get("assignee"))
    if kind == "labeled":
        return f"Added label: {label_name}"
    if kind == "unlabeled":
        return f"Removed label: {label_name}"
    if kind == "assigned":
        return f"Assigned to {assignee}"
    if kind == "unassigned":
        return f"Unassigned from {assignee}"
    if kind == "commented":
        return "Added a comment"
    if kind == "closed":
        reason = event.get("state_reason")
        return f"Closed as {reason}" if reason else "Closed"
    if kind == "reopened":
        return "Reopened"
    if kind == "referenced":
        return f"Referenced in {event.get('commit_id') or 'another item'}"
    return kind if isinstance(kind, str) and kind else "Unknown activity"


def timeline_event_from_rest(event: object) -> TimelineEvent | None:
    """Normalize one timeline entry; returns None for entries without a date.

    Commits carry their date and name under ``author``, every other entry under
    ``created_at`` and ``actor``.
    """
    if not isinstance(event, dict):
        return None
    author = event.get("author") if isinstance(event.get("author"), dict) else None

    date = event.get("created_at")
    if not isinstance(date, str) and author is not None:
        date = author.get("date")
    if not isinstance(date, str):
        return None

    actor = _login(event.get("actor")) or _login(event.get("user"))
    if actor is None and author is not None and isinstance(author.get("name"), str):
        actor = author["name"]

    kind = event.get("event")
    return TimelineEvent(
        date=date,
        type=kind if isinstance(kind, str) and kind else "commit",
        actor=actor or "unknown",
        details=_event_details(event),
    )
