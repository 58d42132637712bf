"""In-memory collaborators shared by the tool, orchestrator and web tests."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any

import pytest
from issue_triage.audit import AuditEvent
from issue_triage.config import AppConfig, LimitsConfig
from issue_triage.errors import NOT_FOUND, TriageError
from issue_triage.models import Discussion, Issue, Label, TimelineEvent
from issue_triage.tools import Runtime


def make_issue(number: int, **overrides: Any) -> Issue:
    values: dict[str, Any] = {
        "number": number,
        "title": f"Issue {number}",
        "body": "Something is broken",
        "state": "open",
        "state_reason": None,
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-02T00:00:00Z",
        "labels": (),
        "author": "octocat",
    }
    values.update(overrides)
    return Issue(**values)


@dataclass
class DummyAudit:
    events: list[AuditEvent] = field(default_factory=list)

    def write_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


class DummyGateway:
    repository = "octo/repo"

    def __init__(
        self,
        *,
        issues: dict[int, Issue] | None = None,
        labels: list[Label] | None = None,
        by_label: dict[str, list[Issue]] | None = None,
        timeline: dict[int, list[TimelineEvent]] | None = None,
        discussions: dict[str, Discussion] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.issues = dict(issues or {})
        self.labels = list(labels or [])
        self.by_label = dict(by_label or {})
        self.timeline = dict(timeline or {})
        self.discussions = dict(discussions or {})
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, Any]] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.failures:
            raise self.failures[name]

    async def get_issue(self, number: int) -> Issue:
        self.calls.append(("get_issue", number))
        self._maybe_fail("get_issue")
        if number not in self.issues:
            raise TriageError(code=NOT_FOUND, message=f"Issue #{number} not found", status_code=404)
        return self.issues[number]

    async def list_labels(self) -> list[Label]:
        self.calls.append(("list_labels", None))
        self._maybe_fail("list_labels")
        return list(self.labels)

    async def list_issues(self, **kwargs: Any) -> list[Issue]:
        self.calls.append(("list_issues", kwargs))
        self._maybe_fail("list_issues")
        labels = kwargs.get("labels") or []
        if labels:
            return list(self.by_label.get(labels[0], []))
        return list(self.issues.values())

    async def list_issues_without_status(self) -> list[Issue]:
        self.calls.append(("list_issues_without_status", None))
        self._maybe_fail("list_issues_without_status")
        return list(self.issues.values())

    async def list_discussions(self, limit: int) -> tuple[list[Discussion], int]:
        self.calls.append(("list_discussions", limit))
        self._maybe_fail("list_discussions")
        items = list(self.discussions.values())
        return items[:limit], len(items)

    async def set_labels(self, number: int, names: list[str]) -> list[Label]:
        self.calls.append(("set_labels", (number, list(names))))
        self._maybe_fail("set_labels")
        labels = tuple(Label(name=n) for n in names)
        if number in self.issues:
            self.issues[number] = replace(self.issues[number], labels=labels)
        return list(labels)

    async def update_issue_body(self, number: int, body: str) -> Issue:
        self.calls.append(("update_issue_body", (number, body)))
        self._maybe_fail("update_issue_body")
        self.issues[number] = replace(self.issues[number], body=body)
        return self.issues[number]

    async def list_timeline_events(self, number: int) -> list[TimelineEvent]:
        self.calls.append(("list_timeline_events", number))
        self._maybe_fail("list_timeline_events")
        return list(self.timeline.get(number, []))

    async def get_discussion(self, discussion_id: str) -> Discussion:
        self.calls.append(("get_discussion", discussion_id))
        if discussion_id not in self.discussions:
            raise TriageError(code=NOT_FOUND, message=f"Discussion {discussion_id} not found")
        return self.discussions[discussion_id]

    def called(self, name: str) -> list[Any]:
        return [args for call, args in self.calls if call == name]


class DummySearch:
    def __init__(
        self,
        *,
        response: dict[str, Any] | None = None,
        summary: dict[str, Any] | None = None,
        error: Exception | None = None,
        summary_error: Exception | None = None,
    ) -> None:
        self.response = response or {}
        self.summary = summary or {}
        self.error = error
        self.summary_error = summary_error
        self.calls: list[dict[str, Any]] = []

    async def web_search(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response

    async def summarize(self, key: str) -> dict[str, Any]:
        self.calls.append({"summary_key": key})
        if self.summary_error is not None:
            raise self.summary_error
        return self.summary


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "github_token": "tok",
        "repo_owner": "octo",
        "repo_name": "repo",
        "brave_api_key": "brave-key",
        "model": "claude-test",
        "limits": LimitsConfig(max_attempts=1),
    }
    values.update(overrides)
    return AppConfig(**values)


def make_runtime(gateway: DummyGateway | None = None, search: DummySearch | None = None) -> Runtime:
    return Runtime(
        config=make_config(),
        audit=DummyAudit(),  # type: ignore[arg-type]
        gateway=gateway or DummyGateway(),  # type: ignore[arg-type]
        search=search or DummySearch(),  # type: ignore[arg-type]
    )


@pytest.fixture
def gateway() -> DummyGateway:
    return DummyGateway(
        issues={42: make_issue(42, labels=(Label("bug", "f00"),))},
        labels=[Label("bug", "f00", "Something is broken"), Label("ui", "0f0", None)],
    )


@pytest.fixture
def search() -> DummySearch:
    return DummySearch()


@pytest.fixture
def runtime(gateway: DummyGateway, search: DummySearch) -> Runtime:
    return make_runtime(gateway, search)
