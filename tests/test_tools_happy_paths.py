"""Happy-path tool execution tests.

These exercise the tool implementations through ``dispatch_tool`` with an
in-memory gateway and search client; no network calls are made.
"""

from __future__ import annotations

from datetime import datetime, timezone

import issue_triage.tools as tools
import pytest
from issue_triage.models import Discussion, Label, TimelineEvent

from conftest import DummyGateway, DummySearch, make_issue, make_runtime


@pytest.mark.asyncio
async def test_get_github_issue_returns_chat_view_and_audits(runtime) -> None:
    out = await tools.dispatch_tool(runtime, "getGithubIssue", {"issueNumber": 42})

    assert out["ok"] is True
    assert out["correlation_id"]
    assert out["issue"]["number"] == 42
    assert out["issue"]["labels"] == [{"name": "bug", "color": "f00"}]

    [event] = runtime.audit.events
    assert event.operation == "getGithubIssue"
    assert event.target == "octo/repo#42"
    assert event.outcome == "succeeded"
    assert event.correlation_id == out["correlation_id"]


@pytest.mark.asyncio
async def test_get_repository_labels(runtime) -> None:
    out = await tools.dispatch_tool(runtime, "getRepositoryLabels", {})

    assert out["ok"] is True
    assert out["total"] == 2
    assert out["labels"][0] == {"name": "bug", "color": "f00", "description": "Something is broken"}


@pytest.mark.asyncio
async def test_search_issues_by_labels_is_a_sorted_truncated_union() -> None:
    one = make_issue(1, created_at="2024-01-03T00:00:00Z")
    two = make_issue(2, created_at="2024-01-01T00:00:00Z")
    three = make_issue(3, created_at="2024-01-05T00:00:00Z")
    gateway = DummyGateway(by_label={"bug": [one, two], "ui": [three, two]})
    runtime = make_runtime(gateway)

    out = await tools.dispatch_tool(runtime, "searchIssuesByLabels", {"labels": ["bug", "ui", "bug"], "limit": 2})

    assert out["ok"] is True
    assert [i["number"] for i in out["issues"]] == [3, 1]
    assert out["total"] == 2

    calls = gateway.called("list_issues")
    assert [c["labels"] for c in calls] == [["bug"], ["ui"]]
    for c in calls:
        assert c["state"] == "all"
        assert (c["sort"], c["direction"]) == ("created", "desc")
        assert (c["per_page"], c["page_limit"]) == (2, 1)


@pytest.mark.asyncio
async def test_search_issues_by_labels_default_limit() -> None:
    gateway = DummyGateway(by_label={"bug": [make_issue(n) for n in range(1, 15)]})
    out = await tools.dispatch_tool(make_runtime(gateway), "searchIssuesByLabels", {"labels": ["bug"]})

    assert out["total"] == 10


@pytest.mark.asyncio
async def test_set_suggested_labels_is_a_local_echo(runtime, gateway) -> None:
    out = await tools.dispatch_tool(runtime, "setSuggestedLabels", {"issueNumber": 42, "suggestedLabels": ["bug", "ui"]})

    assert out["ok"] is True
    assert out["issueNumber"] == 42
    assert out["suggestedLabels"] == ["bug", "ui"]
    assert out["message"] == "Set 2 suggested labels for issue #42"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_set_issue_status_appends_annotation(runtime, gateway) -> None:
    out = await tools.dispatch_tool(
        runtime,
        "setIssueStatus",
        {"issueNumber": 42, "currentStatus": None, "suggestedStatus": "Triage", "reason": "Clear repro steps"},
    )

    assert out["ok"] is True
    assert out["previousStatus"] == ""
    assert out["newStatus"] == "Triage"
    assert "Clear repro steps" in out["message"]

    [(number, body)] = gateway.called("update_issue_body")
    assert number == 42
    assert body == "Something is broken\n\nStatus: Triage\nReason: Clear repro steps"


@pytest.mark.asyncio
async def test_set_issue_status_done_on_completed_issue() -> None:
    gateway = DummyGateway(issues={5: make_issue(5, state="closed", state_reason="completed")})
    out = await tools.dispatch_tool(
        make_runtime(gateway),
        "setIssueStatus",
        {"issueNumber": 5, "currentStatus": "In Verification", "suggestedStatus": "Done", "reason": "Verified"},
    )

    assert out["ok"] is True
    assert out["previousStatus"] == "In Verification"
    assert len(gateway.called("update_issue_body")) == 1


@pytest.mark.asyncio
async def test_categorize_issue_type(runtime) -> None:
    out = await tools.dispatch_tool(
        runtime,
        "categorizeIssueType",
        {"issueNumber": 42, "issueContent": "Crash with an error in the Python API", "currentLabels": ["bug"]},
    )

    assert out["ok"] is True
    assert out["primaryType"] == "bug"
    assert out["confidence"] == 1.0
    assert out["suggestedLabels"] == ["bug", "python", "backend"]
    assert out["currentLabels"] == ["bug"]


@pytest.mark.asyncio
async def test_categorize_accepts_issue_text_mentioning_bearer_tokens(runtime) -> None:
    out = await tools.dispatch_tool(
        runtime,
        "categorizeIssueType",
        {"issueNumber": 5, "issueContent": "Bearer token auth crashes with an error in the API"},
    )

    assert out["ok"] is True
    assert out["primaryType"] == "bug"


@pytest.mark.asyncio
async def test_search_external_content_accepts_queries_mentioning_bearer_tokens() -> None:
    search = DummySearch(response={"web": {"results": [{"title": "401 after expiry"}]}})

    out = await tools.dispatch_tool(
        make_runtime(search=search),
        "searchExternalContent",
        {"query": "bearer token expired 401 httpx", "summary": False},
    )

    assert out["ok"] is True
    assert out["webResults"] == [{"title": "401 after expiry"}]
    assert search.calls[0]["query"] == "bearer token expired 401 httpx"


_NOW = datetime(2024, 3, 11, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_issue_activity_flags_stale_issue(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "_utcnow", lambda: _NOW)
    gateway = DummyGateway(issues={42: make_issue(42, updated_at="2024-03-01T00:00:00Z")})

    out = await tools.dispatch_tool(make_runtime(gateway), "getIssueActivity", {"issueNumber": 42, "lookbackPeriod": 7})

    assert out["ok"] is True
    assert out["needsAttention"] is True
    assert out["daysSinceLastUpdate"] == 10
    assert "inactive for 10 days" in out["attentionReason"]
    assert out["activityTimeline"] == []
    assert out["participantCount"] == 1
    assert gateway.called("get_issue") == [42]
    assert gateway.called("list_timeline_events") == [42]


@pytest.mark.asyncio
async def test_issue_activity_info_needed_label(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "_utcnow", lambda: _NOW)
    issue = make_issue(42, updated_at="2024-03-09T00:00:00Z", labels=(Label("Info Needed"),))
    events = [
        TimelineEvent("2024-03-10T00:00:00Z", "commented", "hubot", "Added a comment"),
        TimelineEvent("2024-01-10T00:00:00Z", "labeled", "old", "Added label: bug"),
    ]
    gateway = DummyGateway(issues={42: issue}, timeline={42: events})

    out = await tools.dispatch_tool(make_runtime(gateway), "getIssueActivity", {"issueNumber": 42})

    assert out["needsAttention"] is True
    assert out["attentionReason"] == "Issue is waiting for more information"
    assert out["daysSinceLastUpdate"] == 2
    assert [e["actor"] for e in out["activityTimeline"]] == ["hubot"]
    assert out["participantCount"] == 2


@pytest.mark.asyncio
async def test_issue_activity_healthy_issue(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "_utcnow", lambda: _NOW)
    issue = make_issue(42, updated_at="2024-03-10T12:00:00Z")
    events = [TimelineEvent("2024-03-10T12:00:00Z", "commented", "octocat", "Added a comment")]
    gateway = DummyGateway(issues={42: issue}, timeline={42: events})

    out = await tools.dispatch_tool(make_runtime(gateway), "getIssueActivity", {"issueNumber": 42})

    assert out["needsAttention"] is False
    assert out["attentionReason"] == ""
    assert out["daysSinceLastUpdate"] == 0
    assert out["participantCount"] == 1


@pytest.mark.asyncio
async def test_search_external_content_with_summary() -> None:
    search = DummySearch(
        response={"web": {"results": [{"title": "Fix", "url": "https://example.com"}]}, "summarizer": {"key": "k1"}},
        summary={"summary": [{"type": "token", "data": "Use the flag."}], "entities": [{"name": "libfoo"}]},
    )

    out = await tools.dispatch_tool(make_runtime(search=search), "searchExternalContent", {"query": "segfault libfoo"})

    assert out["ok"] is True
    assert out["webResults"] == [{"title": "Fix", "url": "https://example.com"}]
    assert out["summary"] == [{"type": "token", "data": "Use the flag."}]
    assert out["entities"] == [{"name": "libfoo"}]
    assert search.calls[0]["country"] == "us"
    assert search.calls[0]["summary"] is True
    assert search.calls[1] == {"summary_key": "k1"}


@pytest.mark.asyncio
async def test_search_external_content_without_summary_skips_summarizer() -> None:
    search = DummySearch(response={"web": {"results": []}, "summarizer": {"key": "k1"}})

    out = await tools.dispatch_tool(
        make_runtime(search=search), "searchExternalContent", {"query": "x", "summary": False}
    )

    assert out["summary"] is None
    assert len(search.calls) == 1


@pytest.mark.asyncio
async def test_get_discussion_by_id() -> None:
    discussion = Discussion(
        id="D_1",
        title="How do I configure it?",
        body="Question",
        author="octocat",
        url=None,
        created_at="2024-01-01T00:00:00Z",
        closed=False,
        is_answered=False,
        comment_count=0,
        comments=(),
    )
    runtime = make_runtime(DummyGateway(discussions={"D_1": discussion}))

    out = await tools.dispatch_tool(runtime, "getDiscussionById", {"discussionId": "D_1"})

    assert out["ok"] is True
    assert out["discussion"]["title"] == "How do I configure it?"
    assert runtime.audit.events[0].target == "octo/repo/discussions/D_1"
