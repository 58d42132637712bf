"""Tool registry and dispatch layer.

This module:
- defines the tools offered to the language model (public contract surface)
- validates arguments against each tool's input schema before any side effect
- builds the per-process runtime from host-provided config
- creates a correlation_id and one audit event per invocation
- converts every outcome into an envelope so a failing tool never aborts a conversation
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from .audit import DENIED, FAILED, SUCCEEDED, AuditLogger, build_event, new_correlation_id
from .categorize import UNKNOWN, categorize
from .config import AppConfig
from .errors import (
    NOT_FOUND,
    VALIDATION_ERROR,
    TriageError,
    internal_error,
    triage_error_to_result,
)
from .gateway import GitHubGateway
from .github_client import GitHubClient, static_token_provider
from .github_graphql_client import GitHubGraphQLClient
from .models import Issue, parse_timestamp
from .safety import redact_text, validate_no_secrets
from .search_client import BraveSearchClient
from .workflow import VALID_STATUSES, annotate_body, check_status_transition

logger = logging.getLogger(__name__)

STALE_AFTER_DAYS = 7
INFO_NEEDED_MARKER = "info needed"

# Read-only prose arguments, not scanned for credential-like values.
FREE_TEXT_ARGUMENTS = frozenset({"issueContent", "query"})

TOOL_METADATA: dict[str, dict[str, Any]] = {
    "getGithubIssue": {
        "description": "Get a specific GitHub issue by its number.",
        "inputSchema": {
            "type": "object",
            "required": ["issueNumber"],
            "properties": {
                "issueNumber": {"type": "integer", "minimum": 1, "description": "The issue number to fetch"},
            },
            "additionalProperties": False,
        },
    },
    "getRepositoryLabels": {
        "description": "Get all available labels in the repository.",
        "inputSchema": {
            "type": "object",
            "properties": {},
            "additionalProperties": False,
        },
    },
    "searchIssuesByLabels": {
        "description": (
            "Search for GitHub issues carrying any of the given labels. "
            "Returns the most recent issues first (max 20)."
        ),
        "inputSchema": {
            "type": "object",
            "required": ["labels"],
            "properties": {
                "labels": {
                    "type": "array",
                    "items": {"type": "string", "minLength": 1},
                    "minItems": 1,
                    "description": "Label names to search for",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 20,
                    "default": 10,
                    "description": "Number of issues to return (max 20)",
                },
            },
            "additionalProperties": False,
        },
    },
    "setSuggestedLabels": {
        "description": (
            "Set your suggested labels for a specific issue after analyzing it. "
            "This records the suggestion for review; it does not change the issue."
        ),
        "inputSchema": {
            "type": "object",
            "required": ["issueNumber", "suggestedLabels"],
            "properties": {
                "issueNumber": {"type": "integer", "minimum": 1},
                "suggestedLabels": {"type": "array", "items": {"type": "string", "minLength": 1}},
            },
            "additionalProperties": False,
        },
    },
    "setIssueStatus": {
        "description": "Update the workflow status of a GitHub issue. 'Done' requires the issue to be closed as completed.",
        "inputSchema": {
            "type": "object",
            "required": ["issueNumber", "suggestedStatus", "reason"],
            "properties": {
                "issueNumber": {"type": "integer", "minimum": 1},
                "currentStatus": {"type": ["string", "null"], "description": "The current status value if any"},
                "suggestedStatus": {"type": "string", "enum": list(VALID_STATUSES)},
                "reason": {"type": "string", "minLength": 1, "description": "Justification for the status change"},
            },
            "additionalProperties": False,
        },
    },
    "categorizeIssueType": {
        "description": "Analyze issue content to determine its type and suggested categorization labels.",
        "inputSchema": {
            "type": "object",
            "required": ["issueNumber", "issueContent"],
            "properties": {
                "issueNumber": {"type": "integer", "minimum": 1},
                "issueContent": {"type": "string", "description": "The full content of the issue"},
                "currentLabels": {"type": "array", "items": {"type": "string"}, "default": []},
            },
            "additionalProperties": False,
        },
    },
    "getIssueActivity": {
        "description": "Retrieve and analyze recent activity on a GitHub issue.",
        "inputSchema": {
            "type": "object",
            "required": ["issueNumber"],
            "properties": {
                "issueNumber": {"type": "integer", "minimum": 1},
                "lookbackPeriod": {
                    "type": "integer",
                    "minimum": 1,
                    "default": 30,
                    "description": "Number of days to analyze",
                },
            },
            "additionalProperties": False,
        },
    },
    "searchExternalContent": {
        "description": (
            "Search the web for context on technical issues, error messages or related discussions. "
            "Returns web results and an optional summary."
        ),
        "inputSchema": {
            "type": "object",
            "required": ["query"],
            "properties": {
                "query": {"type": "string", "minLength": 1},
                "country": {"type": "string", "default": "us", "description": "2-letter country code"},
                "search_lang": {"type": "string", "default": "en"},
                "result_filter": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Types of results to include (web, news, discussions)",
                },
                "summary": {"type": "boolean", "default": True},
            },
            "additionalProperties": False,
        },
    },
    "getDiscussionById": {
        "description": "Fetch a specific GitHub discussion by its GraphQL node ID.",
        "inputSchema": {
            "type": "object",
            "required": ["discussionId"],
            "properties": {
                "discussionId": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-process dependencies shared across tool calls."""

    config: AppConfig
    audit: AuditLogger
    gateway: GitHubGateway
    search: BraveSearchClient


def build_runtime(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    search_transport: httpx.AsyncBaseTransport | None = None,
) -> Runtime:
    """Build the runtime once at start-up; it is then passed to every consumer."""
    token_provider = static_token_provider(config.github_token)
    github = GitHubClient(token_provider=token_provider, limits=config.limits, transport=transport)
    graphql = GitHubGraphQLClient(token_provider=token_provider, limits=config.limits, transport=transport)
    return Runtime(
        config=config,
        audit=AuditLogger(
            sink_path=config.audit_log_path,
            max_bytes=config.audit_max_bytes,
            max_backups=config.audit_max_backups,
        ),
        gateway=GitHubGateway(config=config, github=github, graphql=graphql),
        search=BraveSearchClient(api_key=config.brave_api_key, limits=config.limits, transport=search_transport),
    )


_JSON_TYPES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


def _check_value(name: str, spec: dict[str, Any], value: Any) -> None:
    expected = spec.get("type")
    if expected is not None:
        allowed = expected if isinstance(expected, list) else [expected]
        if not any(_JSON_TYPES[t](value) for t in allowed):
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must be of type {' or '.join(allowed)}")
    if value is None:
        return

    enum = spec.get("enum")
    if enum is not None and value not in enum:
        raise TriageError(
            code=VALIDATION_ERROR,
            message=f"Field '{name}' must be one of: {', '.join(repr(e) for e in enum)}",
        )

    if isinstance(value, str):
        min_len = spec.get("minLength")
        if isinstance(min_len, int) and len(value.strip()) < min_len:
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must be at least {min_len} characters")

    if isinstance(value, int) and not isinstance(value, bool):
        minimum = spec.get("minimum")
        maximum = spec.get("maximum")
        if isinstance(minimum, int) and isinstance(maximum, int) and not minimum <= value <= maximum:
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must be between {minimum} and {maximum}")
        if isinstance(minimum, int) and value < minimum:
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must be >= {minimum}")
        if isinstance(maximum, int) and value > maximum:
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must be <= {maximum}")

    if isinstance(value, list):
        min_items = spec.get("minItems")
        if isinstance(min_items, int) and len(value) < min_items:
            raise TriageError(code=VALIDATION_ERROR, message=f"Field '{name}' must contain at least {min_items} item(s)")
        items = spec.get("items")
        if isinstance(items, dict):
            for i, item in enumerate(value):
                _check_value(f"{name}[{i}]", items, item)


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Validate arguments against the tool's input schema and apply defaults.

    A minimal validator covering what the catalog uses: required fields, no extra
    properties, JSON types (including nullable unions), enum, minLength,
    minimum/maximum, minItems and array item schemas. It is not full JSON Schema.

    Returns a new argument dict with schema defaults filled in.
    """
    if tool_name not in TOOL_METADATA:
        raise TriageError(code=VALIDATION_ERROR, message="Unknown tool")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})
    required: list[str] = schema.get("required", [])

    for k in required:
        if k not in arguments:
            raise TriageError(code=VALIDATION_ERROR, message=f"Missing required field: {k}")

    if schema.get("additionalProperties", True) is False:
        extras = sorted(k for k in arguments if k not in props)
        if extras:
            raise TriageError(code=VALIDATION_ERROR, message=f"Unexpected fields are not allowed: {', '.join(extras)}")

    validated = dict(arguments)
    for k, spec in props.items():
        if k not in validated:
            if "default" in spec:
                validated[k] = copy.deepcopy(spec["default"])
            continue
        _check_value(k, spec, validated[k])
    return validated


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _tool_get_github_issue(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    number = arguments["issueNumber"]
    issue = await runtime.gateway.get_issue(number)
    if issue.is_pull_request:
        raise TriageError(code=VALIDATION_ERROR, message=f"#{number} is a pull request, not an issue")
    return {"issue": issue.to_dict()}


async def _tool_get_repository_labels(runtime: Runtime, _arguments: dict[str, Any]) -> dict[str, Any]:
    labels = await runtime.gateway.list_labels()
    if not labels:
        raise TriageError(code=NOT_FOUND, message="The repository has no labels")
    return {"total": len(labels), "labels": [label.to_dict(with_description=True) for label in labels]}


async def _tool_search_issues_by_labels(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    limit: int = arguments["limit"]
    labels = list(dict.fromkeys(arguments["labels"]))

    # GitHub's labels filter is an intersection; one query per label gives the union.
    # The newest `limit` issues of the union are always among the newest `limit` of some label.
    per_label = await asyncio.gather(
        *(
            runtime.gateway.list_issues(
                state="all",
                labels=[label],
                sort="created",
                direction="desc",
                per_page=limit,
                page_limit=1,
            )
            for label in labels
        )
    )

    by_number: dict[int, Issue] = {}
    for issues in per_label:
        for issue in issues:
            by_number.setdefault(issue.number, issue)

    merged = sorted(by_number.values(), key=lambda i: parse_timestamp(i.created_at), reverse=True)[:limit]
    return {"total": len(merged), "issues": [issue.to_dict() for issue in merged]}


async def _tool_set_suggested_labels(_runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    number = arguments["issueNumber"]
    suggested = list(dict.fromkeys(arguments["suggestedLabels"]))
    return {
        "issueNumber": number,
        "suggestedLabels": suggested,
        "message": f"Set {len(suggested)} suggested labels for issue #{number}",
    }


async def _tool_set_issue_status(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    number = arguments["issueNumber"]
    suggested = arguments["suggestedStatus"]
    reason = arguments["reason"].strip()
    previous = arguments.get("currentStatus") or ""

    issue = await runtime.gateway.get_issue(number)
    decision = check_status_transition(suggested, issue.state_reason)
    if not decision.allowed:
        raise TriageError(code=VALIDATION_ERROR, message=decision.reason or "Status transition is not allowed")

    await runtime.gateway.update_issue_body(number, annotate_body(issue.body, suggested, reason))
    logger.info("Issue #%s status set to %r", number, suggested)

    return {
        "previousStatus": previous,
        "newStatus": suggested,
        "message": f'Successfully updated issue #{number} status to "{suggested}". Reason: {reason}',
    }


async def _tool_categorize_issue_type(_runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    number = arguments["issueNumber"]
    try:
        result = categorize(arguments["issueContent"])
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Categorizing issue #%s failed: %s", number, exc)
        return {
            "issueNumber": number,
            "primaryType": UNKNOWN,
            "suggestedLabels": [],
            "confidence": 0,
            "scores": {},
            "reasoning": f"Failed to categorize: {exc}",
        }

    return {
        "issueNumber": number,
        "primaryType": result.primary_type,
        "suggestedLabels": result.suggested_labels,
        "confidence": result.confidence,
        "scores": result.scores,
        "currentLabels": arguments["currentLabels"],
        "reasoning": result.reasoning,
    }


def _degraded_activity(number: int, message: str) -> dict[str, Any]:
    return {
        "issueNumber": number,
        "lastUpdateDate": None,
        "daysSinceLastUpdate": None,
        "participantCount": 0,
        "activityTimeline": [],
        "needsAttention": True,
        "attentionReason": f"Error retrieving activity: {message}",
    }


async def _tool_get_issue_activity(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    number = arguments["issueNumber"]
    lookback: int = arguments["lookbackPeriod"]

    try:
        issue, events = await asyncio.gather(
            runtime.gateway.get_issue(number),
            runtime.gateway.list_timeline_events(number),
        )

        now = _utcnow()
        cutoff = now - timedelta(days=lookback)
        recent = [e for e in events if parse_timestamp(e.date) >= cutoff]

        days_since: int | None = None
        if issue.updated_at:
            days_since = int((now - parse_timestamp(issue.updated_at)).total_seconds() // 86400)
    except TriageError as err:
        logger.warning("Activity lookup for issue #%s failed: %s", number, err.message)
        return _degraded_activity(number, err.message)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Activity analysis for issue #%s failed: %s", number, exc)
        return _degraded_activity(number, str(exc) or "Unknown error")

    participants = {e.actor for e in recent}
    participants.add(issue.author or "unknown")

    stale = days_since is not None and days_since > STALE_AFTER_DAYS
    info_needed = any(INFO_NEEDED_MARKER in label.name.lower() for label in issue.labels)

    if stale:
        attention_reason = f"Issue has been inactive for {days_since} days"
    elif info_needed:
        attention_reason = "Issue is waiting for more information"
    elif not recent:
        attention_reason = "No recent activity in the specified timeframe"
    else:
        attention_reason = ""

    return {
        "issueNumber": number,
        "lastUpdateDate": issue.updated_at,
        "daysSinceLastUpdate": days_since,
        "participantCount": len(participants),
        "activityTimeline": [e.to_dict() for e in recent],
        "needsAttention": bool(attention_reason),
        "attentionReason": attention_reason,
    }


async def _tool_search_external_content(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    want_summary: bool = arguments["summary"]
    try:
        data = await runtime.search.web_search(
            query=arguments["query"],
            country=arguments.get("country"),
            search_lang=arguments.get("search_lang"),
            result_filter=arguments.get("result_filter"),
            summary=want_summary,
        )
    except TriageError as err:
        logger.warning("External search failed: %s", err.message)
        return {"webResults": [], "summary": None, "entities": []}
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("External search raised unexpectedly: %s", type(exc).__name__)
        return {"webResults": [], "summary": None, "entities": []}

    web = data.get("web")
    results = web.get("results") if isinstance(web, dict) else None
    web_results = results if isinstance(results, list) else []

    summarizer = data.get("summarizer")
    key = summarizer.get("key") if isinstance(summarizer, dict) else None
    if want_summary and isinstance(key, str) and key:
        try:
            summary_data = await runtime.search.summarize(key)
        except TriageError as err:
            logger.warning("Search summary failed: %s", err.message)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Search summary raised unexpectedly: %s", type(exc).__name__)
        else:
            entities = summary_data.get("entities")
            return {
                "webResults": web_results,
                "summary": summary_data.get("summary"),
                "entities": entities if isinstance(entities, list) else [],
            }

    return {"webResults": web_results, "summary": None, "entities": []}


async def _tool_get_discussion_by_id(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    discussion = await runtime.gateway.get_discussion(arguments["discussionId"])
    return {"discussion": discussion.to_dict()}


ToolFunc = Callable[[Runtime, dict[str, Any]], Awaitable[dict[str, Any]]]

_TOOL_FUNCS: dict[str, ToolFunc] = {
    "getGithubIssue": _tool_get_github_issue,
    "getRepositoryLabels": _tool_get_repository_labels,
    "searchIssuesByLabels": _tool_search_issues_by_labels,
    "setSuggestedLabels": _tool_set_suggested_labels,
    "setIssueStatus": _tool_set_issue_status,
    "categorizeIssueType": _tool_categorize_issue_type,
    "getIssueActivity": _tool_get_issue_activity,
    "searchExternalContent": _tool_search_external_content,
    "getDiscussionById": _tool_get_discussion_by_id,
}

def _target_from_args(runtime: Runtime, arguments: dict[str, Any]) -> str:
    number = arguments.get("issueNumber")
    if isinstance(number, int) and not isinstance(number, bool):
        return f"{runtime.gateway.repository}#{number}"
    discussion_id = arguments.get("discussionId")
    if isinstance(discussion_id, str) and discussion_id:
        return f"{runtime.gateway.repository}/discussions/{discussion_id}"
    return runtime.gateway.repository


async def dispatch_tool(runtime: Runtime, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call.

    Never raises; always returns an envelope that includes correlation_id.
    """
    correlation_id = new_correlation_id()
    start = runtime.audit.measure_start()
    target = _target_from_args(runtime, arguments if isinstance(arguments, dict) else {})

    def audit(outcome: str, reason: str | None) -> None:
        runtime.audit.write_event(
            build_event(
                correlation_id=correlation_id,
                operation=name,
                target=target,
                outcome=outcome,
                reason=reason,
                duration_ms=runtime.audit.measure_duration_ms(start),
            )
        )

    try:
        if name not in TOOL_METADATA:
            raise TriageError(
                code=VALIDATION_ERROR,
                message=f"Unknown tool: {name}",
                hint=f"Available tools: {', '.join(sorted(TOOL_METADATA))}",
            )
        if not isinstance(arguments, dict):
            raise TriageError(code=VALIDATION_ERROR, message="Tool arguments must be an object")

        validate_no_secrets({k: v for k, v in arguments.items() if k not in FREE_TEXT_ARGUMENTS})
        validated = validate_tool_arguments(name, arguments)

        result = await _TOOL_FUNCS[name](runtime, validated)

        audit(SUCCEEDED, None)
        out: dict[str, Any] = {"ok": True, "correlation_id": correlation_id}
        out.update(result)
        return out

    except TriageError as err:
        audit(DENIED if err.code == VALIDATION_ERROR else FAILED, err.message)
        logger.info("Tool %s returned %s: %s", name, err.code, redact_text(err.message))
        result = triage_error_to_result(err)
        result["correlation_id"] = correlation_id
        return result
    except Exception as exc:  # pylint: disable=broad-exception-caught
        audit(FAILED, "Internal error")
        logger.exception("Tool %s raised unexpectedly: %s", name, exc)
        result = internal_error("Internal error")
        result["correlation_id"] = correlation_id
        return result


class ToolRegistry:
    """The tool catalog bound to one runtime."""

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def names(self) -> list[str]:
        return list(TOOL_METADATA)

    def anthropic_tools(self) -> list[dict[str, Any]]:
        """Tool definitions in the Anthropic Messages API shape."""
        return [
            {"name": name, "description": meta["description"], "input_schema": meta["inputSchema"]}
            for name, meta in TOOL_METADATA.items()
        ]

    async def dispatch(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        return await dispatch_tool(self._runtime, name, arguments)
