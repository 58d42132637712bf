"""FastAPI application serving the dashboard endpoints and the chat stream."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import anthropic
import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from .config import AppConfig, load_config_from_env
from .errors import TriageError
from .gateway import days_ago
from .orchestrator import ChatOrchestrator
from .prompts import SUGGEST_LABELS_SYSTEM_PROMPT
from .safety import redact_text
from .tools import Runtime, ToolRegistry, build_runtime

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WebContext:
    """Dependencies shared by all request handlers."""

    runtime: Runtime
    llm: Any
    orchestrator: ChatOrchestrator


def build_context(config: AppConfig) -> WebContext:
    runtime = build_runtime(config)
    llm = anthropic.AsyncAnthropic(api_key=config.anthropic_api_key)
    orchestrator = ChatOrchestrator(
        llm=llm,
        registry=ToolRegistry(runtime),
        model=config.model,
        max_steps=config.max_steps,
        max_tokens=config.max_tokens,
    )
    return WebContext(runtime=runtime, llm=llm, orchestrator=orchestrator)


class ApplyLabelsRequest(BaseModel):
    issueNumber: int = Field(ge=1)
    labels: list[str]


class SuggestLabelsRequest(BaseModel):
    prompt: str = Field(min_length=1)


class ChatMessage(BaseModel):
    role: str
    content: Any


class ToolDemoRequest(BaseModel):
    messages: list[ChatMessage]


router = APIRouter(prefix="/api")


def get_context(request: Request) -> WebContext:
    return request.app.state.context


def _failure(message: str, err: Exception) -> JSONResponse:
    detail = err.message if isinstance(err, TriageError) else str(err)
    logger.error("%s: %s", message, redact_text(detail))
    return JSONResponse({"error": message}, status_code=500)


@router.get("/github/issues")
async def list_issues(
    request: Request,
    state: str = Query("open", pattern="^(open|closed|all)$"),
    labels: str | None = None,
    since_days: int = Query(7, ge=1),
) -> Any:
    gateway = get_context(request).runtime.gateway
    label_names = [name.strip() for name in labels.split(",") if name.strip()] if labels else None
    try:
        issues = await gateway.list_issues(state=state, labels=label_names, since=days_ago(since_days))
    except TriageError as err:
        return _failure("Failed to fetch GitHub issues", err)
    return {"total": len(issues), "issues": [issue.to_dict() for issue in issues]}


@router.get("/github/issues-without-status")
async def list_issues_without_status(request: Request) -> Any:
    gateway = get_context(request).runtime.gateway
    try:
        issues = await gateway.list_issues_without_status()
    except TriageError as err:
        return _failure("Failed to fetch GitHub issues without status", err)
    return {"total": len(issues), "issues": [issue.to_dict() for issue in issues]}


@router.get("/github/labels")
async def list_labels(request: Request) -> Any:
    gateway = get_context(request).runtime.gateway
    try:
        labels = await gateway.list_labels()
    except TriageError as err:
        return _failure("Failed to fetch GitHub labels", err)
    return [label.to_dict(with_description=True) for label in labels]


@router.get("/github/discussions")
async def list_discussions(request: Request, limit: int = Query(20, ge=1, le=100)) -> Any:
    gateway = get_context(request).runtime.gateway
    try:
        discussions, total = await gateway.list_discussions(limit)
    except TriageError as err:
        return _failure("Failed to fetch GitHub discussions", err)
    return {"total": total, "discussions": [d.to_dict() for d in discussions]}


@router.post("/github/apply-labels")
async def apply_labels(request: Request, body: ApplyLabelsRequest) -> Any:
    """Replace the issue's labels with the reviewed suggestion."""
    gateway = get_context(request).runtime.gateway
    try:
        labels = await gateway.set_labels(body.issueNumber, body.labels)
    except TriageError as err:
        return _failure("Failed to apply labels", err)
    logger.info("Applied %s label(s) to issue #%s", len(labels), body.issueNumber)
    return {"success": True, "labels": [label.name for label in labels]}


@router.post("/github/suggest-labels")
async def suggest_labels(request: Request, body: SuggestLabelsRequest) -> Any:
    """One-shot label suggestion without tools."""
    context = get_context(request)
    try:
        response = await context.llm.messages.create(
            model=context.runtime.config.model,
            max_tokens=context.runtime.config.max_tokens,
            system=SUGGEST_LABELS_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": body.prompt}],
        )
    except anthropic.APIError as err:
        return _failure("Failed to process AI request", err)
    text = "".join(getattr(block, "text", "") for block in response.content if getattr(block, "type", None) == "text")
    return {"role": "assistant", "content": text}


def _sse(event_type: str, payload: dict[str, Any]) -> str:
    return f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"


@router.post("/tool-demo")
async def tool_demo(request: Request, body: ToolDemoRequest) -> StreamingResponse:
    """Run the chat loop and stream its events via SSE."""
    orchestrator = get_context(request).orchestrator
    messages = [m.model_dump() for m in body.messages]

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            async for event in orchestrator.stream(messages):
                yield _sse(event.type, event.to_dict())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.exception("Chat stream failed: %s", exc)
            yield _sse("error", {"type": "error", "message": "Failed to process tool demo request"})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the production context from the environment at start-up."""
    app.state.context = build_context(load_config_from_env())
    yield


def create_app(context: WebContext | None = None) -> FastAPI:
    """Create the app; pass ``context`` in tests to skip the env-driven lifespan."""
    if context is not None:
        app = FastAPI(title="Issue Triage", version="0.1.0")
        app.state.context = context
    else:
        app = FastAPI(title="Issue Triage", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(Exception, unhandled_error)
    app.include_router(router)
    return app


def run(config: AppConfig) -> None:
    uvicorn.run(create_app(build_context(config)), host=config.host, port=config.port)
