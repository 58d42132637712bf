"""Model/tool conversation loop.

One user message drives a bounded sequence of model calls. Whenever the model
asks for tools, each call goes through the registry (which never raises) and
all results are fed back before the model continues. The loop stops on a
response without tool calls or when the step budget is spent.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import anthropic

from .errors import TriageError
from .prompts import build_system_prompt
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 10

STOP_FINAL = "final"
STOP_STEP_BUDGET = "step_budget_exhausted"
STOP_ERROR = "error"


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """One streamed event: text, tool_call, tool_result, done or error."""

    type: str
    text: str | None = None
    tool_use_id: str | None = None
    tool_name: str | None = None
    arguments: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    stop_reason: str | None = None
    message: str | None = None
    steps: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        for key in ("text", "tool_use_id", "tool_name", "arguments", "result", "stop_reason", "message", "steps"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    tool_use_id: str
    name: str
    arguments: dict[str, Any]
    result: dict[str, Any]


@dataclass(slots=True)
class ChatTurn:
    """Everything one user message produced."""

    text: str = ""
    transcript: list[dict[str, Any]] = field(default_factory=list)
    invocations: list[ToolInvocation] = field(default_factory=list)
    suggested_labels: dict[int, list[str]] = field(default_factory=dict)
    steps: int = 0
    stop_reason: str | None = None
    error: str | None = None


def split_system(messages: list[dict[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    """Pull system messages out of a chat history.

    The Messages API takes the system prompt as a separate parameter; several
    system entries are joined in order.
    """
    system_parts: list[str] = []
    conversation: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content")
        if role == "system":
            if isinstance(content, str) and content.strip():
                system_parts.append(content)
            continue
        if role in ("user", "assistant"):
            conversation.append({"role": role, "content": content})
    return ("\n\n".join(system_parts) if system_parts else None), conversation


def _block_to_dict(block: Any) -> dict[str, Any]:
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": getattr(block, "text", "")}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(getattr(block, "input", None) or {}),
        }
    return {"type": block_type or "unknown"}


class ChatOrchestrator:
    def __init__(
        self,
        *,
        llm: Any,
        registry: ToolRegistry,
        model: str,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_tokens: int = 4096,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        self._llm = llm
        self._registry = registry
        self._model = model
        self._max_steps = max_steps
        self._max_tokens = max_tokens

    async def _default_system_prompt(self) -> str:
        try:
            labels = await self._registry.runtime.gateway.list_labels()
        except TriageError as err:
            logger.warning("Could not load labels for the system prompt: %s", err.message)
            labels = []
        return build_system_prompt(label.name for label in labels)

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[ChatEvent]:
        system, conversation = split_system(messages)
        if system is None:
            system = await self._default_system_prompt()
        tools = self._registry.anthropic_tools()

        for step in range(1, self._max_steps + 1):
            try:
                response = await self._llm.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=system,
                    messages=conversation,
                    tools=tools,
                )
            except anthropic.APIError as exc:
                logger.error("Model call failed at step %s: %s", step, type(exc).__name__)
                yield ChatEvent(type="error", message="The language model request failed", steps=step)
                return

            blocks = [_block_to_dict(b) for b in response.content]
            conversation.append({"role": "assistant", "content": blocks})

            for block in blocks:
                if block["type"] == "text" and block["text"]:
                    yield ChatEvent(type="text", text=block["text"])

            tool_uses = [b for b in blocks if b["type"] == "tool_use"]
            if not tool_uses:
                yield ChatEvent(type="done", stop_reason=STOP_FINAL, steps=step)
                return

            results: list[dict[str, Any]] = []
            for use in tool_uses:
                yield ChatEvent(
                    type="tool_call",
                    tool_use_id=use["id"],
                    tool_name=use["name"],
                    arguments=use["input"],
                )
                result = await self._registry.dispatch(use["name"], use["input"])
                yield ChatEvent(
                    type="tool_result",
                    tool_use_id=use["id"],
                    tool_name=use["name"],
                    arguments=use["input"],
                    result=result,
                )
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": use["id"],
                        "content": json.dumps(result),
                        "is_error": not result.get("ok", False),
                    }
                )
            conversation.append({"role": "user", "content": results})

        logger.info("Step budget of %s exhausted", self._max_steps)
        yield ChatEvent(type="done", stop_reason=STOP_STEP_BUDGET, steps=self._max_steps)

    async def run(self, messages: list[dict[str, Any]]) -> ChatTurn:
        """Drain ``stream`` into a single ``ChatTurn``."""
        turn = ChatTurn()
        texts: list[str] = []
        async for event in self.stream(messages):
            turn.transcript.append(event.to_dict())
            if event.type == "text" and event.text:
                texts.append(event.text)
            elif event.type == "tool_result" and event.result is not None:
                turn.invocations.append(
                    ToolInvocation(
                        tool_use_id=event.tool_use_id or "",
                        name=event.tool_name or "",
                        arguments=event.arguments or {},
                        result=event.result,
                    )
                )
                if event.tool_name == "setSuggestedLabels" and event.result.get("ok"):
                    number = event.result.get("issueNumber")
                    if isinstance(number, int):
                        turn.suggested_labels[number] = list(event.result.get("suggestedLabels") or [])
            elif event.type == "done":
                turn.stop_reason = event.stop_reason
                turn.steps = event.steps or 0
            elif event.type == "error":
                turn.stop_reason = STOP_ERROR
                turn.error = event.message
                turn.steps = event.steps or 0
        turn.text = "\n".join(texts)
        return turn
