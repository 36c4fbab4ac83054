"""LLM backend adapter.

The agent loop talks to the model through the small :class:`LLMClient`
protocol so it can be driven by a scripted fake in tests.
:class:`AnthropicLLM` is the production implementation on top of
``langchain_anthropic.ChatAnthropic``; it converts between the core
``Message``/``Block`` model and LangChain messages:

* ``user`` messages → ``HumanMessage``
* ``assistant`` messages → ``AIMessage`` (text content + ``tool_calls``)
* ``tool`` messages → one ``ToolMessage`` per result, ``status="error"``
  for failed tools (ChatAnthropic folds consecutive ``ToolMessage``\\ s
  into a single user turn of ``tool_result`` blocks)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, get_args

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from concierge.config import ANTHROPIC_API_KEY, MAX_TOKENS, MODEL_NAME
from concierge.errors import ExternalServiceError
from concierge.models import (
    Block,
    LLMResponse,
    Message,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolUseBlock,
)
from concierge.services.metrics import metrics

logger = logging.getLogger(__name__)

_KNOWN_STOP_REASONS = frozenset(get_args(StopReason))


class LLMClient(Protocol):
    async def complete(
        self,
        system: str,
        messages: list[Message],
        tools: list[ToolDefinition],
    ) -> LLMResponse: ...


# ── Message conversion ───────────────────────────────────────────────


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            converted.append(HumanMessage(content=message.text))
        elif message.role == "assistant":
            text_parts = [
                {"type": "text", "text": b.text}
                for b in message.blocks
                if isinstance(b, TextBlock) and b.text
            ]
            tool_calls = [
                {"name": b.name, "args": b.input, "id": b.id, "type": "tool_call"}
                for b in message.tool_uses
            ]
            converted.append(AIMessage(content=text_parts, tool_calls=tool_calls))
        else:
            for result in message.tool_results:
                converted.append(
                    ToolMessage(
                        content=result.content,
                        tool_call_id=result.tool_use_id,
                        status="error" if result.is_error else "success",
                    )
                )
    return converted


def from_ai_message(ai: AIMessage) -> LLMResponse:
    """Rebuild the ordered block list of a model response."""
    calls = {tc["id"]: tc for tc in ai.tool_calls}
    blocks: list[Block] = []
    emitted: set[str] = set()

    raw = ai.content if isinstance(ai.content, list) else [ai.content]
    for part in raw:
        if isinstance(part, str):
            if part:
                blocks.append(TextBlock(text=part))
        elif part.get("type") == "text" and part.get("text"):
            blocks.append(TextBlock(text=part["text"]))
        elif part.get("type") == "tool_use" and part.get("id") in calls:
            tc = calls[part["id"]]
            blocks.append(ToolUseBlock(id=tc["id"], name=tc["name"], input=tc["args"] or {}))
            emitted.add(tc["id"])

    for tc in ai.tool_calls:
        if tc["id"] not in emitted:
            blocks.append(ToolUseBlock(id=tc["id"], name=tc["name"], input=tc["args"] or {}))

    stop_reason = ai.response_metadata.get("stop_reason")
    if stop_reason is None:
        stop_reason = "tool_use" if ai.tool_calls else "end_turn"
    elif stop_reason not in _KNOWN_STOP_REASONS:
        # refusal, pause_turn and anything newer: the text is the final answer.
        logger.info("Model stopped with %r; treating the reply as final", stop_reason)
        stop_reason = "end_turn"
    return LLMResponse(stop_reason=stop_reason, content=blocks)


# ── Anthropic implementation ─────────────────────────────────────────


class AnthropicLLM:
    """Claude via ``ChatAnthropic``; one call per loop iteration, no retries."""

    def __init__(
        self,
        model: str = MODEL_NAME,
        *,
        api_key: str | None = None,
        max_tokens: int = MAX_TOKENS,
        chat_model: Any | None = None,
    ) -> None:
        self.model = model
        self._chat = chat_model or ChatAnthropic(
            model=model,
            api_key=api_key or ANTHROPIC_API_KEY,
            max_tokens=max_tokens,
            temperature=0.2,
            max_retries=0,
        )

    async def complete(
        self,
        system: str,
        messages: list[Message],
        tools: list[ToolDefinition],
    ) -> LLMResponse:
        runnable = self._chat.bind_tools([t.to_anthropic() for t in tools]) if tools else self._chat
        payload = [SystemMessage(content=system), *to_langchain_messages(messages)]

        t0 = time.perf_counter()
        try:
            ai = await runnable.ainvoke(payload)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke", error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise ExternalServiceError(f"LLM call failed: {exc}", service="anthropic") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        try:
            response = from_ai_message(ai)
        except Exception as exc:
            metrics.record_failure(
                "anthropic", "llm_invoke", error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise ExternalServiceError(
                f"Unreadable LLM response: {exc}", service="anthropic",
            ) from exc
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug(
            "LLM responded in %.0fms (stop=%s, tool_uses=%d)",
            elapsed, response.stop_reason, len(response.tool_uses),
        )
        return response

