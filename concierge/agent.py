"""LangGraph agent loop for the personal concierge.

Architecture:
  One :class:`AgentLoopController` run turns a single customer utterance
  into zero or more tool calls and a final reply.  The loop is a
  LangGraph ``StateGraph`` with three nodes:

    1. **model** : submits the transcript to the LLM
    2. **tools** : executes every tool use of the last response, in order
    3. **guard** : fake-action check on the final text

  Routing:
    model → (tool_use?)     → tools → model (loop)
          → (final answer?) → guard → (claims an action, no tool ran?) → model (once)
                                    → END

  Tool dispatch:
    Every tool goes through the :class:`~concierge.tools.ToolRegistry`
    except ``browser_action``.  That one needs session affinity: all its
    calls in one run must reach the same
    :class:`~concierge.browser.BrowserSession`, so the controller routes
    it to the run's :class:`~concierge.browser.BrowserScope` itself.  The
    scope is opened around the graph invocation and closed on every exit
    path.

  Bounds:
    ``max_iterations`` LLM calls per run (:class:`LoopBudgetExceeded`) and
    an overall wall-clock deadline (:class:`TurnTimeoutError`).

  Errors:
    Anything a tool raises is fed back to the model as an ``is_error``
    tool result.  LLM failures, budget and deadline errors and pairing
    violations abort the run and propagate to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import operator
from collections.abc import Callable, Sequence
from typing import Annotated, Any

from langchain_core.runnables import RunnableConfig
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from concierge.audit import AuditLog, describe_target
from concierge.browser import BROWSER_ACTION_TOOL, BROWSER_TOOL_NAME, BrowserScope, BrowserSession
from concierge.browser.tool import parse_browser_request, run_browser_action
from concierge.config import MAX_AGENT_ITERATIONS, TURN_TIMEOUT_SECONDS
from concierge.errors import LoopBudgetExceeded, TurnTimeoutError
from concierge.guard import CORRECTION_PROMPT, FakeActionGuard
from concierge.llm import LLMClient
from concierge.models import (
    LLMResponse,
    Message,
    ToolDefinition,
    ToolInvocationRecord,
    ToolResultBlock,
    ToolUseBlock,
    TurnResult,
    pair_tool_results,
)
from concierge.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I processed your request but had no text response. Please try again."


# ── State schema ─────────────────────────────────────────────────────


class LoopState(TypedDict):
    """The state that flows through the graph.

    ``messages`` and ``invocations`` use an append reducer so nodes only
    return what they add.  ``retry`` is set by the guard node when it
    injected a correction and is read by the conditional edge after it.
    """

    messages: Annotated[list[Message], operator.add]
    invocations: Annotated[list[ToolInvocationRecord], operator.add]
    last_response: LLMResponse | None
    iterations: int
    corrected: bool
    retry: bool
    reply_text: str


def _stringify(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False, default=str)


def _is_error_output(output: Any) -> bool:
    return isinstance(output, dict) and "error" in output


# ── Controller ───────────────────────────────────────────────────────


class AgentLoopController:
    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        *,
        guard: FakeActionGuard | None = None,
        audit: AuditLog | None = None,
        browser_factory: Callable[[], BrowserSession] = BrowserSession,
        max_iterations: int = MAX_AGENT_ITERATIONS,
        turn_timeout_seconds: float | None = TURN_TIMEOUT_SECONDS,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._guard = guard or FakeActionGuard()
        self._audit = audit or AuditLog()
        self._browser_factory = browser_factory
        self.max_iterations = max_iterations
        self.turn_timeout_seconds = turn_timeout_seconds
        self._graph = self._build_graph()

    def tool_definitions(self) -> list[ToolDefinition]:
        """Everything the model may call: registry tools plus ``browser_action``."""
        return [*self._registry.definitions(), BROWSER_ACTION_TOOL]

    # ── Graph assembly ───────────────────────────────────────────────

    def _build_graph(self):
        graph = StateGraph(LoopState)
        graph.add_node("model", self._model_node)
        graph.add_node("tools", self._tools_node)
        graph.add_node("guard", self._guard_node)

        graph.set_entry_point("model")
        graph.add_conditional_edges(
            "model", self._route_after_model, {"tools": "tools", "guard": "guard"},
        )
        graph.add_edge("tools", "model")
        graph.add_conditional_edges(
            "guard", self._route_after_guard, {"model": "model", END: END},
        )
        return graph.compile()

    @staticmethod
    def _route_after_model(state: LoopState) -> str:
        return "tools" if state["last_response"].wants_tools else "guard"

    @staticmethod
    def _route_after_guard(state: LoopState) -> str:
        return "model" if state["retry"] else END

    # ── Nodes ────────────────────────────────────────────────────────

    async def _model_node(self, state: LoopState, config: RunnableConfig) -> dict:
        if state["iterations"] >= self.max_iterations:
            raise LoopBudgetExceeded(self.max_iterations)
        run = config["configurable"]
        response = await self._llm.complete(run["system_prompt"], state["messages"], run["tools"])
        logger.debug(
            "Iteration %d: stop=%s, %d tool use(s)",
            state["iterations"] + 1, response.stop_reason, len(response.tool_uses),
        )
        return {"last_response": response, "iterations": state["iterations"] + 1}

    async def _tools_node(self, state: LoopState, config: RunnableConfig) -> dict:
        run = config["configurable"]
        response = state["last_response"]
        tool_uses = response.tool_uses

        results: list[ToolResultBlock] = []
        records: list[ToolInvocationRecord] = []
        # Sequential on purpose: browser actions depend on the previous one.
        for use in tool_uses:
            result, record = await self._dispatch(use, run)
            results.append(result)
            records.append(record)

        ordered = pair_tool_results(tool_uses, results)
        return {
            "messages": [
                Message(role="assistant", content=list(response.content)),
                Message(role="tool", content=ordered),
            ],
            "invocations": records,
        }

    async def _guard_node(self, state: LoopState) -> dict:
        text = state["last_response"].text
        needs_correction = not state["corrected"] and self._guard.check(text, state["invocations"])
        if needs_correction and state["iterations"] >= self.max_iterations:
            logger.warning("Unsupported action claim on the last iteration; returning it uncorrected")
        elif needs_correction:
            return {
                "messages": [
                    Message(role="assistant", content=text),
                    Message(role="user", content=CORRECTION_PROMPT),
                ],
                "corrected": True,
                "retry": True,
            }
        return {
            "messages": [Message(role="assistant", content=text)],
            "reply_text": text,
            "retry": False,
        }

    # ── Tool dispatch ────────────────────────────────────────────────

    async def _dispatch(
        self, use: ToolUseBlock, run: dict[str, Any],
    ) -> tuple[ToolResultBlock, ToolInvocationRecord]:
        context: ToolContext = run["context"]
        try:
            if use.name not in run["tool_names"]:
                logger.warning("Model requested unadvertised tool %r", use.name)
                output: Any = {"error": f"Unknown tool: {use.name}"}
            elif use.name == BROWSER_TOOL_NAME:
                request = parse_browser_request(use.input)
                session = await run["browser"].get()
                page = await run_browser_action(session, request)
                output = page.model_dump(by_alias=True)
            else:
                output = await self._registry.execute(use.name, use.input, context)
            succeeded = not _is_error_output(output)
            content = _stringify(output)
        except Exception as exc:
            logger.warning("Tool %s failed (%s): %s", use.name, type(exc).__name__, exc)
            succeeded = False
            content = json.dumps({"error": str(exc)}, ensure_ascii=False)

        target = describe_target(use.name, use.input)
        self._audit.record(context.customer_id, use.name, target, succeeded)
        return (
            ToolResultBlock(tool_use_id=use.id, content=content, is_error=not succeeded),
            ToolInvocationRecord(name=use.name, succeeded=succeeded, target=target),
        )

    # ── Public API ───────────────────────────────────────────────────

    async def run(
        self,
        system_prompt: str,
        prior_history: Sequence[Message],
        user_message: str,
        tools: Sequence[ToolDefinition] | None = None,
        *,
        customer_id: str | None = None,
    ) -> TurnResult:
        """Run one agent-loop execution and return the reply and side-effect log.

        Raises:
            ExternalServiceError: the LLM call failed.
            LoopBudgetExceeded: more than ``max_iterations`` LLM calls.
            TurnTimeoutError: the overall deadline passed.
            ProtocolError: tool results could not be paired with tool uses.
        """
        tools = self.tool_definitions() if tools is None else list(tools)
        initial: LoopState = {
            "messages": [*prior_history, Message(role="user", content=user_message)],
            "invocations": [],
            "last_response": None,
            "iterations": 0,
            "corrected": False,
            "retry": False,
            "reply_text": "",
        }

        async with BrowserScope(self._browser_factory) as browser:
            config: RunnableConfig = {
                "configurable": {
                    "system_prompt": system_prompt,
                    "tools": tools,
                    "tool_names": frozenset(t.name for t in tools),
                    "browser": browser,
                    "context": ToolContext(customer_id=customer_id),
                },
                # Each iteration is two graph steps; the node check above fires first.
                "recursion_limit": 2 * self.max_iterations + 10,
            }
            try:
                final = await asyncio.wait_for(
                    self._graph.ainvoke(initial, config=config),
                    timeout=self.turn_timeout_seconds,
                )
            except GraphRecursionError as exc:
                raise LoopBudgetExceeded(self.max_iterations) from exc
            except TimeoutError as exc:
                logger.error("Turn for customer %s exceeded %ss", customer_id, self.turn_timeout_seconds)
                raise TurnTimeoutError(self.turn_timeout_seconds) from exc

        reply = final["reply_text"].strip() or FALLBACK_REPLY
        logger.debug(
            "Turn finished after %d iteration(s), %d tool call(s)%s",
            final["iterations"], len(final["invocations"]),
            " (corrected)" if final["corrected"] else "",
        )
        return TurnResult(
            reply_text=reply,
            invocations=final["invocations"],
            transcript=final["messages"],
            corrected=final["corrected"],
        )
