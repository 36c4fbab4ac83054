"""Tool registry: maps a tool name to a validated async handler.

Adding a tool is a data change::

    registry = ToolRegistry()

    @registry.tool("web_search", "Search the web.", WebSearchInput)
    async def web_search(params: WebSearchInput, ctx: ToolContext) -> dict:
        ...

``execute`` validates the raw model input against the tool's pydantic
model before calling the handler.  Unknown tool names are answered with
an ``{"error": ...}`` result rather than an exception so the model sees
them as an ordinary tool failure.  Handler exceptions propagate; the
agent loop turns them into error results.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pydantic
from pydantic import BaseModel

from concierge.errors import ValidationError
from concierge.models import ToolDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Per-turn facts a handler may need.  Handlers never see the transcript."""

    customer_id: str | None = None


Handler = Callable[[Any, ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    input_model: type[BaseModel]
    handler: Handler


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def add(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: Handler,
    ) -> None:
        if name in self._tools:
            raise ValueError(f"Tool {name!r} is already registered")
        definition = ToolDefinition(
            name=name,
            description=description,
            input_schema=input_model.model_json_schema(),
        )
        self._tools[name] = RegisteredTool(definition, input_model, handler)

    def tool(self, name: str, description: str, input_model: type[BaseModel]):
        """Decorator form of :meth:`add`."""

        def decorator(handler: Handler) -> Handler:
            self.add(name, description, input_model, handler)
            return handler

        return decorator

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return [t.definition for t in self._tools.values()]

    async def execute(
        self,
        name: str,
        tool_input: dict[str, Any] | None,
        context: ToolContext | None = None,
    ) -> Any:
        registered = self._tools.get(name)
        if registered is None:
            logger.warning("Model requested unknown tool %r", name)
            return {"error": f"Unknown tool: {name}"}

        try:
            params = registered.input_model.model_validate(tool_input or {})
        except pydantic.ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ValidationError(f"Invalid input for {name}: {problems}") from exc

        return await registered.handler(params, context or ToolContext())
