"""The ``browser_action`` tool: request schema, definition and dispatch.

Unlike the tools in :mod:`concierge.tools`, this one is not routed through
the :class:`~concierge.tools.registry.ToolRegistry`.  It needs session
affinity: every call within one agent-loop execution must reach the same
:class:`~concierge.browser.session.BrowserSession`, which the controller
owns and passes in explicitly.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, Field, model_validator

from concierge.browser.session import BrowserSession
from concierge.errors import ValidationError
from concierge.models import PageState, ToolDefinition

BROWSER_TOOL_NAME = "browser_action"

BrowserActionName = Literal["navigate", "click", "type", "select", "extract", "wait", "back", "scroll"]


class BrowserActionRequest(BaseModel):
    action: BrowserActionName = Field(description="The browser action to perform")
    url: str | None = Field(default=None, description="URL to open (navigate)")
    selector: str | None = Field(default=None, description="CSS selector of the target element")
    text: str | None = Field(
        default=None,
        description="Visible text of the element to click, or the label of the field to type into",
    )
    value: str | None = Field(default=None, description="Text to type, or option value to select")
    direction: Literal["up", "down"] = Field(default="down", description="Scroll direction")
    milliseconds: int | None = Field(
        default=None, ge=0, le=5000, description="How long to wait (max 5000)",
    )

    @model_validator(mode="after")
    def _check_required_fields(self) -> BrowserActionRequest:
        action = self.action
        if action == "navigate" and not self.url:
            raise ValueError("navigate requires url")
        if action == "click" and not (self.selector or self.text):
            raise ValueError("click requires selector or text")
        if action == "type" and (self.value is None or not (self.selector or self.text)):
            raise ValueError("type requires value and either selector or text")
        if action == "select" and not (self.selector and self.value):
            raise ValueError("select requires selector and value")
        return self


def parse_browser_request(tool_input: dict[str, Any]) -> BrowserActionRequest:
    try:
        return BrowserActionRequest.model_validate(tool_input or {})
    except pydantic.ValidationError as exc:
        problems = "; ".join(err["msg"] for err in exc.errors())
        raise ValidationError(f"Invalid browser_action input: {problems}") from exc


_Action = Callable[[BrowserSession, BrowserActionRequest], Awaitable[PageState]]

_ACTIONS: dict[str, _Action] = {
    "navigate": lambda s, r: s.navigate(r.url),
    "click": lambda s, r: s.click(selector=r.selector, text=r.text),
    "type": lambda s, r: s.type(r.value, selector=r.selector, label=r.text),
    "select": lambda s, r: s.select(r.selector, r.value),
    "extract": lambda s, r: s.extract(),
    "wait": lambda s, r: s.wait(r.milliseconds),
    "back": lambda s, r: s.back(),
    "scroll": lambda s, r: s.scroll(r.direction),
}


async def run_browser_action(session: BrowserSession, request: BrowserActionRequest) -> PageState:
    return await _ACTIONS[request.action](session, request)


BROWSER_ACTION_TOOL = ToolDefinition(
    name=BROWSER_TOOL_NAME,
    description=(
        "Control a real headless browser step by step to complete tasks on websites "
        "(bookings, forms, looking things up that need clicking through pages). "
        "Start with `navigate`, then use the returned page state (visible text, form "
        "fields with selectors, clickable elements) to decide the next action. "
        "Only public http/https sites are reachable. A session allows a limited number "
        "of actions; if the limit is reached, stop and report progress to the customer."
    ),
    input_schema=BrowserActionRequest.model_json_schema(),
)
