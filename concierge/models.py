"""Core data model: transcript messages, content blocks, tool definitions.

A transcript is an ordered list of :class:`Message`.  Assistant messages
may carry :class:`ToolUseBlock` entries; the very next message must be a
``tool`` message carrying exactly one :class:`ToolResultBlock` per
tool-use id.  :func:`pair_tool_results` enforces that invariant.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from concierge.errors import ProtocolError

Role = Literal["user", "assistant", "tool"]
StopReason = Literal["tool_use", "end_turn", "max_tokens", "stop_sequence"]


# ── Content blocks ──────────────────────────────────────────────────


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


Block = Annotated[TextBlock | ToolUseBlock | ToolResultBlock, Field(discriminator="type")]


class Message(BaseModel):
    """One transcript entry.  ``content`` is a plain string for persisted history."""

    role: Role
    content: str | list[Block]

    @property
    def blocks(self) -> list[Block]:
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)] if self.content else []
        return list(self.content)

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock) and b.text)

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]


# ── Tools ───────────────────────────────────────────────────────────


class ToolDefinition(BaseModel):
    """Static description of a tool as advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]

    def to_anthropic(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolInvocationRecord(BaseModel):
    """Audit entry for one tool call made during a turn."""

    name: str
    succeeded: bool
    target: str | None = None


# ── LLM exchange ────────────────────────────────────────────────────


class LLMResponse(BaseModel):
    stop_reason: StopReason = "end_turn"
    content: list[Block] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock) and b.text)

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == "tool_use" and bool(self.tool_uses)


class TurnResult(BaseModel):
    """What one agent-loop execution hands back to its caller."""

    reply_text: str
    invocations: list[ToolInvocationRecord] = Field(default_factory=list)
    transcript: list[Message] = Field(default_factory=list)
    corrected: bool = False


# ── Browser page state ──────────────────────────────────────────────


class FormField(BaseModel):
    type: str
    label: str = ""
    value: str = ""
    selector: str | None = None


class Clickable(BaseModel):
    tag: str
    text: str
    href: str | None = None


class PageState(BaseModel):
    """Read-only snapshot of the live page, recomputed after every action."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    visible_text: str = Field(default="", alias="visibleText")
    form_fields: list[FormField] = Field(default_factory=list, alias="formFields")
    clickables: list[Clickable] = Field(default_factory=list)


# ── Context boundary ────────────────────────────────────────────────


class CustomerProfile(BaseModel):
    display_name: str
    preference_document: str = ""


# ── Transcript invariant ────────────────────────────────────────────


def pair_tool_results(
    tool_uses: list[ToolUseBlock],
    results: list[ToolResultBlock],
) -> list[ToolResultBlock]:
    """Return *results* ordered like *tool_uses*, or raise ``ProtocolError``.

    Every tool-use id must be answered by exactly one result; extra,
    duplicated or missing ids are a protocol violation.
    """
    use_ids = [u.id for u in tool_uses]
    if len(set(use_ids)) != len(use_ids):
        raise ProtocolError(f"Duplicate tool_use ids in one model turn: {use_ids}")

    by_id: dict[str, ToolResultBlock] = {}
    for result in results:
        if result.tool_use_id in by_id:
            raise ProtocolError(f"Duplicate tool_result for id {result.tool_use_id}")
        by_id[result.tool_use_id] = result

    missing = [i for i in use_ids if i not in by_id]
    extra = [i for i in by_id if i not in use_ids]
    if missing or extra:
        raise ProtocolError(
            f"Tool results do not match tool uses (missing={missing}, unexpected={extra})"
        )
    return [by_id[i] for i in use_ids]
