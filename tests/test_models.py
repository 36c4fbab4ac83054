"""Tests for the transcript model and the tool-result pairing invariant."""

from __future__ import annotations

import pytest

from concierge.errors import ProtocolError
from concierge.models import (
    LLMResponse,
    Message,
    PageState,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    pair_tool_results,
)


def _use(id_: str) -> ToolUseBlock:
    return ToolUseBlock(id=id_, name="web_search", input={"query": id_})


def _result(id_: str) -> ToolResultBlock:
    return ToolResultBlock(tool_use_id=id_, content="{}")


class TestPairToolResults:
    def test_results_are_reordered_to_match_uses(self):
        paired = pair_tool_results([_use("a"), _use("b")], [_result("b"), _result("a")])
        assert [r.tool_use_id for r in paired] == ["a", "b"]

    def test_missing_result(self):
        with pytest.raises(ProtocolError, match="missing=\\['b'\\]"):
            pair_tool_results([_use("a"), _use("b")], [_result("a")])

    def test_unexpected_result(self):
        with pytest.raises(ProtocolError, match="unexpected=\\['z'\\]"):
            pair_tool_results([_use("a")], [_result("a"), _result("z")])

    def test_duplicate_result(self):
        with pytest.raises(ProtocolError):
            pair_tool_results([_use("a")], [_result("a"), _result("a")])

    def test_duplicate_tool_use_ids(self):
        with pytest.raises(ProtocolError):
            pair_tool_results([_use("a"), _use("a")], [_result("a")])


class TestMessage:
    def test_plain_string_content(self):
        message = Message(role="assistant", content="plain")
        assert message.text == "plain"
        assert message.tool_uses == []

    def test_empty_string_has_no_blocks(self):
        assert Message(role="user", content="").blocks == []

    def test_block_content(self):
        message = Message(
            role="assistant",
            content=[TextBlock(text="Looking it up."), _use("a")],
        )
        assert message.text == "Looking it up."
        assert [u.id for u in message.tool_uses] == ["a"]

    def test_blocks_parse_from_dicts(self):
        message = Message.model_validate({
            "role": "tool",
            "content": [{"type": "tool_result", "tool_use_id": "a", "content": "ok", "is_error": True}],
        })
        assert message.tool_results[0].is_error is True


class TestLLMResponse:
    def test_wants_tools_needs_stop_reason_and_blocks(self):
        assert LLMResponse(stop_reason="tool_use", content=[_use("a")]).wants_tools
        assert not LLMResponse(stop_reason="tool_use", content=[]).wants_tools
        assert not LLMResponse(stop_reason="end_turn", content=[_use("a")]).wants_tools


class TestPageState:
    def test_serializes_with_camel_case_aliases(self):
        state = PageState(title="t", url="https://a.com", visible_text="hi")
        dumped = state.model_dump(by_alias=True)
        assert dumped["visibleText"] == "hi"
        assert dumped["formFields"] == []
