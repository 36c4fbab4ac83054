"""Tests for the assistant façade and reply splitting."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from concierge.assistant import Assistant, split_message
from concierge.context import InMemoryContextStore
from concierge.errors import CustomerNotFoundError, ExternalServiceError
from concierge.models import ToolInvocationRecord, TurnResult


def _controller(reply: str = "Done.", invocations=None) -> MagicMock:
    controller = MagicMock()
    controller.run = AsyncMock(
        return_value=TurnResult(reply_text=reply, invocations=invocations or []),
    )
    return controller


@pytest.fixture
def store() -> InMemoryContextStore:
    store = InMemoryContextStore()
    store.add_customer("alice", "Alice", {"dietary_restrictions": "vegetarian"})
    return store


class TestHandleMessage:
    async def test_builds_prompt_and_history_for_the_customer(self, store):
        await store.save_turn("alice", "hi", "hello Alice", [])
        controller = _controller()
        assistant = Assistant(store, controller)

        await assistant.handle_message("alice", "book dinner")

        system_prompt, history, text = controller.run.call_args.args
        assert "Alice" in system_prompt
        assert "DIETARY RESTRICTIONS: vegetarian" in system_prompt
        assert [(m.role, m.text) for m in history] == [("user", "hi"), ("assistant", "hello Alice")]
        assert text == "book dinner"
        assert controller.run.call_args.kwargs["customer_id"] == "alice"

    async def test_turn_is_saved(self, store):
        record = ToolInvocationRecord(name="web_search", succeeded=True)
        assistant = Assistant(store, _controller("Found 3 places.", [record]))

        result = await assistant.handle_message("alice", "find sushi")

        assert result.reply_text == "Found 3 places."
        history = await store.load_history("alice")
        assert [m.text for m in history] == ["Found 3 places.", "find sushi"]
        assert store.activity("alice") == [record]

    async def test_unknown_customer(self, store):
        assistant = Assistant(store, _controller())
        with pytest.raises(CustomerNotFoundError):
            await assistant.handle_message("mallory", "hi")

    async def test_failed_turn_is_not_saved(self, store):
        controller = MagicMock()
        controller.run = AsyncMock(side_effect=ExternalServiceError("down", service="anthropic"))
        assistant = Assistant(store, controller)

        with pytest.raises(ExternalServiceError):
            await assistant.handle_message("alice", "hi")

        assert await store.load_history("alice") == []

    async def test_turns_for_one_customer_are_serialized(self, store):
        store.add_customer("bob", "Bob")
        active: dict[str, int] = {"alice": 0, "bob": 0}
        peak: dict[str, int] = {"alice": 0, "bob": 0}
        both_running = asyncio.Event()

        async def run(system_prompt, history, text, *, customer_id):
            active[customer_id] += 1
            peak[customer_id] = max(peak[customer_id], active[customer_id])
            if sum(active.values()) > 1:
                both_running.set()
            await asyncio.sleep(0.01)
            active[customer_id] -= 1
            return TurnResult(reply_text=f"ok {text}")

        controller = MagicMock()
        controller.run = run
        assistant = Assistant(store, controller)

        await asyncio.gather(
            assistant.handle_message("alice", "1"),
            assistant.handle_message("alice", "2"),
            assistant.handle_message("bob", "3"),
        )

        assert peak["alice"] == 1
        assert both_running.is_set()
        history = await store.load_history("alice")
        assert [m.role for m in history] == ["assistant", "user", "assistant", "user"]


class TestSplitMessage:
    def test_short_text_is_one_chunk(self):
        assert split_message("hello") == ["hello"]

    def test_every_chunk_fits(self):
        text = " ".join(f"word{i}" for i in range(1000))
        chunks = split_message(text, 100)
        assert all(len(c) <= 100 for c in chunks)
        assert " ".join(chunks) == text

    def test_prefers_paragraph_breaks(self):
        first = "a" * 60
        second = "b" * 60
        assert split_message(f"{first}\n\n{second}", 100) == [first, second]

    def test_sentence_break_keeps_the_period(self):
        text = "x" * 50 + ". " + "y" * 70
        assert split_message(text, 100) == ["x" * 50 + ".", "y" * 70]

    def test_hard_cut_without_spaces(self):
        chunks = split_message("z" * 250, 100)
        assert chunks == ["z" * 100, "z" * 100, "z" * 50]
