"""Tests for the context store, profile document and history ordering."""

from __future__ import annotations

import json

import pytest

from concierge.context import InMemoryContextStore, build_profile_document, chronological
from concierge.errors import CustomerNotFoundError
from concierge.models import Message, ToolInvocationRecord


class TestProfileDocument:
    def test_renders_known_preferences_in_order(self):
        doc = build_profile_document({
            "full_name": "Alice Smith",
            "dietary_restrictions": "vegetarian",
            "cabin_class": "business",
            "preferred_contact": "whatsapp",
        })

        assert doc.startswith("=== PERSONAL AI ASSISTANT PROFILE ===")
        assert "=== END PROFILE ===" in doc
        assert doc.index("CUSTOMER NAME: Alice Smith") < doc.index("DIETARY RESTRICTIONS: vegetarian")
        assert doc.index("PREFERRED CABIN CLASS: business") < doc.index("PREFERRED CONTACT METHOD: whatsapp")

    def test_loyalty_programs_as_list(self):
        doc = build_profile_document({
            "loyalty_numbers": [
                {"program": "United MileagePlus", "number": "UA123"},
                {"program": "", "number": ""},
            ],
        })
        assert "LOYALTY PROGRAMS:\n- United MileagePlus: UA123" in doc
        assert "- : " not in doc

    def test_empty_preferences_render_nothing(self):
        assert build_profile_document({}) == ""
        assert build_profile_document(None) == ""


class TestChronological:
    def test_reverses_and_drops_leading_assistant_turns(self):
        newest_first = [
            Message(role="assistant", content="a2"),
            Message(role="user", content="u2"),
            Message(role="assistant", content="a1"),
        ]
        assert [m.text for m in chronological(newest_first)] == ["u2", "a2"]

    def test_empty_history(self):
        assert chronological([]) == []


class TestInMemoryContextStore:
    async def test_unknown_customer(self):
        store = InMemoryContextStore()
        with pytest.raises(CustomerNotFoundError):
            await store.load_profile("ghost")

    async def test_profile_round_trip(self):
        store = InMemoryContextStore()
        store.add_customer("c1", "Alice", {"dietary_restrictions": "vegan"})

        profile = await store.load_profile("c1")

        assert profile.display_name == "Alice"
        assert "DIETARY RESTRICTIONS: vegan" in profile.preference_document

    async def test_history_is_newest_first_and_limited(self):
        store = InMemoryContextStore(history_limit=3)
        store.add_customer("c1", "Alice")
        await store.save_turn("c1", "q1", "r1", [])
        await store.save_turn("c1", "q2", "r2", [ToolInvocationRecord(name="web_search", succeeded=True)])

        history = await store.load_history("c1")

        assert [m.text for m in history] == ["r2", "q2", "r1"]
        assert [r.name for r in store.activity("c1")] == ["web_search"]

    async def test_storage_is_capped_on_write(self):
        store = InMemoryContextStore(history_limit=4)
        store.add_customer("c1", "Alice")
        for i in range(10):
            record = ToolInvocationRecord(name=f"tool{i}", succeeded=True)
            await store.save_turn("c1", f"q{i}", f"r{i}", [record])

        assert [m.text for m in store._history["c1"]] == ["q8", "r8", "q9", "r9"]
        assert [r.name for r in store.activity("c1")] == ["tool6", "tool7", "tool8", "tool9"]

    async def test_from_json_file(self, tmp_path):
        path = tmp_path / "customers.json"
        path.write_text(json.dumps({
            "alice": {"name": "Alice", "preferences": {"seat_preference": "aisle"}},
            "bob": {},
        }))

        store = InMemoryContextStore.from_json_file(path)

        assert "alice" in store and "bob" in store
        assert (await store.load_profile("bob")).display_name == "bob"
        assert "SEAT PREFERENCE: aisle" in (await store.load_profile("alice")).preference_document
