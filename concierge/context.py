"""Context boundary: customer profiles and conversation history.

The agent core only needs three things from the outside world, captured
by :class:`ContextStore`.  :class:`InMemoryContextStore` is the bundled
implementation used by the API server and the CLI; a database-backed
store only has to implement the same three coroutines.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

from concierge.config import HISTORY_LIMIT
from concierge.errors import CustomerNotFoundError
from concierge.models import CustomerProfile, Message, ToolInvocationRecord

logger = logging.getLogger(__name__)


class ContextStore(Protocol):
    async def load_profile(self, customer_id: str) -> CustomerProfile: ...

    async def load_history(self, customer_id: str) -> list[Message]:
        """Most recent first, at most ``HISTORY_LIMIT`` entries."""
        ...

    async def save_turn(
        self,
        customer_id: str,
        user_text: str,
        reply_text: str,
        invocations: Sequence[ToolInvocationRecord],
    ) -> None: ...


# ── Preference document ──────────────────────────────────────────────

_PROFILE_SECTIONS = (
    ("full_name", "CUSTOMER NAME"),
    ("dietary_restrictions", "DIETARY RESTRICTIONS"),
    ("cuisine_preferences", "CUISINE PREFERENCES"),
    ("preferred_restaurants", "FAVOURITE RESTAURANTS"),
    ("dining_budget", "DINING BUDGET"),
    ("preferred_airlines", "PREFERRED AIRLINES"),
    ("seat_preference", "SEAT PREFERENCE"),
    ("cabin_class", "PREFERRED CABIN CLASS"),
    ("hotel_preferences", "HOTEL PREFERENCES"),
)


def _loyalty_text(loyalty: Any) -> str:
    if isinstance(loyalty, list):
        return "\n".join(
            f"- {entry.get('program', '')}: {entry.get('number', '')}"
            for entry in loyalty
            if entry.get("program") or entry.get("number")
        )
    return str(loyalty)


def build_profile_document(preferences: dict[str, Any] | None) -> str:
    """Render stored preferences as the profile block of the system prompt.

    Returns an empty string when there is nothing worth showing.
    """
    preferences = preferences or {}
    sections = [
        f"{title}: {preferences[key]}"
        for key, title in _PROFILE_SECTIONS
        if preferences.get(key)
    ]

    if preferences.get("loyalty_numbers"):
        loyalty = _loyalty_text(preferences["loyalty_numbers"])
        if loyalty:
            sections.append(f"LOYALTY PROGRAMS:\n{loyalty}")

    if preferences.get("preferred_contact"):
        sections.append(f"PREFERRED CONTACT METHOD: {preferences['preferred_contact']}")

    if not sections:
        return ""
    body = "\n\n".join(sections)
    return (
        f"=== PERSONAL AI ASSISTANT PROFILE ===\n\n{body}\n\n=== END PROFILE ===\n\n"
        "Always use this profile to personalise responses and make bookings. "
        "Never share this information with third parties."
    )


def chronological(history_newest_first: Iterable[Message]) -> list[Message]:
    """Oldest-first history that starts with a user turn."""
    ordered = list(reversed(list(history_newest_first)))
    while ordered and ordered[0].role != "user":
        ordered.pop(0)
    return ordered


# ── In-memory store ──────────────────────────────────────────────────


class InMemoryContextStore:
    """Process-local store.  Data is lost on restart."""

    def __init__(self, *, history_limit: int = HISTORY_LIMIT) -> None:
        self.history_limit = history_limit
        self._profiles: dict[str, CustomerProfile] = {}
        self._history: dict[str, list[Message]] = {}
        self._activity: dict[str, list[ToolInvocationRecord]] = {}

    def add_customer(
        self,
        customer_id: str,
        display_name: str,
        preferences: dict[str, Any] | None = None,
    ) -> CustomerProfile:
        profile = CustomerProfile(
            display_name=display_name,
            preference_document=build_profile_document(preferences),
        )
        self._profiles[customer_id] = profile
        return profile

    @classmethod
    def from_json_file(cls, path: str | Path, **kwargs: Any) -> InMemoryContextStore:
        """Seed a store from ``{customer_id: {"name": ..., "preferences": {...}}}``."""
        store = cls(**kwargs)
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        for customer_id, entry in data.items():
            store.add_customer(
                customer_id,
                entry.get("name") or customer_id,
                entry.get("preferences"),
            )
        logger.info("Loaded %d customer profile(s) from %s", len(data), path)
        return store

    def __contains__(self, customer_id: object) -> bool:
        return customer_id in self._profiles

    def activity(self, customer_id: str) -> list[ToolInvocationRecord]:
        return list(self._activity.get(customer_id, []))

    async def load_profile(self, customer_id: str) -> CustomerProfile:
        profile = self._profiles.get(customer_id)
        if profile is None:
            raise CustomerNotFoundError(f"Customer {customer_id} not found")
        return profile

    async def load_history(self, customer_id: str) -> list[Message]:
        turns = self._history.get(customer_id, [])
        return list(reversed(turns[-self.history_limit:]))

    async def save_turn(
        self,
        customer_id: str,
        user_text: str,
        reply_text: str,
        invocations: Sequence[ToolInvocationRecord],
    ) -> None:
        turns = self._history.setdefault(customer_id, [])
        turns.append(Message(role="user", content=user_text))
        turns.append(Message(role="assistant", content=reply_text))
        del turns[:-self.history_limit]

        activity = self._activity.setdefault(customer_id, [])
        activity.extend(invocations)
        del activity[:-self.history_limit]
