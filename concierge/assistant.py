"""Assistant façade: one inbound customer message in, one reply out.

Glues the context store to the agent loop::

    load profile → load history → build system prompt → run loop → save turn

Turns for the same customer are serialized; different customers run
concurrently and share nothing but the audit sink.
"""

from __future__ import annotations

import asyncio
import logging
import weakref

from concierge.agent import AgentLoopController
from concierge.context import ContextStore, chronological
from concierge.models import TurnResult
from concierge.prompts import get_system_prompt

logger = logging.getLogger(__name__)

# Twilio's WhatsApp body limit is 1600; leave headroom.
DEFAULT_CHUNK_LENGTH = 1500


class Assistant:
    def __init__(self, store: ContextStore, controller: AgentLoopController) -> None:
        self.store = store
        self.controller = controller
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, customer_id: str) -> asyncio.Lock:
        lock = self._locks.get(customer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[customer_id] = lock
        return lock

    async def handle_message(self, customer_id: str, text: str) -> TurnResult:
        """Run one conversation turn for *customer_id*.

        Raises:
            CustomerNotFoundError: unknown customer.
            AgentError: any terminal error from the agent loop; nothing
                is saved to history in that case.
        """
        async with self._lock_for(customer_id):
            profile = await self.store.load_profile(customer_id)
            history = chronological(await self.store.load_history(customer_id))
            system_prompt = get_system_prompt(profile.display_name, profile.preference_document)

            result = await self.controller.run(
                system_prompt, history, text, customer_id=customer_id,
            )

            await self.store.save_turn(customer_id, text, result.reply_text, result.invocations)
            logger.info(
                "Customer %s turn done: %d tool call(s), corrected=%s",
                customer_id, len(result.invocations), result.corrected,
            )
            return result


def split_message(text: str, max_length: int = DEFAULT_CHUNK_LENGTH) -> list[str]:
    """Split *text* into chunks of at most *max_length* characters.

    Breaks at a paragraph boundary, then a sentence end, then a space,
    and only hard-cuts when none of those falls in the last 70% of the
    window.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    remaining = text
    min_split = int(max_length * 0.3)
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        window = remaining[:max_length]
        split_at = window.rfind("\n\n")
        if split_at < min_split:
            split_at = window.rfind(". ")
            if split_at >= min_split:
                split_at += 1  # keep the period
        if split_at < min_split:
            split_at = window.rfind(" ")
        if split_at < min_split:
            split_at = max_length

        chunks.append(remaining[:split_at].strip())
        remaining = remaining[split_at:].strip()
    return [c for c in chunks if c]
