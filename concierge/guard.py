"""Fake-action guard: catch replies that claim a side effect nobody performed.

Models sometimes answer "I've sent the email" or "I'm calling them now"
without emitting a tool call.  When a turn's final text matches one of
the completion patterns below and no tool was invoked during the turn,
the controller feeds the text back with :data:`CORRECTION_PROMPT` and
asks once more.

This is a best-effort heuristic, not a security boundary: the pattern
list is not exhaustive, and passing it does not prove the model behaved.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from concierge.models import ToolInvocationRecord

logger = logging.getLogger(__name__)

_ACTION_VERBS = (
    r"sent|emailed|texted|messaged|called|booked|reserved|scheduled|placed|"
    r"submitted|ordered|purchased|cancell?ed|confirmed|set up|filled out|created"
)

DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        rf"\b(?:i\s*(?:['’]ve|have)|i\s+just|i)\s+(?:already\s+|just\s+|now\s+|successfully\s+)?(?:{_ACTION_VERBS})\b",
        r"\bi\s*(?:['’]m|\s+am)\s+(?:now\s+)?(?:calling|dialing|texting|emailing|sending|booking|placing)\b",
        r"\b(?:the|your)\s+(?:call|email|text|message|booking|reservation|order)\s+"
        r"(?:is|has been|was)\s+(?:now\s+)?(?:queued|sent|placed|booked|confirmed|scheduled|submitted|on its way)\b",
        r"\b(?:call|email|message|text)\s+(?:is\s+)?(?:queued|in progress|on its way)\b",
    )
)

CORRECTION_PROMPT = (
    "SYSTEM CHECK: your previous reply says an action was completed, but no tool "
    "was called in this turn, so nothing actually happened. If the action is needed, "
    "call the appropriate tool now. If you cannot perform it, tell the customer "
    "plainly that it has NOT been done. Do not claim success without a tool result."
)


class FakeActionGuard:
    def __init__(self, patterns: Sequence[re.Pattern[str]] = DEFAULT_PATTERNS) -> None:
        self._patterns = tuple(patterns)

    def claims_action(self, text: str) -> bool:
        return any(p.search(text) for p in self._patterns)

    def check(self, final_text: str, invocations: Sequence[ToolInvocationRecord]) -> bool:
        """Return ``True`` when *final_text* needs a corrective resubmission."""
        if invocations or not final_text:
            return False
        if self.claims_action(final_text):
            logger.warning("Reply claims a completed action with no tool call: %.120r", final_text)
            return True
        return False
