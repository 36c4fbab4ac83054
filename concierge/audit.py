"""Fire-and-forget audit log of tool activity.

Each tool dispatch records ``(customer, tool, target, succeeded)``.  Writes
are scheduled as background tasks so the agent loop never waits on the
sink, and a failing sink is logged, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    customer_id: str | None
    tool: str
    target: str | None
    succeeded: bool
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AuditSink(Protocol):
    async def write(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events to the ``concierge.audit`` logger."""

    async def write(self, event: AuditEvent) -> None:
        logger.info(
            "audit customer=%s tool=%s target=%s ok=%s",
            event.customer_id, event.tool, event.target, event.succeeded,
        )


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def write(self, event: AuditEvent) -> None:
        self.events.append(event)


class AuditLog:
    def __init__(self, sink: AuditSink | None = None) -> None:
        self._sink = sink or LoggingAuditSink()
        self._pending: set[asyncio.Task] = set()

    def record(
        self,
        customer_id: str | None,
        tool: str,
        target: str | None,
        succeeded: bool,
    ) -> None:
        """Schedule a write and return immediately."""
        event = AuditEvent(customer_id, tool, target, succeeded)
        task = asyncio.get_running_loop().create_task(self._write(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, event: AuditEvent) -> None:
        try:
            await self._sink.write(event)
        except Exception:
            logger.exception("Audit log write failed for tool %s", event.tool)

    async def drain(self) -> None:
        """Wait for every scheduled write (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


def describe_target(tool: str, tool_input: dict | None) -> str | None:
    """Pick the most meaningful field of a tool input for the audit trail."""
    tool_input = tool_input or {}
    for key in ("url", "to", "query", "selector", "text"):
        value = tool_input.get(key)
        if value:
            return str(value)[:200]
    action = tool_input.get("action")
    return str(action) if action else None
