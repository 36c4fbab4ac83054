"""Tools the model can call, plus the registry that dispatches them."""

from __future__ import annotations

from concierge.tools import comms, web
from concierge.tools.registry import ToolContext, ToolRegistry


def build_default_registry() -> ToolRegistry:
    """Registry with every built-in tool except ``browser_action``."""
    registry = ToolRegistry()
    web.register(registry)
    comms.register(registry)
    return registry


__all__ = ["ToolContext", "ToolRegistry", "build_default_registry"]
