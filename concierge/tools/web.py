"""Web lookup tools: ``web_search`` and ``fetch_webpage``."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from concierge.services.search import get_search_client
from concierge.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)


class WebSearchInput(BaseModel):
    query: str = Field(min_length=1, description="Search query")
    count: int = Field(default=5, ge=1, le=10, description="Number of results (1-10, default 5)")


class FetchWebpageInput(BaseModel):
    url: str = Field(min_length=1, description="The URL to fetch (http/https only)")


async def web_search(params: WebSearchInput, ctx: ToolContext) -> dict[str, Any]:
    results = await get_search_client().search(params.query, params.count)
    logger.debug("web_search %r returned %d results", params.query, len(results))
    return {"results": results}


async def fetch_webpage(params: FetchWebpageInput, ctx: ToolContext) -> dict[str, Any]:
    return await get_search_client().fetch_page(params.url)


def register(registry: ToolRegistry) -> None:
    registry.add(
        "web_search",
        "Search the web and return results with URLs. "
        "ALWAYS cite the URL of every result you reference.",
        WebSearchInput,
        web_search,
    )
    registry.add(
        "fetch_webpage",
        "Fetch and extract the text content of a public webpage.",
        FetchWebpageInput,
        fetch_webpage,
    )
