"""Web search and page fetching for the ``web_search``/``fetch_webpage`` tools.

Search providers, in order of preference:
  1. Brave Search API (``BRAVE_SEARCH_API_KEY``)
  2. SerpAPI / Google (``SERP_API_KEY``)

Results are normalised to ``{title, url, snippet}`` and cached for ten
minutes.  Page fetches apply the browser's URL admission policy to the
initial URL and to every redirect hop.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

import httpx

from concierge.browser.policy import is_url_allowed
from concierge.config import BRAVE_SEARCH_API_KEY, SERP_API_KEY
from concierge.errors import ExternalServiceError, SecurityError
from concierge.services.cache import TTLCache
from concierge.services.http import REQUEST_TIMEOUT_SECONDS, ApiClient

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
SERPAPI_URL = "https://serpapi.com/search.json"
FETCH_USER_AGENT = "Concierge-Assistant/1.0"
MAX_FETCH_REDIRECTS = 3
DEFAULT_FETCH_MAX_LENGTH = 5000

_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Crude HTML → text: drop scripts, styles and tags, collapse whitespace."""
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


async def _admit_request(request: httpx.Request) -> None:
    if not is_url_allowed(str(request.url)):
        raise SecurityError(f"URL not allowed: {request.url}")


class SearchClient(ApiClient):
    SERVICE = "web_search"

    def __init__(
        self,
        *,
        brave_api_key: str | None = None,
        serp_api_key: str | None = None,
        cache: TTLCache | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            client
            or httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT_SECONDS,
                follow_redirects=True,
                max_redirects=MAX_FETCH_REDIRECTS,
                headers={"User-Agent": FETCH_USER_AGENT},
                event_hooks={"request": [_admit_request]},
            )
        )
        self._brave_api_key = brave_api_key
        self._serp_api_key = serp_api_key
        self._cache = cache or TTLCache()

    async def search(self, query: str, count: int = 5) -> list[dict[str, Any]]:
        if not query or not query.strip():
            raise ValueError("Missing search query")

        if self._brave_api_key:
            provider, fetch = "brave", self._brave_search
        elif self._serp_api_key:
            provider, fetch = "serpapi", self._serp_search
        else:
            raise ExternalServiceError(
                "No search API configured. Set BRAVE_SEARCH_API_KEY or SERP_API_KEY.",
                service=self.SERVICE,
            )

        cache_key = f"{provider}:{count}:{query.strip().lower()}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Search cache hit for %r", query)
            return cached

        results = await fetch(query, count)
        self._cache.put(cache_key, results)
        return results

    async def _brave_search(self, query: str, count: int) -> list[dict[str, Any]]:
        response = await self._request(
            "GET",
            BRAVE_SEARCH_URL,
            operation="brave GET /web/search",
            params={"q": query, "count": count},
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self._brave_api_key,
            },
        )
        data = response.json()
        return [
            {"title": r.get("title"), "url": r.get("url"), "snippet": r.get("description")}
            for r in (data.get("web") or {}).get("results", [])
        ]

    async def _serp_search(self, query: str, count: int) -> list[dict[str, Any]]:
        response = await self._request(
            "GET",
            SERPAPI_URL,
            operation="serpapi GET /search.json",
            params={"q": query, "api_key": self._serp_api_key, "num": count},
        )
        data = response.json()
        return [
            {"title": r.get("title"), "url": r.get("link"), "snippet": r.get("snippet")}
            for r in data.get("organic_results", [])
        ]

    async def fetch_page(self, url: str, max_length: int = DEFAULT_FETCH_MAX_LENGTH) -> dict[str, Any]:
        """Fetch *url* and return its readable text, truncated to *max_length*."""
        if not is_url_allowed(url):
            raise SecurityError(f"URL not allowed: {url}")
        response = await self._request("GET", url, operation="GET page")
        content_type = response.headers.get("content-type", "")
        body = response.text
        text = html_to_text(body) if "html" in content_type or "<" in body[:200] else body.strip()
        return {
            "url": str(response.url),
            "text": text[:max_length],
            "truncated": len(text) > max_length,
        }


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SearchClient | None = None
_client_lock = threading.Lock()


def get_search_client() -> SearchClient:
    """Return a module-level SearchClient singleton."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SearchClient(
                    brave_api_key=BRAVE_SEARCH_API_KEY,
                    serp_api_key=SERP_API_KEY,
                )
    return _client
