"""Async HTTP base client with retry logic and timeout handling.

Subclasses set ``SERVICE`` (used for metrics and error messages) and call
:meth:`ApiClient._request`, which retries timeouts, connection errors
and 5xx responses with exponential backoff.  4xx responses are raised
immediately as :class:`~concierge.errors.ExternalServiceError`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from concierge.errors import ExternalServiceError
from concierge.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0


class ApiClient:
    SERVICE = "http"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retries."""
        operation = operation or f"{method} {url}"
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                with metrics.track(self.SERVICE, operation):
                    response = await self._client.request(method, url, **kwargs)
                    if response.status_code >= 400:
                        raise ExternalServiceError(
                            f"{self.SERVICE} returned {response.status_code}: {response.text[:300]}",
                            service=self.SERVICE,
                            status_code=response.status_code,
                        )
                return response

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "%s attempt %d/%d failed (%s). Retrying in %.1fs…",
                    self.SERVICE,
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except ExternalServiceError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "%s server error on attempt %d/%d. Retrying…",
                        self.SERVICE,
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise

            if attempt < MAX_RETRIES:
                await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise ExternalServiceError(
            f"{self.SERVICE} request failed after {MAX_RETRIES} attempts: {last_error}",
            service=self.SERVICE,
        )
