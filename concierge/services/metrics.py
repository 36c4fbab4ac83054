"""CloudWatch custom metrics emitter with background batching.

Every external dependency the agent touches (the Anthropic API, search
providers, Twilio, SMTP) reports call count, latency and error type
through the module-level :data:`metrics` client.

* Data points are collected in a thread-safe in-memory buffer.
* When ``METRICS_ENABLED=true`` a daemon thread flushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  logged at DEBUG level and discarded on flush.
* ``put_metric_data`` accepts at most 1 000 data points per request.

Usage
-----
>>> from concierge.services.metrics import metrics
>>> with metrics.track("twilio", "POST /Calls"):
...     ...
>>> metrics.record_failure("anthropic", "llm_invoke", error_type="APITimeoutError")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "Concierge"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self, namespace: str = NAMESPACE) -> None:
        self._namespace = namespace
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful call to *service*."""
        now = datetime.now(UTC)
        self._append(self._point("Dependency/Calls", now, 1, "Count",
                                 Service=service, Outcome="success"))
        self._append(self._point("Dependency/Latency", now, latency_ms, "Milliseconds",
                                 Service=service, Operation=operation))
        logger.debug("Metric: %s %s ok %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed call; latency is only emitted when known."""
        now = datetime.now(UTC)
        self._append(self._point("Dependency/Calls", now, 1, "Count",
                                 Service=service, Outcome="failure"))
        self._append(self._point("Dependency/Errors", now, 1, "Count",
                                 Service=service, ErrorType=error_type))
        if latency_ms > 0:
            self._append(self._point("Dependency/Latency", now, latency_ms, "Milliseconds",
                                     Service=service, Operation=operation))
        logger.debug(
            "Metric: %s %s failed (%s) %.1fms", service, operation, error_type, latency_ms,
        )

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed block and record success or failure.

        Exceptions are recorded and re-raised unchanged.
        """
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record_failure(
                service, operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise
        self.record_success(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=self._namespace, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    @staticmethod
    def _point(
        name: str, timestamp: datetime, value: float, unit: str, **dimensions: str,
    ) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
