"""FastAPI server for the concierge agent.

Run with:
    uvicorn concierge.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from concierge.agent import AgentLoopController
from concierge.api.routes import router
from concierge.assistant import Assistant
from concierge.audit import AuditLog
from concierge.config import CORS_ORIGINS, CUSTOMER_PROFILES_PATH, SERVER_HOST, SERVER_PORT
from concierge.context import InMemoryContextStore
from concierge.llm import AnthropicLLM
from concierge.services.metrics import metrics
from concierge.tools import build_default_registry

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_assistant(audit: AuditLog | None = None) -> Assistant:
    """Wire the production assistant: Anthropic LLM, built-in tools, in-memory store."""
    if CUSTOMER_PROFILES_PATH:
        store = InMemoryContextStore.from_json_file(CUSTOMER_PROFILES_PATH)
    else:
        logger.warning("CUSTOMER_PROFILES_PATH not set; starting with no customers")
        store = InMemoryContextStore()
    controller = AgentLoopController(AnthropicLLM(), build_default_registry(), audit=audit)
    return Assistant(store, controller)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the assistant once and keep it in app state for the routes."""
    audit = AuditLog()
    logger.info("Building concierge assistant…")
    application.state.assistant = build_assistant(audit)
    logger.info("Assistant ready.")
    yield
    await audit.drain()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Concierge AI Agent",
    description=(
        "Personal concierge assistant: web lookups, browser tasks, "
        "phone calls and email on a customer's behalf."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it in ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Concierge AI Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting concierge API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "concierge.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
