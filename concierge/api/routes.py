"""FastAPI route definitions for the concierge agent API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from concierge.api.schemas import ChatRequest, ChatResponse, HealthResponse, InvocationOut
from concierge.errors import (
    CustomerNotFoundError,
    ExternalServiceError,
    LoopBudgetExceeded,
    TurnTimeoutError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_assistant(request: Request):
    """Retrieve the assistant built during the FastAPI lifespan."""
    assistant = getattr(request.app.state, "assistant", None)
    if assistant is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return assistant


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Run one conversation turn for a customer and return the reply.

    Terminal agent errors are logged with full detail server-side and
    answered with a generic message; internal error text never reaches
    the client.
    """
    assistant = _get_assistant(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await assistant.handle_message(request.customer_id, request.message)
    except CustomerNotFoundError as e:
        raise HTTPException(status_code=404, detail="Unknown customer.") from e
    except TurnTimeoutError as e:
        logger.error("[%s] Turn timed out: %s", request_id, e)
        raise HTTPException(
            status_code=504,
            detail="That took too long to complete. Please try again.",
        ) from e
    except (ExternalServiceError, LoopBudgetExceeded) as e:
        logger.error("[%s] Agent loop aborted: %s", request_id, e)
        raise HTTPException(
            status_code=502,
            detail="I couldn't complete that request right now. Please try again shortly.",
        ) from e
    except Exception as e:
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return ChatResponse(
        reply=result.reply_text,
        customer_id=request.customer_id,
        invocations=[InvocationOut(**r.model_dump()) for r in result.invocations],
    )
