"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming message from a customer channel."""

    customer_id: str = Field(..., min_length=1, max_length=100, description="Customer identifier")
    message: str = Field(..., min_length=1, max_length=4000, description="The customer's message")


class InvocationOut(BaseModel):
    name: str
    succeeded: bool
    target: str | None = None


class ChatResponse(BaseModel):
    """Response from the agent."""

    reply: str = Field(..., description="The agent's reply text")
    customer_id: str = Field(..., description="The customer this reply belongs to")
    invocations: list[InvocationOut] = Field(
        default_factory=list, description="Tools called during the turn, in order",
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "concierge-agent"
