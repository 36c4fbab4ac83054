"""Communication tools: ``make_phone_call`` and ``send_email``.

Both have real-world side effects, so inputs are validated strictly
before anything leaves the process.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from concierge.errors import ValidationError
from concierge.services.mailer import get_mailer
from concierge.services.voice import DEFAULT_VOICE, get_voice_client
from concierge.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

# RFC 5322-ish pattern covering ordinary real-world addresses.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)
_E164_RE = re.compile(r"^\+[1-9]\d{6,14}$")


def validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Ask the customer for the recipient's email."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Ask the customer to double-check it."
        )
    return None


def _validate_address_list(field: str, value: str | None) -> None:
    if not value:
        return
    for address in (a.strip() for a in value.split(",")):
        error = validate_email(address)
        if error:
            raise ValidationError(f"{field}: {error}")


class PhoneCallInput(BaseModel):
    to: str = Field(description="Phone number in E.164 format (e.g. +14155551234)")
    message: str = Field(min_length=1, description="Message to speak to the recipient")
    voice: str = Field(default=DEFAULT_VOICE, description="TTS voice (default: Polly.Joanna)")


class SendEmailInput(BaseModel):
    to: str = Field(description="Recipient email address")
    subject: str = Field(min_length=1, description="Email subject line")
    body: str = Field(min_length=1, description="Email body text")
    cc: str | None = Field(default=None, description="CC recipients, comma separated (optional)")
    bcc: str | None = Field(default=None, description="BCC recipients, comma separated (optional)")


async def make_phone_call(params: PhoneCallInput, ctx: ToolContext) -> dict[str, Any]:
    to = re.sub(r"[\s\-().]", "", params.to)
    if not _E164_RE.match(to):
        raise ValidationError(
            f'"{params.to}" is not a phone number in E.164 format (e.g. +14155551234)'
        )
    result = await get_voice_client().place_call(to, params.message, params.voice)
    logger.info("Customer %s placed a call to %s", ctx.customer_id, to)
    return result


async def send_email(params: SendEmailInput, ctx: ToolContext) -> dict[str, Any]:
    _validate_address_list("to", params.to)
    _validate_address_list("cc", params.cc)
    _validate_address_list("bcc", params.bcc)
    await get_mailer().send(
        params.to, params.subject, params.body, cc=params.cc, bcc=params.bcc,
    )
    return {"sent": True, "to": params.to}


def register(registry: ToolRegistry) -> None:
    registry.add(
        "make_phone_call",
        "Make an outbound phone call and speak a message via text-to-speech.",
        PhoneCallInput,
        make_phone_call,
    )
    registry.add(
        "send_email",
        "Send an email on behalf of the customer.",
        SendEmailInput,
        send_email,
    )
