"""Outbound phone calls through the Twilio REST API.

The call speaks a single message with Twilio ``<Say>``.  Voices are
restricted to an allowlist because the voice name is interpolated into
TwiML.  Requires ``TWILIO_ACCOUNT_SID``, ``TWILIO_AUTH_TOKEN`` and
``TWILIO_PHONE_NUMBER``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any
from xml.sax.saxutils import escape, quoteattr

import httpx

from concierge.config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
from concierge.errors import ExternalServiceError, ValidationError
from concierge.services.http import REQUEST_TIMEOUT_SECONDS, ApiClient

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
DEFAULT_VOICE = "Polly.Joanna"
ALLOWED_VOICES = frozenset({
    "Polly.Joanna", "Polly.Matthew", "Polly.Amy", "Polly.Brian",
    "Polly.Kendra", "Polly.Kimberly", "Polly.Salli", "Polly.Joey",
    "Polly.Ivy", "Polly.Justin", "Polly.Ruth", "Polly.Stephen",
    "Polly.Joanna-Neural", "Polly.Matthew-Neural",
    "Google.en-US-Standard-A", "Google.en-US-Standard-B",
    "Google.en-US-Standard-C", "Google.en-US-Standard-D",
    "Google.en-US-Neural2-A", "Google.en-US-Neural2-C",
    "Google.en-US-Neural2-D", "Google.en-US-Neural2-F",
})


def build_twiml(message: str, voice: str = DEFAULT_VOICE) -> str:
    if voice not in ALLOWED_VOICES:
        raise ValidationError(f"Unsupported voice {voice!r}")
    return f"<Response><Say voice={quoteattr(voice)}>{escape(message)}</Say></Response>"


class VoiceClient(ApiClient):
    SERVICE = "twilio"

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS))
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    async def place_call(self, to: str, message: str, voice: str = DEFAULT_VOICE) -> dict[str, Any]:
        """Place a call that speaks *message*.  Returns ``{callSid, status}``."""
        if not self.configured:
            raise ExternalServiceError(
                "Twilio is not configured (TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER)",
                service=self.SERVICE,
            )
        twiml = build_twiml(message, voice)
        response = await self._request(
            "POST",
            f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Calls.json",
            operation="POST /Calls",
            data={"To": to, "From": self._from_number, "Twiml": twiml},
            auth=(self._account_sid, self._auth_token),
        )
        data = response.json()
        logger.info("Call %s placed to %s (%s)", data.get("sid"), to, data.get("status"))
        return {"callSid": data.get("sid"), "status": data.get("status", "queued")}


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: VoiceClient | None = None
_client_lock = threading.Lock()


def get_voice_client() -> VoiceClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = VoiceClient(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER)
    return _client
