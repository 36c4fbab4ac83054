"""Outbound email over SMTP (STARTTLS).

``smtplib`` is blocking, so :meth:`Mailer.send` runs the SMTP exchange in
a worker thread via ``asyncio.to_thread`` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import threading
from email.message import EmailMessage

from concierge.config import SMTP_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USER
from concierge.errors import ExternalServiceError
from concierge.services.metrics import metrics

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 15


class Mailer:
    SERVICE = "smtp"

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender

    @property
    def configured(self) -> bool:
        return bool(self._host and self._sender)

    def _build(
        self, to: str, subject: str, body: str, cc: str | None, bcc: str | None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = to
        msg["Subject"] = subject
        if cc:
            msg["Cc"] = cc
        if bcc:
            msg["Bcc"] = bcc
        msg.set_content(body)
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(msg)

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        *,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        if not self.configured:
            raise ExternalServiceError(
                "Email is not configured (SMTP_HOST / SMTP_FROM)", service=self.SERVICE,
            )
        msg = self._build(to, subject, body, cc, bcc)
        try:
            with metrics.track(self.SERVICE, "send_message"):
                await asyncio.to_thread(self._send_blocking, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError(
                f"Email delivery failed: {exc}", service=self.SERVICE,
            ) from exc
        logger.info("Email sent to %s: %r", to, subject)


_mailer: Mailer | None = None
_mailer_lock = threading.Lock()


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        with _mailer_lock:
            if _mailer is None:
                _mailer = Mailer(
                    SMTP_HOST, SMTP_PORT,
                    username=SMTP_USER, password=SMTP_PASSWORD, sender=SMTP_FROM,
                )
    return _mailer
