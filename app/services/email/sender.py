# app/services/email/sender.py
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.db import db_session
from app.logging_setup import mask_email
from app.models import EmailLog
from app.services.email.templates import EmailTemplate
from app.services.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

POSTMARK_URL = "https://api.postmarkapp.com/email"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
SENDER_NAME = "Dormir Natural"


@dataclass
class EmailMessage:
    to: str
    template: EmailTemplate
    template_name: str
    from_email: Optional[str] = None
    user_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailSender:
    """
    Delivers transactional e-mail through the configured provider.

    Providers:
      - "postmark" and "sendgrid" over HTTP
      - "mock" (and anything unrecognised) only logs

    Every attempt, successful or not, is written to email_log.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        settings = get_settings()
        self.provider = (provider or settings.email_provider or "mock").lower()
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.from_email = from_email or settings.email_from
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=15.0)
        return self._client

    def send(self, message: EmailMessage) -> EmailResult:
        logger.info("Sending email via %s to %s", self.provider, mask_email(message.to))

        if self.provider == "postmark":
            result = self._send_postmark(message)
        elif self.provider == "sendgrid":
            result = self._send_sendgrid(message)
        else:
            result = self._send_mock(message)

        if not result.success:
            logger.error("Email to %s failed: %s", mask_email(message.to), result.error)

        self._log(message, result)
        return result

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def _send_postmark(self, message: EmailMessage) -> EmailResult:
        payload = {
            "From": message.from_email or self.from_email,
            "To": message.to,
            "Subject": message.template.subject,
            "HtmlBody": message.template.html,
            "TextBody": message.template.text,
        }
        headers = {
            "Accept": "application/json",
            "X-Postmark-Server-Token": self.api_key or "",
        }
        try:
            response = self._get_client().post(POSTMARK_URL, json=payload, headers=headers)
            response.raise_for_status()
            return EmailResult(success=True, message_id=response.json().get("MessageID"))
        except httpx.HTTPStatusError as exc:
            return EmailResult(success=False, error=f"Postmark error: {exc.response.text}")
        except (httpx.HTTPError, ValueError) as exc:
            return EmailResult(success=False, error=f"Postmark error: {exc}")

    def _send_sendgrid(self, message: EmailMessage) -> EmailResult:
        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.from_email or self.from_email, "name": SENDER_NAME},
            "subject": message.template.subject,
            "content": [
                {"type": "text/plain", "value": message.template.text},
                {"type": "text/html", "value": message.template.html},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key or ''}"}
        try:
            response = self._get_client().post(SENDGRID_URL, json=payload, headers=headers)
            response.raise_for_status()
            return EmailResult(
                success=True,
                message_id=response.headers.get("x-message-id", "unknown"),
            )
        except httpx.HTTPStatusError as exc:
            return EmailResult(success=False, error=f"SendGrid error: {exc.response.text}")
        except httpx.HTTPError as exc:
            return EmailResult(success=False, error=f"SendGrid error: {exc}")

    def _send_mock(self, message: EmailMessage) -> EmailResult:
        logger.info(
            "Mock email sent to=%s subject=%r body_length=%d",
            mask_email(message.to),
            message.template.subject,
            len(message.template.html),
        )
        return EmailResult(
            success=True,
            message_id=f"mock_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}",
        )

    # ------------------------------------------------------------------
    # email_log
    # ------------------------------------------------------------------

    def _log(self, message: EmailMessage, result: EmailResult) -> None:
        try:
            with db_session() as session:
                session.add(
                    EmailLog(
                        user_id=message.user_id,
                        to_email=message.to,
                        template=message.template_name,
                        provider=self.provider,
                        status="sent" if result.success else "failed",
                        message_id=result.message_id,
                        error=result.error,
                        meta=message.meta,
                    )
                )
        except SQLAlchemyError as exc:
            logger.warning("Failed to write email_log: %s", exc)


_email_rate_limiter: Optional[FixedWindowRateLimiter] = None


def email_rate_limiter() -> FixedWindowRateLimiter:
    """Process-wide anti-spam limiter keyed by recipient address."""
    global _email_rate_limiter
    if _email_rate_limiter is None:
        settings = get_settings()
        _email_rate_limiter = FixedWindowRateLimiter(
            max_requests=settings.email_rate_limit_max,
            window_seconds=settings.email_rate_limit_window_seconds,
        )
    return _email_rate_limiter


def check_email_rate_limit(email: str) -> bool:
    return email_rate_limiter().allow(f"email:{email.lower()}")
