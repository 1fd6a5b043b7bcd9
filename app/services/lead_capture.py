# app/services/lead_capture.py
from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from app.config import get_settings
from app.errors import LeadRejected, RateLimited, StorageError
from app.quiz.validation import EMAIL_REGEX, MIN_NAME_LENGTH
from app.services.lead_storage import LeadPayload, StoredLead, store_lead
from app.services.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

UUID_V4_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Hidden form fields; a human never fills them in.
HONEYPOT_FIELDS = ("website", "url", "link")


def is_uuid_v4(value: Any) -> bool:
    return isinstance(value, str) and UUID_V4_REGEX.match(value) is not None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_lead_body(body: Dict[str, Any]) -> List[str]:
    """Collect every problem with a lead body; empty list means valid."""
    errors: List[str] = []

    session_id = body.get("sessionId")
    if not session_id or not isinstance(session_id, str):
        errors.append("sessionId is required")

    nome = body.get("nome")
    if not isinstance(nome, str) or len(nome.strip()) < MIN_NAME_LENGTH:
        errors.append("nome must be at least 2 characters")

    email = body.get("email")
    if not isinstance(email, str) or not EMAIL_REGEX.match(email):
        errors.append("valid email is required")

    if body.get("consent") is not True:
        errors.append("consent must be true")

    if not _is_number(body.get("completedAt")) or not body.get("completedAt"):
        errors.append("completedAt is required")

    if session_id and isinstance(session_id, str) and not is_uuid_v4(session_id):
        errors.append("sessionId must be valid UUID v4")

    return errors


class LeadCaptureService:
    """
    Server side of the step-6 submission.

    Order of checks: honeypot, per-session rate limit, payload validation,
    then storage.
    """

    def __init__(
        self,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        min_completion_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=1,
            window_seconds=settings.lead_rate_limit_seconds,
        )
        self.min_completion_seconds = (
            min_completion_seconds
            if min_completion_seconds is not None
            else settings.lead_min_completion_seconds
        )
        self._clock = clock

    def is_honeypot(self, body: Dict[str, Any]) -> bool:
        if any(body.get(name) for name in HONEYPOT_FIELDS):
            return True

        # Bots fill the quiz faster than a person can read it.
        started_at = body.get("startedAt")
        completed_at = body.get("completedAt")
        if _is_number(started_at) and _is_number(completed_at):
            elapsed = (completed_at - started_at) / 1000
            if elapsed < self.min_completion_seconds:
                return True

        return False

    def submit(self, body: Dict[str, Any]) -> StoredLead:
        """
        Validate and store a lead body (camelCase keys, as the browser sends).

        Raises:
          - LeadRejected for honeypot hits and invalid payloads
          - RateLimited for a repeat submission inside the window
          - StorageError when the database write fails
        """
        if self.is_honeypot(body):
            logger.warning("Lead rejected by honeypot session=%s", body.get("sessionId"))
            raise LeadRejected("Invalid request")

        rate_key = f"lead:{body.get('sessionId')}"
        if not self.rate_limiter.allow(rate_key):
            raise RateLimited("Too many requests")

        try:
            return self._store(body)
        except (LeadRejected, StorageError):
            # only stored leads count against the window
            self.rate_limiter.release(rate_key)
            raise

    def _store(self, body: Dict[str, Any]) -> StoredLead:
        errors = validate_lead_body(body)
        if errors:
            raise LeadRejected("Validation failed", details=errors)

        payload = LeadPayload(
            session_id=body["sessionId"],
            nome=body["nome"],
            email=body["email"],
            consent=True,
            completed_at=int(body["completedAt"]),
            started_at=int(body["startedAt"]) if _is_number(body.get("startedAt")) else None,
            answers=dict(body.get("answers") or {}),
            flags=dict(body.get("flags") or {}),
            meta={
                "variant": body.get("variant") or (body.get("utmParams") or {}).get("variant") or "A",
                "source": body.get("source") or "quiz",
                "utmParams": dict(body.get("utmParams") or {}),
                "issuedAt": int(self._clock() * 1000),
            },
        )
        return store_lead(payload)
