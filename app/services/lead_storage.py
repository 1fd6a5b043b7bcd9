# app/services/lead_storage.py
"""
Lead persistence shared by /api/lead, checkout and fulfillment, plus the
idempotency key table used by checkout and the Stripe webhook.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.db import db_session
from app.errors import StorageError
from app.logging_setup import mask_email
from app.models import Lead, ProcessedEvent

logger = logging.getLogger(__name__)

IDEMPOTENCY_TTL = timedelta(hours=24)


@dataclass
class LeadPayload:
    session_id: str
    nome: str
    email: str
    consent: bool
    completed_at: int  # epoch ms
    answers: Dict[str, Any] = field(default_factory=dict)
    flags: Dict[str, bool] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[int] = None


@dataclass
class StoredLead:
    session_id: str
    nome: str
    email: str
    consent: bool
    answers: Dict[str, Any]
    flags: Dict[str, bool]
    meta: Dict[str, Any]
    completed_at: datetime
    created_at: datetime


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _to_stored(lead: Lead) -> StoredLead:
    return StoredLead(
        session_id=lead.session_id,
        nome=lead.nome,
        email=lead.email,
        consent=lead.consent,
        answers=dict(lead.answers or {}),
        flags=dict(lead.flags or {}),
        meta=dict(lead.meta or {}),
        completed_at=as_utc(lead.completed_at),
        created_at=as_utc(lead.created_at),
    )


def store_lead(payload: LeadPayload) -> StoredLead:
    """
    Insert or update the lead for `payload.session_id`.

    Raises StorageError when the database refuses the write.
    """
    try:
        with db_session() as session:
            lead = session.get(Lead, payload.session_id)
            if lead is None:
                lead = Lead(session_id=payload.session_id)
                session.add(lead)

            lead.nome = payload.nome.strip()
            lead.email = payload.email.strip()
            lead.consent = payload.consent
            lead.answers = payload.answers
            lead.flags = payload.flags
            lead.meta = payload.meta
            lead.completed_at = ms_to_datetime(payload.completed_at)
            lead.started_at = ms_to_datetime(payload.started_at) if payload.started_at else None
            session.flush()

            stored = _to_stored(lead)
    except SQLAlchemyError as exc:
        logger.error("Failed to store lead %s: %s", payload.session_id, exc)
        raise StorageError("Storage failed") from exc

    logger.info(
        "Lead stored session=%s email=%s consent=%s variant=%s source=%s",
        stored.session_id,
        mask_email(stored.email),
        stored.consent,
        stored.meta.get("variant"),
        stored.meta.get("source"),
    )
    return stored


def get_lead_by_session_id(session_id: str) -> Optional[StoredLead]:
    with db_session() as session:
        lead = session.get(Lead, session_id)
        return _to_stored(lead) if lead is not None else None


def get_lead_by_email(email: str) -> Optional[StoredLead]:
    with db_session() as session:
        stmt = (
            select(Lead)
            .where(Lead.email == email)
            .order_by(Lead.created_at.desc())
            .limit(1)
        )
        lead = session.scalars(stmt).first()
        return _to_stored(lead) if lead is not None else None


# ----------------------------------------------------------------------
# Idempotency
# ----------------------------------------------------------------------


def check_idempotency(key: str) -> bool:
    """True when `key` has not been processed within the last 24 hours."""
    with db_session() as session:
        record = session.get(ProcessedEvent, key)
        if record is None:
            return True
        if datetime.now(timezone.utc) - as_utc(record.created_at) > IDEMPOTENCY_TTL:
            session.delete(record)
            return True
        return False


def mark_processed(key: str) -> None:
    try:
        with db_session() as session:
            record = session.get(ProcessedEvent, key)
            if record is None:
                session.add(ProcessedEvent(key=key))
            else:
                record.created_at = datetime.now(timezone.utc)
    except IntegrityError:
        # a concurrent request marked it first
        logger.info("Idempotency key already marked: %s", key)
