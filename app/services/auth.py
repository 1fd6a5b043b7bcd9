# app/services/auth.py
"""
Users, enrollments and single-use magic login links.

Only the SHA-256 of a magic token is stored; the raw token exists only in
the link that is e-mailed to the buyer.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import db_session
from app.logging_setup import mask_email
from app.models import AppUser, Enrollment, MagicToken
from app.services.lead_storage import as_utc

logger = logging.getLogger(__name__)


@dataclass
class MagicLink:
    token: str
    url: str
    expires_at: datetime


@dataclass
class TokenValidation:
    valid: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    error: Optional[str] = None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def upsert_user(session: Session, email: str, nome: Optional[str] = None) -> AppUser:
    user = session.scalars(select(AppUser).where(AppUser.email == email)).first()
    if user is None:
        user = AppUser(email=email, nome=nome)
        session.add(user)
        session.flush()
        logger.info("Created user %s", mask_email(email))
    elif nome and not user.nome:
        user.nome = nome
    return user


def create_enrollment(
    session: Session,
    user_id: str,
    product_code: str,
    origin_session_id: Optional[str] = None,
    payment_id: Optional[str] = None,
) -> Enrollment:
    """One enrollment per (user, product); a repeat purchase refreshes it."""
    stmt = select(Enrollment).where(
        Enrollment.user_id == user_id,
        Enrollment.product_code == product_code,
    )
    enrollment = session.scalars(stmt).first()
    if enrollment is None:
        enrollment = Enrollment(user_id=user_id, product_code=product_code)
        session.add(enrollment)

    enrollment.origin_session_id = origin_session_id or enrollment.origin_session_id
    enrollment.payment_id = payment_id or enrollment.payment_id
    enrollment.status = "active"
    enrollment.fulfilled_at = datetime.now(timezone.utc)
    session.flush()
    return enrollment


def create_magic_token(
    session: Session,
    user_id: str,
    email: str,
    ttl_hours: Optional[int] = None,
) -> MagicLink:
    settings = get_settings()
    ttl = ttl_hours if ttl_hours is not None else settings.magic_link_ttl_hours

    token = secrets.token_hex(32)
    expires_at = datetime.now(timezone.utc) + timedelta(hours=ttl)
    session.add(
        MagicToken(
            token_hash=hash_token(token),
            user_id=user_id,
            email=email,
            expires_at=expires_at,
        )
    )
    session.flush()

    url = f"{settings.app_origin}/auth/magic?{urlencode({'token': token})}"
    return MagicLink(token=token, url=url, expires_at=expires_at)


def validate_magic_token(token: str) -> TokenValidation:
    """
    Consume a magic token.

    Returns:
      - TokenValidation(valid=True, user_id, email) on success; the token
        is marked used so a second call fails
      - TokenValidation(valid=False, error=...) otherwise
    """
    with db_session() as session:
        record = session.get(MagicToken, hash_token(token))
        if record is None:
            return TokenValidation(valid=False, error="Token not found")
        if record.used:
            return TokenValidation(valid=False, error="Token already used")
        if as_utc(record.expires_at) < datetime.now(timezone.utc):
            return TokenValidation(valid=False, error="Token expired")

        user = session.get(AppUser, record.user_id)
        if user is None:
            return TokenValidation(valid=False, error="User not found")

        record.used = True
        return TokenValidation(valid=True, user_id=user.id, email=user.email)
