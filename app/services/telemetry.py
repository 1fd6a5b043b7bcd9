# app/services/telemetry.py
from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from app.db import db_session
from app.models import ProductEvent
from app.quiz.analytics import sanitize_detail

logger = logging.getLogger(__name__)


def record_product_event(event_name: str, payload: Dict[str, Any]) -> None:
    """
    Analytics sink that persists funnel events to product_events.

    Telemetry must never break the funnel, so database errors are logged
    and dropped.
    """
    session_id = payload.get("sessionId")
    if not session_id or not isinstance(session_id, str):
        return

    try:
        with db_session() as session:
            session.add(
                ProductEvent(
                    session_id=session_id,
                    event=event_name,
                    detail=sanitize_detail(payload),
                )
            )
    except SQLAlchemyError as exc:
        logger.debug("Failed to log telemetry event %s: %s", event_name, exc)
