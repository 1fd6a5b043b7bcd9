# app/services/consent.py
from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum

from app.quiz.store import SessionStorage

logger = logging.getLogger(__name__)

CONSENT_STORAGE_KEY = "cookie_consent"


class ConsentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class ConsentState:
    status: ConsentStatus
    timestamp: int


def get_consent_status(storage: SessionStorage) -> ConsentState:
    stored = storage.get_item(CONSENT_STORAGE_KEY)
    if stored:
        try:
            data = json.loads(stored)
            return ConsentState(
                status=ConsentStatus(data["status"]),
                timestamp=int(data.get("timestamp", 0)),
            )
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding stored cookie consent: %s", exc)
    return ConsentState(status=ConsentStatus.PENDING, timestamp=0)


def set_consent_status(storage: SessionStorage, status: ConsentStatus | str) -> ConsentState:
    status = ConsentStatus(status)
    if status == ConsentStatus.PENDING:
        raise ValueError("consent can only be set to accepted or rejected")

    state = ConsentState(status=status, timestamp=int(time.time() * 1000))
    payload = asdict(state)
    payload["status"] = status.value
    storage.set_item(CONSENT_STORAGE_KEY, json.dumps(payload))
    return state


def has_consent(storage: SessionStorage) -> bool:
    return get_consent_status(storage).status == ConsentStatus.ACCEPTED


def should_show_consent_banner(storage: SessionStorage) -> bool:
    return get_consent_status(storage).status == ConsentStatus.PENDING
