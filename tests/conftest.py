"""Test bootstrap.

Points the app at a throw-away SQLite file before anything under `app`
is imported, and rebuilds the schema for every test.
"""
from __future__ import annotations

import json
import os
import pathlib

_ROOT = pathlib.Path(__file__).resolve().parents[1]
_DB_FILE = _ROOT / "tmp" / "test_funnel.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["EMAIL_PROVIDER"] = "mock"
os.environ["APP_ORIGIN"] = "http://funnel.test"
os.environ["STRIPE_PRICE_ID"] = "price_test_67"

import pytest  # noqa: E402

from app.db import Base, engine  # noqa: E402
import app.models  # noqa: E402,F401
from app.errors import SessionNotFound, WebhookSignatureError  # noqa: E402
from app.services.email.sender import email_rate_limiter  # noqa: E402
from app.services.lead_storage import LeadPayload, store_lead  # noqa: E402

SESSION_ID = "3f2b8c1e-4d5a-4b6c-8d7e-9f0a1b2c3d4e"


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    email_rate_limiter().reset()
    yield


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeGateway:
    """Stand-in for StripeGateway; never touches the network."""

    def __init__(self):
        self.created = []
        self.sessions = {}
        self.fail_with = None

    def create_checkout_session(self, params, idempotency_key):
        if self.fail_with is not None:
            raise self.fail_with
        self.created.append((params, idempotency_key))
        cs_id = f"cs_test_{len(self.created)}"
        return {"id": cs_id, "url": f"https://checkout.stripe.test/{cs_id}"}

    def retrieve_checkout_session(self, checkout_session_id):
        if checkout_session_id not in self.sessions:
            raise SessionNotFound("Session not found")
        return self.sessions[checkout_session_id]

    def construct_event(self, payload, signature):
        if signature != "t=1,v1=valid":
            raise WebhookSignatureError("Invalid signature")
        return json.loads(payload)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def stored_lead():
    def _store(session_id: str = SESSION_ID, **overrides):
        payload = LeadPayload(
            session_id=session_id,
            nome=overrides.pop("nome", "Maria Silva"),
            email=overrides.pop("email", "maria@example.com"),
            consent=overrides.pop("consent", True),
            completed_at=overrides.pop("completed_at", 1_700_000_060_000),
            started_at=overrides.pop("started_at", 1_700_000_000_000),
            answers=overrides.pop("answers", {"idade": "29-38"}),
            flags=overrides.pop("flags", {}),
            meta=overrides.pop("meta", {"variant": "A", "source": "quiz"}),
        )
        return store_lead(payload)

    return _store
