"""
Tests for lead capture: honeypot, rate limit, validation, storage.
"""
from __future__ import annotations

import pytest

from app.errors import LeadRejected, RateLimited, StorageError
import app.services.lead_capture as lead_capture_module
from app.services.lead_capture import LeadCaptureService, validate_lead_body
from app.services.rate_limit import FixedWindowRateLimiter
from app.services.lead_storage import get_lead_by_email, get_lead_by_session_id

from conftest import SESSION_ID

STARTED = 1_700_000_000_000


def lead_body(**overrides):
    body = {
        "sessionId": SESSION_ID,
        "nome": "  Maria Silva ",
        "email": "maria@example.com",
        "consent": True,
        "startedAt": STARTED,
        "completedAt": STARTED + 45_000,
        "answers": {"idade": "29-38", "diagnostico": "demoro"},
        "flags": {},
        "variant": "B",
        "utmParams": {"utm_source": "instagram"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def service():
    return LeadCaptureService(min_completion_seconds=10)


class TestValidation:
    def test_valid_body(self):
        assert validate_lead_body(lead_body()) == []

    def test_collects_every_error(self):
        errors = validate_lead_body(
            lead_body(sessionId="abc", nome="A", email="nope", consent=False, completedAt=None)
        )

        assert errors == [
            "nome must be at least 2 characters",
            "valid email is required",
            "consent must be true",
            "completedAt is required",
            "sessionId must be valid UUID v4",
        ]

    def test_missing_session(self):
        assert "sessionId is required" in validate_lead_body(lead_body(sessionId=None))

    def test_uuid_v1_rejected(self):
        errors = validate_lead_body(lead_body(sessionId="3f2b8c1e-4d5a-1b6c-8d7e-9f0a1b2c3d4e"))
        assert errors == ["sessionId must be valid UUID v4"]


class TestSubmit:
    def test_stores_lead(self, service):
        stored = service.submit(lead_body())

        assert stored.nome == "Maria Silva"
        assert stored.meta["variant"] == "B"
        assert stored.meta["source"] == "quiz"
        assert "issuedAt" in stored.meta

        lead = get_lead_by_session_id(SESSION_ID)
        assert lead.email == "maria@example.com"
        assert lead.answers["diagnostico"] == "demoro"
        assert get_lead_by_email("maria@example.com").session_id == SESSION_ID

    @pytest.mark.parametrize("trap", ["website", "url", "link"])
    def test_honeypot_fields(self, service, trap):
        with pytest.raises(LeadRejected) as exc_info:
            service.submit(lead_body(**{trap: "http://spam.example"}))

        assert exc_info.value.message == "Invalid request"
        assert get_lead_by_session_id(SESSION_ID) is None

    def test_too_fast_is_a_bot(self, service):
        with pytest.raises(LeadRejected):
            service.submit(lead_body(completedAt=STARTED + 3_000))

    def test_rate_limited_per_session(self, service):
        service.submit(lead_body())
        with pytest.raises(RateLimited):
            service.submit(lead_body())

    def test_invalid_body_reports_details(self, service):
        with pytest.raises(LeadRejected) as exc_info:
            service.submit(lead_body(email="maria@"))

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == ["valid email is required"]

    def test_resubmission_updates_lead(self, stored_lead):
        stored_lead(nome="Old Name")
        LeadCaptureService(min_completion_seconds=0).submit(lead_body(nome="New Name"))

        assert get_lead_by_session_id(SESSION_ID).nome == "New Name"

    def test_invalid_body_does_not_use_up_the_window(self, service):
        with pytest.raises(LeadRejected):
            service.submit(lead_body(email="maria@"))

        stored = service.submit(lead_body())
        assert stored.email == "maria@example.com"

    def test_storage_failure_allows_retry(self, service, monkeypatch):
        real_store_lead = lead_capture_module.store_lead
        calls = []

        def flaky_store_lead(payload):
            calls.append(payload.session_id)
            if len(calls) == 1:
                raise StorageError("Failed to save lead")
            return real_store_lead(payload)

        monkeypatch.setattr(lead_capture_module, "store_lead", flaky_store_lead)

        with pytest.raises(StorageError):
            service.submit(lead_body())
        stored = service.submit(lead_body())

        assert stored.session_id == SESSION_ID
        assert len(calls) == 2
        with pytest.raises(RateLimited):
            service.submit(lead_body())


class TestRateLimiter:
    def test_release_gives_back_a_slot(self):
        now = [0.0]
        limiter = FixedWindowRateLimiter(1, 300, clock=lambda: now[0])

        assert limiter.allow("lead:a") is True
        assert limiter.allow("lead:a") is False
        limiter.release("lead:a")
        assert limiter.allow("lead:a") is True

    def test_release_of_unknown_key_is_harmless(self):
        limiter = FixedWindowRateLimiter(1, 300)
        limiter.release("lead:missing")
        assert limiter.allow("lead:missing") is True

    def test_window_reopens(self):
        now = [0.0]
        limiter = FixedWindowRateLimiter(1, 300, clock=lambda: now[0])
        limiter.allow("lead:a")

        now[0] = 301.0
        assert limiter.allow("lead:a") is True
