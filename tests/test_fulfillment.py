"""
Tests for the Stripe webhook processor, access resend and magic links.
"""
from __future__ import annotations

import json

import httpx
import pytest
from sqlalchemy import select

from app.db import db_session
from app.errors import FulfillmentError, LeadRejected, RateLimited, WebhookSignatureError
from app.models import AppUser, EmailLog, Enrollment, MagicToken, Payment, WebhookEvent
from app.services.auth import create_magic_token, upsert_user, validate_magic_token
from app.services.email import EmailSender
from app.services.fulfillment import AccessResendService, WebhookProcessor

from conftest import SESSION_ID

SIGNATURE = "t=1,v1=valid"


def completed_event(event_id="evt_1", **session_overrides):
    checkout_session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "amount_total": 6700,
        "payment_intent": "pi_123",
        "payment_status": "paid",
        "customer_email": "buyer@example.com",
        "metadata": {"sessionId": SESSION_ID, "variant": "B"},
    }
    checkout_session.update(session_overrides)
    return json.dumps(
        {
            "id": event_id,
            "type": "checkout.session.completed",
            "data": {"object": checkout_session},
        }
    ).encode("utf-8")


def failing_sender():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="server down"))
    return EmailSender(provider="postmark", api_key="pm-key", client=httpx.Client(transport=transport))


@pytest.fixture
def processor(gateway):
    return WebhookProcessor(gateway=gateway, sender=EmailSender(provider="mock"))


class TestWebhook:
    def test_missing_signature(self, processor):
        with pytest.raises(WebhookSignatureError):
            processor.handle(completed_event(), None)

    def test_bad_signature(self, processor):
        with pytest.raises(WebhookSignatureError):
            processor.handle(completed_event(), "t=1,v1=forged")

    def test_checkout_completed_fulfills(self, processor, stored_lead):
        stored_lead()
        assert processor.handle(completed_event(), SIGNATURE) == "processed"

        with db_session() as session:
            payment = session.get(Payment, "pi_123")
            assert payment.amount_cents == 6700
            assert payment.email == "maria@example.com"

            user = session.scalars(select(AppUser)).one()
            assert user.email == "maria@example.com"
            assert user.nome == "Maria Silva"

            enrollment = session.scalars(select(Enrollment)).one()
            assert enrollment.product_code == "desafio_7_dias"
            assert enrollment.origin_session_id == SESSION_ID

            assert session.scalars(select(MagicToken)).one().used is False

            log = session.scalars(select(EmailLog)).one()
            assert log.status == "sent"
            assert log.template == "access_email"
            assert log.provider == "mock"

            event = session.get(WebhookEvent, "evt_1")
            assert event.processed_at is not None
            assert event.error is None

    def test_duplicate_delivery(self, processor, stored_lead):
        stored_lead()
        processor.handle(completed_event(), SIGNATURE)

        assert processor.handle(completed_event(), SIGNATURE) == "duplicate"
        with db_session() as session:
            assert len(session.scalars(select(EmailLog)).all()) == 1

    def test_falls_back_to_stripe_email(self, processor):
        processor.handle(completed_event(), SIGNATURE)

        with db_session() as session:
            user = session.scalars(select(AppUser)).one()
            assert user.email == "buyer@example.com"
            assert user.nome == "Cliente"

    def test_email_failure_marks_event(self, gateway, stored_lead):
        stored_lead()
        processor = WebhookProcessor(gateway=gateway, sender=failing_sender())

        with pytest.raises(FulfillmentError):
            processor.handle(completed_event(), SIGNATURE)

        with db_session() as session:
            assert session.get(WebhookEvent, "evt_1").error == "Processing failed"
            assert session.scalars(select(EmailLog)).one().status == "failed"

    def test_missing_session_metadata(self, processor):
        with pytest.raises(FulfillmentError):
            processor.handle(completed_event(metadata={}), SIGNATURE)

    def test_other_events_acknowledged(self, processor):
        payload = json.dumps({"id": "evt_2", "type": "customer.created", "data": {"object": {}}}).encode()
        assert processor.handle(payload, SIGNATURE) == "processed"


class TestResend:
    @pytest.fixture
    def resend(self, gateway):
        gateway.sessions["cs_test_paid"] = {
            "id": "cs_test_paid",
            "payment_status": "paid",
            "customer_email": "buyer@example.com",
            "metadata": {"sessionId": SESSION_ID, "leadEmail": "lead@example.com", "leadNome": "Lia Souza"},
        }
        gateway.sessions["cs_test_open"] = {
            "id": "cs_test_open",
            "payment_status": "unpaid",
            "metadata": {"sessionId": SESSION_ID},
        }
        return AccessResendService(gateway=gateway, sender=EmailSender(provider="mock"))

    def test_rejects_malformed_id(self, resend):
        with pytest.raises(LeadRejected):
            resend.resend({"checkoutSessionId": "pi_123"})

    def test_requires_payment(self, resend):
        with pytest.raises(LeadRejected) as exc_info:
            resend.resend({"checkoutSessionId": "cs_test_open"})
        assert exc_info.value.message == "Payment not completed"

    def test_sends_new_link_using_metadata(self, resend):
        resend.resend({"checkoutSessionId": "cs_test_paid"})

        with db_session() as session:
            log = session.scalars(select(EmailLog)).one()
            assert log.to_email == "lead@example.com"
            assert session.scalars(select(AppUser)).one().nome == "Lia Souza"

    def test_rate_limited_after_three(self, resend):
        for _ in range(3):
            resend.resend({"checkoutSessionId": "cs_test_paid"})

        with pytest.raises(RateLimited):
            resend.resend({"checkoutSessionId": "cs_test_paid"})


class TestMagicLinks:
    def _issue(self, ttl_hours=None):
        with db_session() as session:
            user = upsert_user(session, "ana@example.com", "Ana")
            return create_magic_token(session, user.id, user.email, ttl_hours=ttl_hours)

    def test_single_use(self):
        link = self._issue()

        first = validate_magic_token(link.token)
        second = validate_magic_token(link.token)

        assert first.valid is True
        assert first.email == "ana@example.com"
        assert second.error == "Token already used"

    def test_only_hash_is_stored(self):
        link = self._issue()

        with db_session() as session:
            record = session.scalars(select(MagicToken)).one()
            assert record.token_hash != link.token
            assert len(record.token_hash) == 64

        assert link.url == f"http://funnel.test/auth/magic?token={link.token}"

    def test_unknown_token(self):
        assert validate_magic_token("deadbeef").error == "Token not found"

    def test_expired_token(self):
        link = self._issue(ttl_hours=-1)
        assert validate_magic_token(link.token).error == "Token expired"
