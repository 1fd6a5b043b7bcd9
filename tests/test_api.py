"""
HTTP contract tests for the funnel API.
"""
from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.api import routes
from app.db import db_session
from app.main import app
from app.models import ProductEvent
from app.services import (
    AccessResendService,
    CheckoutService,
    LeadCaptureService,
    QuizSessionService,
    WebhookProcessor,
)
from app.services import fulfillment
from app.services.email import EmailSender
from app.services.lead_storage import get_lead_by_session_id

from conftest import SESSION_ID


@pytest.fixture
def quiz_service():
    return QuizSessionService(lead_capture=LeadCaptureService(min_completion_seconds=0))


@pytest.fixture
def client(quiz_service, gateway):
    lead_capture = LeadCaptureService(min_completion_seconds=0)
    sender = EmailSender(provider="mock")
    app.dependency_overrides[routes.get_quiz_service] = lambda: quiz_service
    app.dependency_overrides[routes.get_lead_capture] = lambda: lead_capture
    app.dependency_overrides[routes.get_checkout_service] = lambda: CheckoutService(gateway=gateway)
    app.dependency_overrides[routes.get_webhook_processor] = lambda: WebhookProcessor(gateway=gateway, sender=sender)
    app.dependency_overrides[routes.get_resend_service] = lambda: AccessResendService(gateway=gateway, sender=sender)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def answer(client, session_id, field, value):
    resp = client.post(f"/api/quiz/{session_id}/answer", json={"field": field, "value": value})
    assert resp.status_code == 200, resp.text
    return resp.json()


def advance(client, session_id):
    resp = client.post(f"/api/quiz/{session_id}/next")
    assert resp.status_code == 200, resp.text
    return resp.json()


def walk_fast_path_to_lead(client):
    view = client.post("/api/quiz/start", json={"variant": "B"}).json()
    session_id = view["state"]["sessionId"]

    advance(client, session_id)
    answer(client, session_id, "idade", "29-38")
    advance(client, session_id)
    advance(client, session_id)
    answer(client, session_id, "diagnostico", "sem_problemas")
    view = advance(client, session_id)
    assert view["state"]["step"] == 6
    return session_id


class TestQuizEndpoints:
    def test_start(self, client):
        resp = client.post("/api/quiz/start", json={})
        data = resp.json()

        assert resp.status_code == 200
        assert data["state"]["step"] == 1
        assert data["progress"] == 6
        assert data["step_type"] == "presentation"
        assert data["can_go_back"] is False
        assert data["content"]["title"].startswith("Durma naturalmente")
        assert data["variant"] in ("A", "B")

    def test_unknown_session(self, client):
        resp = client.get("/api/quiz/does-not-exist")
        assert resp.status_code == 404

    def test_validation_error_keeps_step(self, client):
        session_id = client.post("/api/quiz/start", json={}).json()["state"]["sessionId"]
        advance(client, session_id)
        view = advance(client, session_id)

        assert view["state"]["step"] == 2
        assert view["error"] == "Por favor, selecione sua faixa etária"

    def test_bad_answer(self, client):
        session_id = client.post("/api/quiz/start", json={}).json()["state"]["sessionId"]
        resp = client.post(f"/api/quiz/{session_id}/answer", json={"field": "idade", "value": "12"})

        assert resp.status_code == 400

    def test_lead_submitted_when_leaving_lead_step(self, client):
        session_id = walk_fast_path_to_lead(client)
        answer(client, session_id, "nome", "Maria Silva")
        answer(client, session_id, "email", "maria@example.com")
        answer(client, session_id, "consent", True)
        view = advance(client, session_id)

        assert view["state"]["step"] == 10
        lead = get_lead_by_session_id(session_id)
        assert lead.nome == "Maria Silva"
        assert lead.flags == {"branch_no_problems": True}
        assert lead.meta["variant"] == "B"

    def test_lead_failure_keeps_cursor(self, gateway):
        strict = QuizSessionService(lead_capture=LeadCaptureService(min_completion_seconds=600))
        app.dependency_overrides[routes.get_quiz_service] = lambda: strict
        try:
            with TestClient(app) as client:
                session_id = walk_fast_path_to_lead(client)
                answer(client, session_id, "nome", "Maria Silva")
                answer(client, session_id, "email", "maria@example.com")
                answer(client, session_id, "consent", True)

                resp = client.post(f"/api/quiz/{session_id}/next")
                view = client.get(f"/api/quiz/{session_id}").json()
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 400
        assert view["state"]["step"] == 6
        assert get_lead_by_session_id(session_id) is None

    def test_back_keeps_answers(self, client):
        session_id = walk_fast_path_to_lead(client)
        view = client.post(f"/api/quiz/{session_id}/back").json()

        assert view["state"]["step"] == 4
        assert view["state"]["diagnostico"] == "sem_problemas"
        assert view["state"]["flags"] == {"branch_no_problems": True}

    def test_reset_issues_new_session(self, client):
        session_id = walk_fast_path_to_lead(client)
        view = client.post(f"/api/quiz/{session_id}/reset").json()

        assert view["state"]["sessionId"] != session_id
        assert view["state"]["step"] == 1
        assert client.get(f"/api/quiz/{session_id}").status_code == 404

    def test_events_reach_product_events(self, client):
        walk_fast_path_to_lead(client)

        with db_session() as session:
            names = {e.event for e in session.scalars(select(ProductEvent))}
        assert {"quiz_start", "quiz_step", "quiz_answer", "quiz_branch_taken"} <= names


class TestLeadEndpoint:
    def body(self, **overrides):
        body = {
            "sessionId": SESSION_ID,
            "nome": "Maria Silva",
            "email": "maria@example.com",
            "consent": True,
            "startedAt": 1_700_000_000_000,
            "completedAt": 1_700_000_060_000,
        }
        body.update(overrides)
        return body

    def test_stores(self, client):
        resp = client.post("/api/lead", json=self.body())

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "stored": True}

    def test_honeypot(self, client):
        resp = client.post("/api/lead", json=self.body(website="spam"))

        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "Invalid request"

    def test_validation_details(self, client):
        resp = client.post("/api/lead", json=self.body(consent=False, completedAt="soon"))

        assert resp.status_code == 400
        assert resp.json()["detail"]["details"] == ["consent must be true", "completedAt is required"]

    def test_rate_limit(self, client):
        client.post("/api/lead", json=self.body())
        assert client.post("/api/lead", json=self.body()).status_code == 429


class TestCheckoutAndWebhook:
    def test_checkout_flow(self, client, stored_lead):
        stored_lead()
        resp = client.post("/api/checkout/create", json={"sessionId": SESSION_ID, "variant": "A"})
        assert resp.status_code == 200
        assert resp.json()["url"].startswith("https://checkout.stripe.test/")

        again = client.post("/api/checkout/create", json={"sessionId": SESSION_ID, "variant": "A"})
        assert again.status_code == 409

    def test_checkout_unknown_lead(self, client):
        resp = client.post("/api/checkout/create", json={"sessionId": SESSION_ID, "variant": "A"})
        assert resp.status_code == 404

    def test_webhook_requires_signature(self, client):
        resp = client.post("/api/stripe/webhook", content=b"{}")
        assert resp.status_code == 400

    def test_webhook_then_magic_login(self, client, stored_lead, monkeypatch):
        stored_lead()
        issued = {}

        original = fulfillment.create_magic_token

        def capture(*args, **kwargs):
            link = original(*args, **kwargs)
            issued["token"] = link.token
            return link

        monkeypatch.setattr(fulfillment, "create_magic_token", capture)

        event = {
            "id": "evt_api_1",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_9",
                    "amount_total": 6700,
                    "payment_intent": "pi_9",
                    "metadata": {"sessionId": SESSION_ID, "variant": "A"},
                }
            },
        }
        resp = client.post(
            "/api/stripe/webhook",
            content=json.dumps(event).encode(),
            headers={"stripe-signature": "t=1,v1=valid"},
        )
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "processed"

        login = client.get("/api/auth/magic", params={"token": issued["token"]})
        assert login.status_code == 200
        assert login.json()["email"] == "maria@example.com"

        reuse = client.get("/api/auth/magic", params={"token": issued["token"]})
        assert reuse.status_code == 401
        assert reuse.json()["detail"]["error"] == "Token already used"

    def test_resend_unknown_session(self, client):
        resp = client.post("/api/access/resend", json={"checkoutSessionId": "cs_missing"})
        assert resp.status_code == 404
