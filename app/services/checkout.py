# app/services/checkout.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import stripe

from app.config import get_settings
from app.errors import (
    CheckoutError,
    DuplicateRequest,
    LeadRejected,
    SessionNotFound,
    WebhookSignatureError,
)
from app.services.lead_capture import is_uuid_v4
from app.services.lead_storage import check_idempotency, get_lead_by_session_id, mark_processed

logger = logging.getLogger(__name__)

QUIZ_VERSION = "1.0"


class PaymentGateway(Protocol):
    """The slice of the Stripe API the funnel uses, as plain dicts."""

    def create_checkout_session(self, params: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]: ...

    def retrieve_checkout_session(self, checkout_session_id: str) -> Dict[str, Any]: ...

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]: ...


def _plain(obj: Any) -> Dict[str, Any]:
    # StripeObject's str() is its JSON form
    return json.loads(str(obj))


class StripeGateway:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    def _api_key(self) -> str:
        if not self.secret_key:
            raise CheckoutError("STRIPE_SECRET_KEY not configured", code="not_configured")
        return self.secret_key

    def create_checkout_session(self, params: Dict[str, Any], idempotency_key: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.create(
                api_key=self._api_key(),
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            raise CheckoutError("Payment provider error", code=exc.code) from exc
        return _plain(session)

    def retrieve_checkout_session(self, checkout_session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(checkout_session_id, api_key=self._api_key())
        except stripe.InvalidRequestError as exc:
            raise SessionNotFound("Session not found") from exc
        except stripe.StripeError as exc:
            raise CheckoutError("Payment provider error", code=exc.code) from exc
        return _plain(session)

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise WebhookSignatureError("STRIPE_WEBHOOK_SECRET not configured")
        body = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid signature") from exc
        return json.loads(body)


def validate_checkout_request(body: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    session_id = body.get("sessionId")
    if not session_id or not isinstance(session_id, str):
        errors.append("sessionId is required")
    if not body.get("variant") or not isinstance(body.get("variant"), str):
        errors.append("variant is required")
    if session_id and isinstance(session_id, str) and not is_uuid_v4(session_id):
        errors.append("sessionId must be valid UUID v4")
    return errors


class CheckoutService:
    """
    Turns a captured lead into a Stripe Checkout URL.

    The idempotency key `checkout:<sessionId>` is only marked after Stripe
    accepts the request, so a provider failure can be retried.
    """

    def __init__(self, gateway: Optional[PaymentGateway] = None):
        self.gateway = gateway or StripeGateway()

    def create(self, body: Dict[str, Any]) -> str:
        errors = validate_checkout_request(body)
        if errors:
            raise LeadRejected("Validation failed", details=errors)

        session_id: str = body["sessionId"]
        variant: str = body["variant"]

        idempotency_key = f"checkout:{session_id}"
        if not check_idempotency(idempotency_key):
            raise DuplicateRequest("Duplicate request")

        lead = get_lead_by_session_id(session_id)
        if lead is None:
            raise SessionNotFound("Session not found or invalid")
        if not lead.consent:
            raise LeadRejected("Consent required")

        settings = get_settings()
        params = {
            "mode": "payment",
            "line_items": [{"price": settings.stripe_price_id, "quantity": 1}],
            "customer_creation": "if_required",
            "customer_email": lead.email,
            "metadata": {
                "sessionId": session_id,
                "variant": variant,
                "source": "quiz",
                "quiz_version": QUIZ_VERSION,
                "leadEmail": lead.email,
                "leadNome": lead.nome,
            },
            "success_url": f"{settings.app_origin}/durma/sucesso?sid={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{settings.app_origin}/durma/quiz?cancel=1",
        }

        checkout = self.gateway.create_checkout_session(params, idempotency_key=f"sid:{session_id}")
        mark_processed(idempotency_key)

        logger.info(
            "Checkout session created session=%s stripe_session=%s variant=%s amount=%s currency=%s",
            session_id,
            checkout.get("id"),
            variant,
            settings.offer_amount_cents,
            settings.offer_currency,
        )
        return checkout["url"]
