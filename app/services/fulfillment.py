# app/services/fulfillment.py
"""
Post-payment side of the funnel: the Stripe webhook and the "resend my
access" endpoint both end in the same place, a fresh magic link e-mailed
to the buyer.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.db import db_session
from app.errors import (
    EmailDeliveryError,
    FulfillmentError,
    LeadRejected,
    RateLimited,
    SessionNotFound,
    WebhookSignatureError,
)
from app.logging_setup import mask_email
from app.models import Payment, WebhookEvent
from app.services.auth import create_enrollment, create_magic_token, upsert_user
from app.services.checkout import PaymentGateway, StripeGateway
from app.services.email import EmailMessage, EmailSender, access_email, check_email_rate_limit
from app.services.lead_storage import check_idempotency, get_lead_by_session_id, mark_processed

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Cliente"
ACCESS_TEMPLATE = "access_email"


@dataclass
class Recipient:
    email: str
    nome: str


def resolve_recipient(checkout_session: Dict[str, Any]) -> Optional[Recipient]:
    """
    Who gets the access e-mail: the stored lead first, then the metadata
    copied at checkout time, then whatever Stripe collected.
    """
    metadata = checkout_session.get("metadata") or {}
    session_id = metadata.get("sessionId")
    lead = get_lead_by_session_id(session_id) if session_id else None

    email = (lead.email if lead else None) or metadata.get("leadEmail") or checkout_session.get("customer_email")
    if not email:
        return None
    nome = (lead.nome if lead else None) or metadata.get("leadNome") or DEFAULT_CUSTOMER_NAME
    return Recipient(email=email, nome=nome)


class WebhookProcessor:
    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        sender: Optional[EmailSender] = None,
    ):
        self.gateway = gateway or StripeGateway()
        self.sender = sender or EmailSender()

    def handle(self, payload: bytes, signature: Optional[str]) -> str:
        """
        Verify, de-duplicate, record and dispatch one webhook delivery.

        Returns:
          - "processed" or "duplicate"

        Raises:
          - WebhookSignatureError when the signature is missing or wrong
          - FulfillmentError when the event was recorded but handling failed
        """
        if not signature:
            raise WebhookSignatureError("Missing signature")

        event = self.gateway.construct_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type", "")
        if not event_id:
            raise WebhookSignatureError("Malformed event")
        logger.info("Webhook received type=%s id=%s", event_type, event_id)

        if not check_idempotency(event_id):
            logger.info("Webhook already processed: %s", event_id)
            return "duplicate"

        self._record_event(event_id, event_type, event.get("data") or {})

        obj = (event.get("data") or {}).get("object") or {}
        try:
            if event_type == "checkout.session.completed":
                self.fulfill(obj)
            elif event_type == "payment_intent.succeeded":
                logger.info("Payment intent succeeded: %s", obj.get("id"))
            else:
                logger.info("Unhandled webhook event: %s", event_type)
        except FulfillmentError as exc:
            logger.error("Failed to process webhook %s (%s): %s", event_id, event_type, exc)
            self._mark_event(event_id, error="Processing failed")
            raise

        self._mark_event(event_id)
        mark_processed(event_id)
        return "processed"

    def fulfill(self, checkout_session: Dict[str, Any]) -> None:
        settings = get_settings()
        stripe_session_id = checkout_session.get("id")
        metadata = checkout_session.get("metadata") or {}
        session_id = metadata.get("sessionId")
        variant = metadata.get("variant")

        if not session_id:
            raise FulfillmentError(f"No sessionId in metadata: {stripe_session_id}")

        recipient = resolve_recipient(checkout_session)
        if recipient is None:
            raise FulfillmentError(f"No email found for session: {session_id}")

        logger.info(
            "Fulfilling session=%s email=%s nome=%s",
            session_id,
            mask_email(recipient.email),
            recipient.nome.split(" ")[0],
        )

        payment_intent = checkout_session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        payment_id = payment_intent or stripe_session_id
        amount = checkout_session.get("amount_total") or settings.offer_amount_cents

        try:
            with db_session() as session:
                if session.get(Payment, payment_id) is None:
                    session.add(
                        Payment(
                            payment_id=payment_id,
                            stripe_session_id=stripe_session_id,
                            session_id=session_id,
                            status="succeeded",
                            amount_cents=amount,
                            currency=settings.offer_currency,
                            email=recipient.email,
                        )
                    )
                user = upsert_user(session, recipient.email, recipient.nome)
                create_enrollment(
                    session,
                    user.id,
                    settings.product_code,
                    origin_session_id=session_id,
                    payment_id=payment_id,
                )
                link = create_magic_token(session, user.id, recipient.email)
                user_id = user.id
        except SQLAlchemyError as exc:
            raise FulfillmentError(f"Failed to record purchase for session {session_id}") from exc

        template = access_email(recipient.nome, link.url)
        result = self.sender.send(
            EmailMessage(
                to=recipient.email,
                template=template,
                template_name=ACCESS_TEMPLATE,
                user_id=user_id,
                meta={
                    "sessionId": session_id,
                    "stripeSessionId": stripe_session_id,
                    "variant": variant,
                    "paymentId": payment_id,
                },
            )
        )
        if not result.success:
            raise FulfillmentError(f"Failed to send access email: {result.error}")

        logger.info(
            "Fulfillment completed session=%s user=%s message_id=%s payment=%s",
            session_id,
            user_id,
            result.message_id,
            payment_id,
        )
        logger.info(
            "purchase_succeeded session=%s amount=%s currency=%s variant=%s timestamp=%d",
            session_id,
            amount,
            settings.offer_currency,
            variant,
            int(time.time() * 1000),
        )

    # ------------------------------------------------------------------
    # webhook_events
    # ------------------------------------------------------------------

    def _record_event(self, event_id: str, event_type: str, data: Dict[str, Any]) -> None:
        try:
            with db_session() as session:
                record = session.get(WebhookEvent, event_id)
                if record is None:
                    session.add(WebhookEvent(event_id=event_id, event_type=event_type, payload=data))
                else:
                    record.payload = data
                    record.error = None
        except SQLAlchemyError as exc:
            raise FulfillmentError("Event storage failed") from exc

    def _mark_event(self, event_id: str, error: Optional[str] = None) -> None:
        with db_session() as session:
            record = session.get(WebhookEvent, event_id)
            if record is not None:
                record.processed_at = datetime.now(timezone.utc)
                record.error = error


class AccessResendService:
    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        sender: Optional[EmailSender] = None,
    ):
        self.gateway = gateway or StripeGateway()
        self.sender = sender or EmailSender()

    def resend(self, body: Dict[str, Any]) -> None:
        checkout_session_id = body.get("checkoutSessionId")
        if not checkout_session_id or not isinstance(checkout_session_id, str):
            raise LeadRejected("checkoutSessionId is required")
        if not checkout_session_id.startswith("cs_"):
            raise LeadRejected("Invalid checkout session ID format")

        checkout_session = self.gateway.retrieve_checkout_session(checkout_session_id)
        if checkout_session.get("payment_status") != "paid":
            raise LeadRejected("Payment not completed")

        session_id = (checkout_session.get("metadata") or {}).get("sessionId")
        if not session_id:
            raise SessionNotFound("Original session not found")

        recipient = resolve_recipient(checkout_session)
        if recipient is None:
            raise SessionNotFound("Email not found")

        if not check_email_rate_limit(recipient.email):
            raise RateLimited("Too many resend attempts. Please try again later.")

        logger.info(
            "Resending access session=%s email=%s checkout=%s",
            session_id,
            mask_email(recipient.email),
            checkout_session_id,
        )

        with db_session() as session:
            user = upsert_user(session, recipient.email, recipient.nome)
            link = create_magic_token(session, user.id, recipient.email)
            user_id = user.id

        result = self.sender.send(
            EmailMessage(
                to=recipient.email,
                template=access_email(recipient.nome, link.url),
                template_name=ACCESS_TEMPLATE,
                user_id=user_id,
                meta={"sessionId": session_id, "stripeSessionId": checkout_session_id, "resend": True},
            )
        )
        if not result.success:
            raise EmailDeliveryError("Failed to send email")

        logger.info("Access resent session=%s message_id=%s", session_id, result.message_id)
