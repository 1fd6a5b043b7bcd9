# app/services/__init__.py
from app.db import init_db

from .checkout import CheckoutService, PaymentGateway, StripeGateway
from .fulfillment import AccessResendService, WebhookProcessor
from .lead_capture import LeadCaptureService
from .quiz_session import QuizSession, QuizSessionService

__all__ = [
    "init_db",
    "AccessResendService",
    "CheckoutService",
    "LeadCaptureService",
    "PaymentGateway",
    "QuizSession",
    "QuizSessionService",
    "StripeGateway",
    "WebhookProcessor",
]
