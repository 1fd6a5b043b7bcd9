# app/errors.py
from __future__ import annotations

from typing import List, Optional


class FunnelError(Exception):
    """Base class for collaborator failures (lead, checkout, fulfillment, e-mail)."""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class LeadRejected(FunnelError):
    status_code = 400


class RateLimited(FunnelError):
    status_code = 429


class SessionNotFound(FunnelError):
    status_code = 404


class DuplicateRequest(FunnelError):
    status_code = 409


class CheckoutError(FunnelError):
    """Payment provider refused or could not be reached."""

    status_code = 502

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class WebhookSignatureError(FunnelError):
    status_code = 400


class FulfillmentError(FunnelError):
    status_code = 500


class EmailDeliveryError(FunnelError):
    status_code = 500


class StorageError(FunnelError):
    status_code = 500
