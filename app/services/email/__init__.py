# app/services/email/__init__.py
from .sender import EmailMessage, EmailResult, EmailSender, check_email_rate_limit
from .templates import EmailTemplate, access_email

__all__ = [
    "EmailMessage",
    "EmailResult",
    "EmailSender",
    "EmailTemplate",
    "access_email",
    "check_email_rate_limit",
]
