# app/logging_setup.py
"""Central logging configuration.

One stdout handler on the root logger so every `logging.getLogger(__name__)`
in the app emits without per-module setup. Uvicorn's loggers share the
handler; calling `configure_logging` twice (reloaders) is a no-op.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig

from app.config import get_settings


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
            # stripe's client logs request bodies at DEBUG
            "stripe": {"level": "WARNING"},
        },
    }


def configure_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    dictConfig(_dict_config(get_settings().log_level.upper()))


def mask_email(email: str) -> str:
    """t***@example.com style masking for log lines."""
    user, sep, domain = email.partition("@")
    if not sep or len(user) <= 1:
        return email
    return f"{user[0]}{'*' * min(len(user) - 1, 3)}@{domain}"
