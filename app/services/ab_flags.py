# app/services/ab_flags.py
from __future__ import annotations

import random
import time
from typing import Dict, Optional

from app.quiz.store import SessionStorage

VARIANTS = ("A", "B")
VARIANT_STORAGE_KEY = "ab_variant"


def _js_string_hash(seed: str) -> int:
    """The classic `hash = (hash << 5) - hash + code` 32-bit string hash."""
    h = 0
    for ch in seed:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return h


def get_variant(seed: str) -> str:
    """Deterministic 50/50 split: even hash -> A, odd -> B."""
    return "A" if abs(_js_string_hash(seed)) % 2 == 0 else "B"


def get_stored_variant(storage: SessionStorage) -> Optional[str]:
    stored = storage.get_item(VARIANT_STORAGE_KEY)
    return stored if stored in VARIANTS else None


def get_user_variant(storage: SessionStorage, seed: Optional[str] = None) -> str:
    """Sticky variant: reuse the stored one, otherwise assign and store."""
    stored = get_stored_variant(storage)
    if stored:
        return stored

    if seed is None:
        seed = f"server-{random.random()}{int(time.time() * 1000)}"
    variant = get_variant(seed)
    storage.set_item(VARIANT_STORAGE_KEY, variant)
    return variant


COPY: Dict[str, Dict[str, str]] = {
    "heroH1": {
        "A": "Durma melhor em apenas 7 dias.",
        "B": "Durma naturalmente em 7 dias, sem melatonina.",
    },
    "heroCTA": {
        "A": "Começar teste",
        "B": "Fazer teste de 1 minuto",
    },
}
