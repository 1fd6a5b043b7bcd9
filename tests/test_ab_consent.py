"""
Tests for A/B variant assignment and cookie consent.
"""
from __future__ import annotations

import json

import pytest

from app.quiz import InMemorySessionStorage
from app.services.ab_flags import COPY, VARIANT_STORAGE_KEY, get_user_variant, get_variant
from app.services.consent import (
    CONSENT_STORAGE_KEY,
    ConsentStatus,
    get_consent_status,
    has_consent,
    set_consent_status,
    should_show_consent_banner,
)


class TestVariants:
    @pytest.mark.parametrize("seed,expected", [("a", "B"), ("b", "A"), ("ab", "B"), ("", "A")])
    def test_parity_of_hash(self, seed, expected):
        # "a" hashes to 97 (odd), "b" to 98 (even), "ab" to 3105 (odd)
        assert get_variant(seed) == expected

    def test_deterministic(self):
        seed = "3f2b8c1e-4d5a-4b6c-8d7e-9f0a1b2c3d4e"
        assert get_variant(seed) == get_variant(seed)

    def test_sticky_assignment(self):
        storage = InMemorySessionStorage({VARIANT_STORAGE_KEY: "B"})
        assert get_user_variant(storage, seed="b") == "B"

    def test_assignment_is_stored(self):
        storage = InMemorySessionStorage()
        variant = get_user_variant(storage, seed="b")

        assert variant == "A"
        assert storage.get_item(VARIANT_STORAGE_KEY) == "A"

    def test_copy_has_both_variants(self):
        for entry in COPY.values():
            assert set(entry) == {"A", "B"}


class TestCookieConsent:
    def test_pending_by_default(self):
        storage = InMemorySessionStorage()

        assert get_consent_status(storage).status == ConsentStatus.PENDING
        assert should_show_consent_banner(storage) is True
        assert has_consent(storage) is False

    def test_accept(self):
        storage = InMemorySessionStorage()
        set_consent_status(storage, "accepted")

        assert has_consent(storage) is True
        assert should_show_consent_banner(storage) is False
        assert json.loads(storage.get_item(CONSENT_STORAGE_KEY))["status"] == "accepted"

    def test_reject_hides_banner(self):
        storage = InMemorySessionStorage()
        set_consent_status(storage, ConsentStatus.REJECTED)

        assert has_consent(storage) is False
        assert should_show_consent_banner(storage) is False

    def test_cannot_set_pending(self):
        with pytest.raises(ValueError):
            set_consent_status(InMemorySessionStorage(), "pending")

    def test_garbage_is_pending(self):
        storage = InMemorySessionStorage({CONSENT_STORAGE_KEY: "{oops"})
        assert get_consent_status(storage).status == ConsentStatus.PENDING
