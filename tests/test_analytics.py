"""
Tests for funnel analytics and the product_events sink.
"""
from __future__ import annotations

from sqlalchemy import select

from app.db import db_session
from app.models import ProductEvent
from app.quiz import QuizStore
from app.quiz.analytics import QuizAnalytics, branch_path, offer_id, sanitize_detail
from app.services.telemetry import record_product_event


class Collector:
    def __init__(self):
        self.events = []

    def __call__(self, name, payload):
        self.events.append((name, payload))


class TestSanitize:
    def test_strips_pii_recursively(self):
        detail = {"email": "a@b.c", "step": 6, "nested": {"nome": "Ana", "ok": 1}, "items": [{"token": "x"}]}
        assert sanitize_detail(detail) == {"step": 6, "nested": {"ok": 1}, "items": [{}]}


class TestQuizAnalytics:
    def test_track_fans_out_to_sinks(self, clock):
        collector = Collector()
        analytics = QuizAnalytics("s-1", sinks=[collector], clock=clock)
        analytics.track("custom", {"step": 3, "email": "ana@example.com"})

        name, payload = collector.events[0]
        assert name == "custom"
        assert payload["sessionId"] == "s-1"
        assert payload["step"] == 3
        assert payload["timestamp"] == clock.now
        assert "email" not in payload

    def test_failing_sink_is_skipped(self, clock):
        collector = Collector()

        def broken(name, payload):
            raise RuntimeError("down")

        analytics = QuizAnalytics("s-1", sinks=[broken, collector], clock=clock)
        analytics.track("quiz_start")

        assert len(collector.events) == 1

    def test_lead_answers_never_leak(self, clock):
        collector = Collector()
        analytics = QuizAnalytics("s-1", sinks=[collector], clock=clock)
        analytics.track_answer_given(6, "email", "ana@example.com")
        analytics.track_answer_given(9, "impactos", ["memoria", "humor"])

        assert collector.events[0][1]["value"] is None
        assert collector.events[1][1]["value"] == 2

    def test_branch_flag_reported(self, clock):
        collector = Collector()
        analytics = QuizAnalytics("s-1", sinks=[collector], clock=clock)
        analytics.track_answer_given(4, "diagnostico", "sem_problemas")

        assert collector.events[0][1]["branchTriggered"] is True

    def test_step_view_counts_multi_selects(self, clock):
        store = QuizStore(clock=clock)
        store.set_lead("Ana", "ana@example.com", True)
        store.set_impactos(["memoria", "humor"])
        collector = Collector()
        analytics = QuizAnalytics(store.get_session_id(), sinks=[collector], clock=clock)

        clock.advance(2_000)
        analytics.track_step_view(9, "multiple_choice", store.get_state())
        payload = collector.events[0][1]

        assert payload["progress"] == 50
        assert payload["timeSpent"] == 2_000
        assert payload["answers"]["impactos"] == 2
        assert "nome" not in payload["answers"]

    def test_completed_event(self, clock):
        store = QuizStore(clock=clock)
        clock.advance(120_000)
        store.set_step(18)
        collector = Collector()
        QuizAnalytics(store.get_session_id(), sinks=[collector], clock=clock).track_quiz_completed(store.get_state())

        name, payload = collector.events[0]
        assert name == "quiz_complete"
        assert payload["totalTime"] == 120_000
        assert payload["branchPath"] == "default"


class TestProfileHelpers:
    def test_offer_id_and_branch_path(self):
        store = QuizStore()
        store.set_diagnostico("sem_problemas")
        store.set_ansiedade("sempre")
        state = store.get_state()

        assert offer_id(state) == "base_fast_anxiety"
        assert branch_path(state) == "no_problems,high_ansiedade"


class TestProductEventSink:
    def test_records_event(self):
        record_product_event("quiz_step", {"sessionId": "s-1", "step": 2, "email": "x@y.z"})

        with db_session() as session:
            event = session.scalars(select(ProductEvent)).one()
            assert event.event == "quiz_step"
            assert event.session_id == "s-1"
            assert "email" not in event.detail

    def test_ignores_payload_without_session(self):
        record_product_event("quiz_step", {"step": 2})

        with db_session() as session:
            assert session.scalars(select(ProductEvent)).first() is None
