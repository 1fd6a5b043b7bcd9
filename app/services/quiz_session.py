# app/services/quiz_session.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from app.config import get_settings
from app.errors import FunnelError, SessionNotFound
from app.quiz import InMemorySessionStorage, QuizEngine, QuizStore
from app.quiz.analytics import QuizAnalytics, Sink
from app.quiz.content import get_personalized_content
from app.quiz.state import now_ms
from app.quiz.steps import LEAD_STEP
from app.services.ab_flags import VARIANT_STORAGE_KEY, VARIANTS, get_user_variant
from app.services.lead_capture import LeadCaptureService
from app.services.telemetry import record_product_event

logger = logging.getLogger(__name__)


@dataclass
class QuizSession:
    """One visitor's quiz: their tab storage, store and event tracker."""

    store: QuizStore
    analytics: QuizAnalytics
    storage: InMemorySessionStorage
    variant: str
    utm_params: Dict[str, str] = field(default_factory=dict)
    lead_submitted: bool = False
    offer_viewed: bool = False
    error: Optional[str] = None
    last_seen: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def session_id(self) -> str:
        return self.store.get_session_id()


class QuizSessionService:
    """
    Service that coordinates:
      - one QuizStore per session id (in-process registry)
      - QuizEngine decisions applied to that store
      - lead submission when the visitor leaves the lead step
      - funnel analytics for every move

    Actions on one session are serialised by that session's lock. Sessions
    idle for longer than `session_ttl_ms` are dropped from the registry.
    """

    def __init__(
        self,
        lead_capture: Optional[LeadCaptureService] = None,
        sinks: Optional[List[Sink]] = None,
        clock: Callable[[], int] = now_ms,
        session_ttl_ms: Optional[int] = None,
    ):
        self.engine = QuizEngine()
        self.lead_capture = lead_capture or LeadCaptureService()
        self._sinks = list(sinks) if sinks is not None else [record_product_event]
        self._clock = clock
        self._sessions: Dict[str, QuizSession] = {}
        self._lock = threading.Lock()
        self.session_ttl_ms = (
            session_ttl_ms
            if session_ttl_ms is not None
            else get_settings().quiz_session_ttl_seconds * 1000
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def start_session(
        self,
        utm_params: Optional[Dict[str, str]] = None,
        variant: Optional[str] = None,
    ) -> QuizSession:
        self._evict_idle()

        storage = InMemorySessionStorage()
        store = QuizStore(storage=storage, clock=self._clock)
        session_id = store.get_session_id()

        if variant in VARIANTS:
            storage.set_item(VARIANT_STORAGE_KEY, variant)
        quiz = QuizSession(
            store=store,
            analytics=QuizAnalytics(session_id, sinks=self._sinks, clock=self._clock),
            storage=storage,
            variant=get_user_variant(storage, seed=session_id),
            utm_params=dict(utm_params or {}),
            last_seen=self._clock(),
        )
        with self._lock:
            self._sessions[session_id] = quiz

        state = store.get_state()
        quiz.analytics.track_quiz_start(state, quiz.utm_params)
        quiz.analytics.track_step_view(state.step, self._step_type(state.step), state)
        logger.info("Quiz session started session=%s variant=%s", session_id, quiz.variant)
        return quiz

    def get_session(self, session_id: str) -> QuizSession:
        quiz = self.find_session(session_id)
        if quiz is None:
            raise SessionNotFound("Quiz session not found. Start a new quiz.")
        return quiz

    def find_session(self, session_id: str) -> Optional[QuizSession]:
        self._evict_idle()
        with self._lock:
            quiz = self._sessions.get(session_id)
            if quiz is not None:
                quiz.last_seen = self._clock()
        return quiz

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict_idle(self) -> None:
        cutoff = self._clock() - self.session_ttl_ms
        with self._lock:
            idle = [sid for sid, quiz in self._sessions.items() if quiz.last_seen < cutoff]
            evicted = [self._sessions.pop(sid) for sid in idle]

        for quiz in evicted:
            logger.info("Quiz session expired session=%s", quiz.session_id)
            if not quiz.offer_viewed:
                quiz.analytics.track_quiz_abandoned(
                    quiz.store.get_current_step(), quiz.analytics.time_spent()
                )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def answer(self, session_id: str, answer_field: str, value: Any) -> QuizSession:
        """
        Record one answer. ValueError for an unknown field or an option
        outside the step's list; the state is untouched in that case.
        """
        quiz = self.get_session(session_id)
        with quiz.lock:
            quiz.store.set_answer(answer_field, value)
            quiz.error = None
            quiz.analytics.track_answer_given(quiz.store.get_current_step(), answer_field, value)
        return quiz

    def go_next(self, session_id: str) -> QuizSession:
        """
        Apply the engine's forward decision.

        Leaving the lead step submits the lead first; if that fails the
        FunnelError propagates and the cursor stays on the lead step.
        """
        quiz = self.get_session(session_id)
        with quiz.lock:
            self._advance(quiz)
        return quiz

    def go_back(self, session_id: str) -> QuizSession:
        quiz = self.get_session(session_id)
        with quiz.lock:
            state = quiz.store.get_state()
            result = self.engine.prev_step(state)

            quiz.error = None
            if result.can_proceed:
                quiz.store.set_step(result.target_step)
                quiz.analytics.track_back_navigation(state.step, result.target_step)
        return quiz

    def reset(self, session_id: str) -> QuizSession:
        """Start over with a new session id; the old id stops resolving."""
        with self._lock:
            quiz = self._sessions.pop(session_id, None)
        if quiz is None:
            raise SessionNotFound("Quiz session not found. Start a new quiz.")

        with quiz.lock:
            quiz.store.reset()
            new_id = quiz.store.get_session_id()
            quiz.analytics = QuizAnalytics(new_id, sinks=self._sinks, clock=self._clock)
            quiz.lead_submitted = False
            quiz.offer_viewed = False
            quiz.error = None
            quiz.last_seen = self._clock()
            with self._lock:
                self._sessions[new_id] = quiz

            quiz.analytics.track_quiz_start(quiz.store.get_state(), quiz.utm_params)
        return quiz

    def abandon(self, session_id: str) -> None:
        with self._lock:
            quiz = self._sessions.pop(session_id, None)
        if quiz is None:
            return
        with quiz.lock:
            quiz.analytics.track_quiz_abandoned(
                quiz.store.get_current_step(), quiz.analytics.time_spent()
            )

    def track_offer_click(self, session_id: str) -> None:
        quiz = self.find_session(session_id)
        if quiz is not None:
            quiz.analytics.track_offer_clicked(quiz.store.get_state())

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def view(self, quiz: QuizSession) -> Dict[str, Any]:
        state = quiz.store.get_state()
        step_type = self.engine.get_step_type(state.step)
        return {
            "state": state.to_dict(),
            "progress": self.engine.get_progress(state.step),
            "step_type": step_type.value if step_type else None,
            "content": get_personalized_content(state.step, state).to_dict(),
            "can_go_back": self.engine.can_go_back(state.step),
            "is_final_step": self.engine.is_final_step(state.step),
            "branch_info": self.engine.get_branch_info(state),
            "variant": quiz.variant,
            "error": quiz.error,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(self, quiz: QuizSession) -> None:
        state = quiz.store.get_state()
        result = self.engine.next_step(state)

        if not result.can_proceed:
            quiz.error = result.validation_error
            quiz.analytics.track_validation_error(state.step, result.validation_error)
            return

        if state.step == LEAD_STEP and not quiz.lead_submitted:
            try:
                self._submit_lead(quiz)
            except FunnelError as exc:
                quiz.error = exc.message
                raise

        target = result.target_step
        if target - state.step > 1:
            quiz.analytics.track_branch_taken(state.step, target, self.engine.get_branch_info(state))

        quiz.store.set_step(target)
        quiz.error = None

        state = quiz.store.get_state()
        quiz.analytics.track_step_view(target, self._step_type(target), state)

        if self.engine.is_final_step(target) and not quiz.offer_viewed:
            quiz.offer_viewed = True
            quiz.analytics.track_quiz_completed(state)
            quiz.analytics.track_offer_viewed(state)

    def _step_type(self, step: int) -> Optional[str]:
        step_type = self.engine.get_step_type(step)
        return step_type.value if step_type else None

    def _submit_lead(self, quiz: QuizSession) -> None:
        state = quiz.store.get_state()
        body = {
            "sessionId": state.session_id,
            "nome": state.nome,
            "email": state.email,
            "consent": state.consent,
            "startedAt": state.started_at,
            "completedAt": self._clock(),
            "answers": state.answers(),
            "flags": state.flags.to_dict(),
            "variant": quiz.variant,
            "source": "quiz",
            "utmParams": quiz.utm_params,
        }
        self.lead_capture.submit(body)
        quiz.lead_submitted = True
        quiz.analytics.track_lead_submitted(state, "quiz", quiz.utm_params)
