# app/quiz/analytics.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from app.quiz.state import QuizState, now_ms
from app.quiz.steps import AnswerField, LEAD_STEP, OFFER_STEP, TOTAL_STEPS

logger = logging.getLogger(__name__)

Sink = Callable[[str, Dict[str, Any]], None]

# Never forwarded to any sink.
PII_FIELDS = frozenset(
    {
        "email",
        "nome",
        "name",
        "firstName",
        "lastName",
        "phone",
        "address",
        "ip",
        "userAgent",
        "password",
        "token",
        "key",
        "secret",
    }
)

# Answers that flip the route or the copy when picked.
_BRANCH_TRIGGERS: Dict[str, str] = {
    AnswerField.DIAGNOSTICO.value: "sem_problemas",
    AnswerField.ANSIEDADE.value: "nunca",
    AnswerField.REMEDIOS.value: "frequente",
    AnswerField.MICRO.value: "medo_falhar",
}


def _answer_value(field: str, value: Any) -> Any:
    if field in PII_FIELDS or field == AnswerField.CONSENT.value:
        return None
    return len(value) if isinstance(value, list) else value


def sanitize_detail(detail: Any) -> Any:
    """Strip PII keys, recursively."""
    if isinstance(detail, dict):
        return {
            k: sanitize_detail(v) for k, v in detail.items() if k not in PII_FIELDS
        }
    if isinstance(detail, list):
        return [sanitize_detail(v) for v in detail]
    return detail


def sanitize_answers(state: QuizState) -> Dict[str, Any]:
    """Answers as analytics sees them: multi-selects reduced to counts."""
    return {
        "idade": state.idade,
        "diagnostico": state.diagnostico,
        "horas": state.horas,
        "remedios": state.remedios,
        "ansiedade": state.ansiedade,
        "impactos": len(state.impactos or []),
        "consequencias": len(state.consequencias or []),
        "desejos": len(state.desejos or []),
        "conhecimento": state.conhecimento,
        "direcionamento": state.direcionamento,
        "micro": state.micro,
        "flags": state.flags.to_dict(),
    }


class QuizAnalytics:
    """
    Per-session funnel event tracker.

    Every event is written as a structured log record and then handed to
    each registered sink (database, third-party forwarders...). A failing
    sink is logged and skipped.
    """

    def __init__(
        self,
        session_id: str,
        sinks: Optional[List[Sink]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.session_id = session_id
        self._sinks: List[Sink] = list(sinks or [])
        self._clock = clock
        self.start_time = clock()

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def track(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data = data or {}
        payload: Dict[str, Any] = {
            "sessionId": self.session_id,
            "step": data.get("step", 0),
            "timestamp": self._clock(),
        }
        payload.update(sanitize_detail(data))

        logger.info("quiz_event %s step=%s", event_name, payload["step"], extra={"quiz_event": payload})

        for sink in self._sinks:
            try:
                sink(event_name, payload)
            except Exception:
                logger.exception("Analytics sink failed for %s", event_name)
        return payload

    # ------------------------------------------------------------------
    # Funnel events
    # ------------------------------------------------------------------

    def track_quiz_start(self, state: QuizState, utm_params: Optional[Dict[str, str]] = None) -> None:
        self.track(
            "quiz_start",
            {"startedAt": state.started_at, "utmParams": utm_params or {}},
        )

    def track_step_view(self, step: int, step_type: Optional[str], state: QuizState) -> None:
        self.track(
            "quiz_step",
            {
                "step": step,
                "stepType": step_type,
                "timeSpent": self.time_spent(),
                "progress": round(step / TOTAL_STEPS * 100),
                "branchFlags": state.flags.to_dict(),
                "answers": sanitize_answers(state),
            },
        )

    def track_answer_given(self, step: int, field: str, value: Any) -> None:
        self.track(
            "quiz_answer",
            {
                "step": step,
                "field": field,
                "value": _answer_value(field, value),
                "timeToAnswer": self.time_spent(),
                "branchTriggered": _BRANCH_TRIGGERS.get(field) == value,
            },
        )

    def track_lead_submitted(self, state: QuizState, source: str, utm_params: Dict[str, str]) -> None:
        self.track(
            "quiz_lead_submitted",
            {
                "step": LEAD_STEP,
                "timeToCapture": self.time_spent(),
                "answers": sanitize_answers(state),
                "source": source,
                "utmParams": utm_params,
            },
        )

    def track_branch_taken(self, from_step: int, to_step: int, reason: str) -> None:
        self.track(
            "quiz_branch_taken",
            {
                "step": from_step,
                "fromStep": from_step,
                "toStep": to_step,
                "reason": reason,
                "skippedSteps": to_step - from_step - 1,
            },
        )

    def track_validation_error(self, step: int, error: Optional[str]) -> None:
        self.track(
            "quiz_validation_error",
            {"step": step, "error": error, "timeSpent": self.time_spent()},
        )

    def track_back_navigation(self, from_step: int, to_step: int) -> None:
        self.track(
            "quiz_back_navigation",
            {
                "step": from_step,
                "fromStep": from_step,
                "toStep": to_step,
                "stepsBack": from_step - to_step,
            },
        )

    def track_quiz_abandoned(self, step: int, time_spent: int) -> None:
        self.track(
            "quiz_abandoned",
            {
                "step": step,
                "completionPercent": round(step / TOTAL_STEPS * 100),
                "timeSpent": time_spent,
                "lastAction": self._clock(),
            },
        )

    def track_quiz_completed(self, state: QuizState) -> None:
        completed_at = state.completed_at or self._clock()
        self.track(
            "quiz_complete",
            {
                "step": OFFER_STEP,
                "completedAt": completed_at,
                "totalTime": completed_at - state.started_at,
                "totalSteps": TOTAL_STEPS,
                "branchPath": branch_path(state),
                "finalAnswers": sanitize_answers(state),
            },
        )

    def track_offer_viewed(self, state: QuizState) -> None:
        self.track(
            "offer_view",
            {
                "step": OFFER_STEP,
                "timeToReachOffer": self.time_spent(),
                "userProfile": user_profile(state),
                "personalization": personalization_flags(state),
            },
        )

    def track_offer_clicked(self, state: QuizState) -> None:
        self.track(
            "offer_click",
            {
                "step": OFFER_STEP,
                "timeFromView": self.time_spent(),
                "clickTimestamp": self._clock(),
                "userProfile": user_profile(state),
                "offerId": offer_id(state),
            },
        )

    def time_spent(self) -> int:
        return self._clock() - self.start_time


# ----------------------------------------------------------------------
# Profile helpers
# ----------------------------------------------------------------------


def branch_path(state: QuizState) -> str:
    names = [name.replace("branch_", "") for name in state.flags.active()]
    return ",".join(names) or "default"


def user_profile(state: QuizState) -> Dict[str, Optional[str]]:
    return {
        "ageGroup": state.idade,
        "sleepProblem": state.diagnostico,
        "anxietyLevel": state.ansiedade,
        "medicationUse": state.remedios,
        "sleepKnowledge": state.conhecimento,
        "primaryGoal": state.direcionamento,
        "commitment": state.micro,
    }


def personalization_flags(state: QuizState) -> Dict[str, bool]:
    flags = state.flags
    return {
        "showRemediosContent": flags.branch_heavy_remedios,
        "showAnxietyContent": flags.branch_high_ansiedade,
        "showReassurance": flags.reassurance,
        "isExperienced": flags.experienced,
        "fastTrack": flags.branch_no_problems,
    }


def offer_id(state: QuizState) -> str:
    flags = state.flags
    parts = ["base"]
    if flags.branch_no_problems:
        parts.append("fast")
    if flags.branch_heavy_remedios:
        parts.append("remedios")
    if flags.branch_high_ansiedade:
        parts.append("anxiety")
    if flags.reassurance:
        parts.append("reassurance")
    return "_".join(parts)
