# app/quiz/state.py
from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, List, Optional

from app.quiz.steps import (
    AnswerField,
    FIELD_CHOICES,
    MULTI_SELECT_FIELDS,
    Ansiedade,
    Conhecimento,
    Diagnostico,
    MicroCompromisso,
    Remedios,
    TOTAL_STEPS,
    FIRST_STEP,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_session_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class QuizFlags:
    """
    Branching decisions inferred from answers.

    Flags are append-only for the lifetime of a session: once a flag is
    true it stays true, even if the answer that raised it is changed later.
    The only way to combine flags is `merge`, which ORs every field.
    """

    branch_no_problems: bool = False
    branch_heavy_remedios: bool = False
    branch_high_ansiedade: bool = False
    experienced: bool = False
    reassurance: bool = False

    def merge(self, other: "QuizFlags") -> "QuizFlags":
        return QuizFlags(
            **{
                f.name: getattr(self, f.name) or getattr(other, f.name)
                for f in fields(self)
            }
        )

    def active(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    def to_dict(self) -> Dict[str, bool]:
        # Only raised flags are persisted, matching the browser payload shape.
        return {name: True for name in self.active()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuizFlags":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in data.items() if k in known})


# answer field -> (values that trigger, flag raised)
FLAG_TRIGGERS: Dict[AnswerField, tuple[frozenset, str]] = {
    AnswerField.DIAGNOSTICO: (frozenset({Diagnostico.SEM_PROBLEMAS.value}), "branch_no_problems"),
    AnswerField.REMEDIOS: (frozenset({Remedios.FREQUENTE.value}), "branch_heavy_remedios"),
    AnswerField.ANSIEDADE: (
        frozenset({Ansiedade.SEMPRE.value, Ansiedade.MUITAS.value}),
        "branch_high_ansiedade",
    ),
    AnswerField.CONHECIMENTO: (frozenset({Conhecimento.TENTEI.value}), "experienced"),
    AnswerField.MICRO: (frozenset({MicroCompromisso.MEDO_FALHAR.value}), "reassurance"),
}


def derive_flags(answer_field: AnswerField, value: Any) -> QuizFlags:
    """
    Flags implied by a single answer. Returns an empty QuizFlags when the
    field has no trigger or the value does not match it.
    """
    trigger = FLAG_TRIGGERS.get(answer_field)
    if trigger is None:
        return QuizFlags()
    values, flag_name = trigger
    if value in values:
        return QuizFlags(**{flag_name: True})
    return QuizFlags()


# snake_case attribute -> persisted camelCase key
_PERSISTED_KEYS: Dict[str, str] = {
    "session_id": "sessionId",
    "started_at": "startedAt",
    "completed_at": "completedAt",
}

ANSWER_ATTRS = tuple(f.value for f in AnswerField)


@dataclass
class QuizState:
    """
    One quiz session.

    The store owns the live instance; everybody else works on copies
    obtained through `copy()`.
    """

    session_id: str = field(default_factory=generate_session_id)
    started_at: int = field(default_factory=now_ms)
    completed_at: Optional[int] = None
    step: int = FIRST_STEP

    # Lead capture
    nome: Optional[str] = None
    email: Optional[str] = None
    consent: Optional[bool] = None

    # Answers
    idade: Optional[str] = None
    diagnostico: Optional[str] = None
    horas: Optional[str] = None
    remedios: Optional[str] = None
    ansiedade: Optional[str] = None
    impactos: Optional[List[str]] = None
    consequencias: Optional[List[str]] = None
    desejos: Optional[List[str]] = None
    conhecimento: Optional[str] = None
    direcionamento: Optional[str] = None
    micro: Optional[str] = None

    flags: QuizFlags = field(default_factory=QuizFlags)

    # ------------------------------------------------------------------
    # Copies and views
    # ------------------------------------------------------------------

    def copy(self) -> "QuizState":
        return copy.deepcopy(self)

    def with_step(self, step: int) -> "QuizState":
        return replace(self.copy(), step=step)

    def answers(self) -> Dict[str, Any]:
        """Quiz answers only (no lead fields, no session metadata)."""
        lead = {AnswerField.NOME.value, AnswerField.EMAIL.value, AnswerField.CONSENT.value}
        return {
            name: copy.copy(getattr(self, name))
            for name in ANSWER_ATTRS
            if name not in lead and getattr(self, name) is not None
        }

    # ------------------------------------------------------------------
    # Serialization (tab storage shape)
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "step": self.step,
            "flags": self.flags.to_dict(),
        }
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        for name in ANSWER_ATTRS:
            value = getattr(self, name)
            if value is not None:
                data[name] = list(value) if isinstance(value, list) else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizState":
        """
        Rebuild a state from its stored shape.

        Raises ValueError when the payload lacks the structural minimum
        (sessionId, startedAt, numeric step in range).
        """
        if not isinstance(data, dict):
            raise ValueError("stored quiz state is not an object")

        session_id = data.get("sessionId")
        started_at = data.get("startedAt")
        step = data.get("step")

        if not isinstance(session_id, str) or not session_id:
            raise ValueError("stored quiz state has no sessionId")
        if not _is_number(started_at) or not started_at:
            raise ValueError("stored quiz state has no startedAt")
        if not _is_number(step) or int(step) != step:
            raise ValueError("stored quiz state has no numeric step")
        if not FIRST_STEP <= int(step) <= TOTAL_STEPS:
            raise ValueError(f"stored quiz step out of range: {step}")

        completed_at = data.get("completedAt")
        state = cls(
            session_id=session_id,
            started_at=int(started_at),
            completed_at=int(completed_at) if _is_number(completed_at) else None,
            step=int(step),
        )
        for answer_field in AnswerField:
            value = _restore_answer(answer_field, data.get(answer_field.value))
            if value is not None:
                setattr(state, answer_field.value, value)

        # Stored flags are kept, and anything the answers imply is re-derived.
        state.flags = QuizFlags.from_dict(data.get("flags")).merge(
            flags_from_answers(state)
        )
        return state


def _restore_answer(answer_field: AnswerField, value: Any) -> Any:
    """
    Normalise one stored answer the way the store setters would.
    Anything outside the field's type or closed set is dropped (None).
    """
    if value is None:
        return None
    if answer_field == AnswerField.CONSENT:
        return value if isinstance(value, bool) else None
    if answer_field in (AnswerField.NOME, AnswerField.EMAIL):
        return value if isinstance(value, str) else None

    choices = FIELD_CHOICES[answer_field]
    allowed = {c.value for c in choices}
    if answer_field in MULTI_SELECT_FIELDS:
        if not isinstance(value, list):
            return None
        return ordered_unique(v for v in value if isinstance(v, str) and v in allowed)
    return value if isinstance(value, str) and value in allowed else None


def flags_from_answers(state: QuizState) -> QuizFlags:
    flags = QuizFlags()
    for answer_field in FLAG_TRIGGERS:
        flags = flags.merge(derive_flags(answer_field, getattr(state, answer_field.value)))
    return flags


def ordered_unique(values: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping the order the user picked them in."""
    seen: Dict[str, None] = {}
    for v in values:
        seen.setdefault(v, None)
    return list(seen)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
