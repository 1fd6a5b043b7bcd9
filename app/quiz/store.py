# app/quiz/store.py
from __future__ import annotations

import json
import logging
from dataclasses import fields
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from app.quiz.state import (
    QuizState,
    derive_flags,
    generate_session_id,
    now_ms,
    ordered_unique,
)
from app.quiz.steps import (
    FIELD_CHOICES,
    FIRST_STEP,
    OFFER_STEP,
    TOTAL_STEPS,
    AnswerField,
)
from app.quiz.validation import should_skip_step, validate_step

logger = logging.getLogger(__name__)

STORAGE_KEY = "dormir_quiz_state"

_STATE_FIELDS = frozenset(f.name for f in fields(QuizState))

Listener = Callable[[QuizState], None]


class SessionStorage(Protocol):
    """Tab-scoped key/value storage (the browser's sessionStorage shape)."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class InMemorySessionStorage:
    """One tab's storage. Each quiz session gets its own instance."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def _text(answer_field: AnswerField, value: Any) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{answer_field.value} must be text")
    return value


def _check_step(step: Any) -> None:
    if isinstance(step, bool) or not isinstance(step, int) or not FIRST_STEP <= step <= TOTAL_STEPS:
        raise ValueError(f"step must be an integer between {FIRST_STEP} and {TOTAL_STEPS}, got {step!r}")


def create_initial_state(clock: Callable[[], int] = now_ms) -> QuizState:
    return QuizState(session_id=generate_session_id(), started_at=clock(), step=1)


class QuizStore:
    """
    Owns the live QuizState of one quiz session.

    All mutation goes through the setters below. Every mutation is
    persisted to the tab storage and then announced to subscribers with a
    snapshot copy, so nobody outside the store ever holds the live object.

    Flags only grow: setters merge newly implied flags into the existing
    ones and nothing ever clears them short of `reset()`.
    """

    def __init__(
        self,
        storage: Optional[SessionStorage] = None,
        initial_state: Optional[QuizState] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._storage: SessionStorage = storage if storage is not None else InMemorySessionStorage()
        self._clock = clock
        self._listeners: List[Listener] = []

        if initial_state is not None:
            self._state = initial_state.copy()
        else:
            self._state = self._load_from_storage() or create_initial_state(clock)

        self._save_to_storage()

        # Explicit field -> setter dispatch; see set_answer().
        self._setters: Dict[AnswerField, Callable[[Any], None]] = {
            AnswerField.NOME: self.set_nome,
            AnswerField.EMAIL: self.set_email,
            AnswerField.CONSENT: self.set_consent,
            AnswerField.IDADE: self.set_idade,
            AnswerField.DIAGNOSTICO: self.set_diagnostico,
            AnswerField.HORAS: self.set_horas,
            AnswerField.REMEDIOS: self.set_remedios,
            AnswerField.ANSIEDADE: self.set_ansiedade,
            AnswerField.IMPACTOS: self.set_impactos,
            AnswerField.CONSEQUENCIAS: self.set_consequencias,
            AnswerField.DESEJOS: self.set_desejos,
            AnswerField.CONHECIMENTO: self.set_conhecimento,
            AnswerField.DIRECIONAMENTO: self.set_direcionamento,
            AnswerField.MICRO: self.set_micro,
        }

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_state(self) -> QuizState:
        return self._state.copy()

    def get_current_step(self) -> int:
        return self._state.step

    def get_session_id(self) -> str:
        return self._state.session_id

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.get_state())
            except Exception:
                logger.exception("Error in quiz store listener")

    # ------------------------------------------------------------------
    # Core mutation
    # ------------------------------------------------------------------

    def set_state(self, **updates: Any) -> None:
        """
        Apply `updates` to the live state, persist, notify.

        Reaching the offer step stamps `completed_at` the first time only.
        Flags passed here are merged, never replaced.
        """
        unknown = [k for k in updates if k not in _STATE_FIELDS]
        if unknown:
            raise AttributeError(f"Unknown quiz state field(s): {', '.join(unknown)}")
        if "session_id" in updates or "started_at" in updates:
            raise AttributeError("session_id and started_at are immutable")
        if "step" in updates:
            _check_step(updates["step"])

        flags = updates.pop("flags", None)
        for key, value in updates.items():
            setattr(self._state, key, value)
        if flags is not None:
            self._state.flags = self._state.flags.merge(flags)

        if self._state.step == OFFER_STEP and self._state.completed_at is None:
            self._state.completed_at = self._clock()

        self._save_to_storage()
        self._notify()

    def set_step(self, step: int) -> None:
        self.set_state(step=step)

    def set_answer(self, answer_field: AnswerField | str, value: Any) -> None:
        """
        Write one answer by field name.

        Raises ValueError for an unknown field name or a value outside the
        field's closed set.
        """
        try:
            key = AnswerField(answer_field)
        except ValueError:
            raise ValueError(f"Unknown quiz field: {answer_field!r}") from None
        self._setters[key](value)

    # ------------------------------------------------------------------
    # Lead capture
    # ------------------------------------------------------------------

    def set_lead(self, nome: str, email: str, consent: bool) -> None:
        self.set_state(
            nome=_text(AnswerField.NOME, nome),
            email=_text(AnswerField.EMAIL, email),
            consent=bool(consent),
        )

    def set_nome(self, nome: str) -> None:
        self.set_state(nome=_text(AnswerField.NOME, nome))

    def set_email(self, email: str) -> None:
        self.set_state(email=_text(AnswerField.EMAIL, email))

    def set_consent(self, consent: bool) -> None:
        self.set_state(consent=bool(consent))

    # ------------------------------------------------------------------
    # Answer setters
    # ------------------------------------------------------------------

    def set_idade(self, idade: str) -> None:
        self._set_choice(AnswerField.IDADE, idade)

    def set_diagnostico(self, diagnostico: str) -> None:
        self._set_choice(AnswerField.DIAGNOSTICO, diagnostico)

    def set_horas(self, horas: str) -> None:
        self._set_choice(AnswerField.HORAS, horas)

    def set_remedios(self, remedios: str) -> None:
        self._set_choice(AnswerField.REMEDIOS, remedios)

    def set_ansiedade(self, ansiedade: str) -> None:
        self._set_choice(AnswerField.ANSIEDADE, ansiedade)

    def set_impactos(self, impactos: Iterable[str]) -> None:
        self._set_multi(AnswerField.IMPACTOS, impactos)

    def set_consequencias(self, consequencias: Iterable[str]) -> None:
        self._set_multi(AnswerField.CONSEQUENCIAS, consequencias)

    def set_desejos(self, desejos: Iterable[str]) -> None:
        self._set_multi(AnswerField.DESEJOS, desejos)

    def set_conhecimento(self, conhecimento: str) -> None:
        self._set_choice(AnswerField.CONHECIMENTO, conhecimento)

    def set_direcionamento(self, direcionamento: str) -> None:
        self._set_choice(AnswerField.DIRECIONAMENTO, direcionamento)

    def set_micro(self, micro: str) -> None:
        self._set_choice(AnswerField.MICRO, micro)

    def _set_choice(self, answer_field: AnswerField, value: Any) -> None:
        normalized = FIELD_CHOICES[answer_field](value).value
        self.set_state(
            **{answer_field.value: normalized},
            flags=derive_flags(answer_field, normalized),
        )

    def _set_multi(self, answer_field: AnswerField, values: Iterable[str]) -> None:
        if values is None or isinstance(values, str):
            raise ValueError(f"{answer_field.value} expects a list of options")
        choices = FIELD_CHOICES[answer_field]
        normalized = ordered_unique(choices(v).value for v in values)
        self.set_state(**{answer_field.value: normalized})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Throw the session away and start a new one (new session id)."""
        self._state = create_initial_state(self._clock)
        self._save_to_storage()
        self._notify()

    def clear_storage(self) -> None:
        self._storage.remove_item(STORAGE_KEY)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def is_step_valid(self, step: int) -> bool:
        return validate_step(self._state, step).is_valid

    def should_skip_step(self, step: int) -> bool:
        return should_skip_step(self._state, step)

    # ------------------------------------------------------------------
    # Storage persistence
    # ------------------------------------------------------------------

    def _save_to_storage(self) -> None:
        try:
            self._storage.set_item(STORAGE_KEY, json.dumps(self._state.to_dict()))
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save quiz state: %s", exc)

    def _load_from_storage(self) -> Optional[QuizState]:
        try:
            stored = self._storage.get_item(STORAGE_KEY)
        except OSError as exc:
            logger.warning("Failed to read quiz state: %s", exc)
            return None
        if not stored:
            return None

        try:
            return QuizState.from_dict(json.loads(stored))
        except (ValueError, TypeError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("Discarding stored quiz state: %s", exc)
            return None
