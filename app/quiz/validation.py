# app/quiz/validation.py
"""
Step completeness rules.

This is the single source of truth for "may the user leave this step
forward?". Both the pure QuizEngine and the stateful QuizStore call
`validate_step`, so the navigation decision and the UI's "Continue"
affordance cannot disagree.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from app.quiz.state import QuizState
from app.quiz.steps import Ansiedade, PRESENTATION_ONLY_STEPS


EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_NAME_LENGTH = 2

MSG_SELECT_OPTION = "Por favor, selecione uma opção"
MSG_SELECT_AGE = "Por favor, selecione sua faixa etária"
MSG_SELECT_HOURS = "Por favor, selecione quantas horas você dorme"
MSG_MIN_SELECTIONS = "Por favor, selecione pelo menos uma opção"
MSG_NAME = "Nome deve ter pelo menos 2 caracteres"
MSG_EMAIL = "Por favor, insira um email válido"
MSG_CONSENT = "É necessário concordar com o tratamento de dados para continuar"


@dataclass(frozen=True)
class StepValidation:
    is_valid: bool
    error_message: Optional[str] = None


_VALID = StepValidation(is_valid=True)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_REGEX.match(email) is not None


def is_valid_name(nome: Optional[str]) -> bool:
    return bool(nome) and len(nome.strip()) >= MIN_NAME_LENGTH


def should_skip_step(state: QuizState, step: int) -> bool:
    """
    True when the current flags/answers route every forward path around
    `step`, which makes its answer moot.

      - 5, 7, 8: skipped on the "no problems" fast path
      - 9: skipped on the fast path, or when anxiety is "never"

    Steps 10 and 11 are on every path and are never skipped.
    """
    if step in (5, 7, 8):
        return state.flags.branch_no_problems
    if step == 9:
        return state.flags.branch_no_problems or state.ansiedade == Ansiedade.NUNCA.value
    return False


def _required(value, message: str) -> StepValidation:
    return _VALID if value else StepValidation(False, message)


def validate_step(state: QuizState, step: int) -> StepValidation:
    """
    Check whether `state` holds everything `step` asks for.

    Never raises: unknown step numbers are treated as valid so a content
    misconfiguration cannot trap the user.
    """
    if step in PRESENTATION_ONLY_STEPS:
        return _VALID

    if step == 2:
        return _required(state.idade, MSG_SELECT_AGE)

    if step == 4:
        return _required(state.diagnostico, MSG_SELECT_OPTION)

    if step == 5:
        if should_skip_step(state, 5):
            return _VALID
        return _required(state.horas, MSG_SELECT_HOURS)

    if step == 6:
        # Fixed priority: name, then e-mail, then consent.
        if not is_valid_name(state.nome):
            return StepValidation(False, MSG_NAME)
        if not is_valid_email(state.email):
            return StepValidation(False, MSG_EMAIL)
        if state.consent is not True:
            return StepValidation(False, MSG_CONSENT)
        return _VALID

    if step in (7, 8):
        if should_skip_step(state, step):
            return _VALID
        value = state.remedios if step == 7 else state.ansiedade
        return _required(value, MSG_SELECT_OPTION)

    if step == 9:
        if should_skip_step(state, 9):
            return _VALID
        return _required(state.impactos, MSG_MIN_SELECTIONS)

    if step == 10:
        return _required(state.consequencias, MSG_MIN_SELECTIONS)

    if step == 11:
        return _required(state.desejos, MSG_MIN_SELECTIONS)

    if step == 13:
        return _required(state.conhecimento, MSG_SELECT_OPTION)

    if step == 14:
        return _required(state.direcionamento, MSG_SELECT_OPTION)

    if step == 16:
        return _required(state.micro, MSG_SELECT_OPTION)

    return _VALID
