# app/quiz/engine.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from app.quiz.state import QuizState
from app.quiz.steps import (
    Ansiedade,
    Diagnostico,
    FIRST_STEP,
    LEAD_STEP,
    OFFER_STEP,
    TOTAL_STEPS,
    StepType,
    step_type_for,
)
from app.quiz.validation import StepValidation, validate_step

# Branch flow:
#
#   1 intro -> 2 idade -> 3 social proof -> 4 diagnostico
#   4 --sem_problemas--> 6 lead          (fast path, skips 5)
#   4 --otherwise------> 5 horas -> 6 lead
#   6 --no problems----> 10              (skips 7, 8, 9)
#   6 --otherwise------> 7 remedios -> 8 ansiedade
#   8 --nunca----------> 10              (skips 9)
#   8 --otherwise------> 9 impactos -> 10
#   10 -> 11 -> ... -> 17 loading -> 18 offer (terminal)


class Direction(str, Enum):
    NEXT = "next"
    PREV = "prev"


@dataclass(frozen=True)
class NavigationResult:
    target_step: int
    can_proceed: bool
    validation_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "targetStep": self.target_step,
            "canProceed": self.can_proceed,
        }
        if self.validation_error is not None:
            data["validationError"] = self.validation_error
        return data


class QuizEngine:
    """
    Pure navigation rules for the 18-step sleep quiz.

    Every method takes the state it needs and returns a value; nothing is
    mutated and nothing raises. Applying a decision (moving the cursor,
    persisting, notifying) is the QuizStore's job.
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def next_step(self, state: QuizState) -> NavigationResult:
        """
        Validate the current step, then resolve where "Continue" leads.

        Returns:
          - can_proceed=False, target_step=current, validation_error=...
            when the current step is incomplete
          - can_proceed=True and the forward target otherwise
        """
        current = state.step

        validation = self.validate_step(state, current)
        if not validation.is_valid:
            return NavigationResult(
                target_step=current,
                can_proceed=False,
                validation_error=validation.error_message,
            )

        return NavigationResult(target_step=self._forward_target(state), can_proceed=True)

    def prev_step(self, state: QuizState) -> NavigationResult:
        """
        Resolve where "Back" leads.

        The predecessor is re-derived from the current flags and answers,
        mirroring the forward branches; there is no history stack.
        """
        current = state.step
        if current <= FIRST_STEP:
            return NavigationResult(target_step=FIRST_STEP, can_proceed=False)

        target = self._backward_target(state)
        return NavigationResult(target_step=max(target, FIRST_STEP), can_proceed=True)

    def navigate_to_step(
        self,
        state: QuizState,
        target_step: int,
        direction: Direction = Direction.NEXT,
    ) -> NavigationResult:
        """
        Walk forward from `state.step` until `target_step` is reached or
        passed, validating every step on the way. A backward request is a
        single `prev_step`.
        """
        if Direction(direction) == Direction.PREV:
            return self.prev_step(state)

        walker = state.copy()
        while walker.step < target_step:
            result = self.next_step(walker)
            if not result.can_proceed:
                return result
            if result.target_step == walker.step:
                # terminal step, nothing further to walk
                break
            walker = walker.with_step(result.target_step)

        return NavigationResult(target_step=walker.step, can_proceed=True)

    def validate_step(self, state: QuizState, step: int) -> StepValidation:
        return validate_step(state, step)

    def get_progress(self, step: int) -> int:
        # round(step / 18 * 100) without floats
        return (step * 200 + TOTAL_STEPS) // (2 * TOTAL_STEPS)

    def get_step_type(self, step: int) -> Optional[StepType]:
        return step_type_for(step)

    def can_go_back(self, step: int) -> bool:
        return step > FIRST_STEP

    def is_final_step(self, step: int) -> bool:
        return step == OFFER_STEP

    def is_lead_step(self, step: int) -> bool:
        return step == LEAD_STEP

    def get_branch_info(self, state: QuizState) -> str:
        """Human-readable summary of the active branches (for logs)."""
        names = [name.replace("branch_", "") for name in state.flags.active()]
        return ", ".join(names) if names else "default"

    # ------------------------------------------------------------------
    # Transition tables
    # ------------------------------------------------------------------

    def _forward_target(self, state: QuizState) -> int:
        step = state.step

        if step >= OFFER_STEP:
            return OFFER_STEP

        if step == 4:
            if state.flags.branch_no_problems or state.diagnostico == Diagnostico.SEM_PROBLEMAS.value:
                return 6
            return 5

        if step == LEAD_STEP:
            return 10 if state.flags.branch_no_problems else 7

        if step == 8:
            return 10 if state.ansiedade == Ansiedade.NUNCA.value else 9

        return max(step + 1, FIRST_STEP)

    def _backward_target(self, state: QuizState) -> int:
        step = state.step

        if step > OFFER_STEP:
            return OFFER_STEP

        if step == LEAD_STEP:
            return 4 if state.flags.branch_no_problems else 5

        if step == 10:
            if state.flags.branch_no_problems:
                return LEAD_STEP
            if state.ansiedade == Ansiedade.NUNCA.value:
                return 8
            return 9

        return step - 1
