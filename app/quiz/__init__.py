# app/quiz/__init__.py
from .engine import QuizEngine, NavigationResult, Direction
from .state import QuizState, QuizFlags
from .store import QuizStore, InMemorySessionStorage, STORAGE_KEY
from .validation import StepValidation, validate_step
from .content import get_personalized_content, QUIZ_STEPS
from .steps import StepType, AnswerField, TOTAL_STEPS

__all__ = [
    "QuizEngine",
    "NavigationResult",
    "Direction",
    "QuizState",
    "QuizFlags",
    "QuizStore",
    "InMemorySessionStorage",
    "STORAGE_KEY",
    "StepValidation",
    "validate_step",
    "get_personalized_content",
    "QUIZ_STEPS",
    "StepType",
    "AnswerField",
    "TOTAL_STEPS",
]
