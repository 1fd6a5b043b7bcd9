# app/api/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StartQuizRequest(BaseModel):
    utm_params: Dict[str, str] = Field(default_factory=dict)
    variant: Optional[str] = None


class AnswerRequest(BaseModel):
    field: str
    value: Any = None


class QuizViewResponse(BaseModel):
    state: Dict[str, Any]
    progress: int
    step_type: Optional[str]
    content: Dict[str, Any]
    can_go_back: bool
    is_final_step: bool
    branch_info: str
    variant: str
    error: Optional[str] = None


class LeadRequest(BaseModel):
    """
    Browser-shaped lead body (camelCase). Field types are left loose on
    purpose so that LeadCaptureService reports every problem at once.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: Any = Field(None, alias="sessionId")
    nome: Any = None
    email: Any = None
    consent: Any = None
    started_at: Any = Field(None, alias="startedAt")
    completed_at: Any = Field(None, alias="completedAt")
    answers: Optional[Dict[str, Any]] = None
    flags: Optional[Dict[str, Any]] = None
    variant: Optional[str] = None
    source: Optional[str] = None
    utm_params: Optional[Dict[str, str]] = Field(None, alias="utmParams")

    # honeypot
    website: Optional[str] = None
    url: Optional[str] = None
    link: Optional[str] = None


class LeadResponse(BaseModel):
    ok: bool
    stored: bool


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Any = Field(None, alias="sessionId")
    variant: Any = None


class CheckoutResponse(BaseModel):
    url: str


class ResendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    checkout_session_id: Any = Field(None, alias="checkoutSessionId")


class ResendResponse(BaseModel):
    ok: bool
    message: str


class MagicLoginResponse(BaseModel):
    user_id: str
    email: str


class ErrorBody(BaseModel):
    error: str
    details: List[str] = Field(default_factory=list)
    code: Optional[str] = None
