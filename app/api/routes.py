# app/api/routes.py
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from app.errors import FunnelError
from app.services import (
    AccessResendService,
    CheckoutService,
    LeadCaptureService,
    QuizSession,
    QuizSessionService,
    WebhookProcessor,
)
from app.services.auth import validate_magic_token
from .schemas import (
    AnswerRequest,
    CheckoutRequest,
    CheckoutResponse,
    ErrorBody,
    LeadRequest,
    LeadResponse,
    MagicLoginResponse,
    QuizViewResponse,
    ResendRequest,
    ResendResponse,
    StartQuizRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ----------------------------------------------------------------------
# Service providers (overridden in tests)
# ----------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_lead_capture() -> LeadCaptureService:
    return LeadCaptureService()


@lru_cache(maxsize=1)
def get_quiz_service() -> QuizSessionService:
    return QuizSessionService(lead_capture=get_lead_capture())


@lru_cache(maxsize=1)
def get_checkout_service() -> CheckoutService:
    return CheckoutService()


@lru_cache(maxsize=1)
def get_webhook_processor() -> WebhookProcessor:
    return WebhookProcessor()


@lru_cache(maxsize=1)
def get_resend_service() -> AccessResendService:
    return AccessResendService()


def _http_error(exc: FunnelError) -> HTTPException:
    body = ErrorBody(error=exc.message, details=exc.details, code=getattr(exc, "code", None))
    return HTTPException(status_code=exc.status_code, detail=body.model_dump(exclude_none=True))


def _view(service: QuizSessionService, quiz: QuizSession) -> QuizViewResponse:
    return QuizViewResponse(**service.view(quiz))


# ----------------------------------------------------------------------
# Quiz
# ----------------------------------------------------------------------


@router.post("/quiz/start", response_model=QuizViewResponse)
def start_quiz(
    payload: StartQuizRequest,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    quiz = service.start_session(utm_params=payload.utm_params, variant=payload.variant)
    return _view(service, quiz)


@router.get("/quiz/{session_id}", response_model=QuizViewResponse)
def get_quiz(
    session_id: str,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    try:
        quiz = service.get_session(session_id)
    except FunnelError as exc:
        raise _http_error(exc)
    return _view(service, quiz)


@router.post("/quiz/{session_id}/answer", response_model=QuizViewResponse)
def answer_quiz(
    session_id: str,
    payload: AnswerRequest,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    try:
        quiz = service.answer(session_id, payload.field, payload.value)
    except FunnelError as exc:
        raise _http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": str(exc)})
    return _view(service, quiz)


@router.post("/quiz/{session_id}/next", response_model=QuizViewResponse)
def next_step(
    session_id: str,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    """
    Advance the quiz. A validation failure is not an HTTP error: the view
    comes back on the same step with `error` set.
    """
    try:
        quiz = service.go_next(session_id)
    except FunnelError as exc:
        raise _http_error(exc)
    return _view(service, quiz)


@router.post("/quiz/{session_id}/back", response_model=QuizViewResponse)
def previous_step(
    session_id: str,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    try:
        quiz = service.go_back(session_id)
    except FunnelError as exc:
        raise _http_error(exc)
    return _view(service, quiz)


@router.post("/quiz/{session_id}/reset", response_model=QuizViewResponse)
def reset_quiz(
    session_id: str,
    service: QuizSessionService = Depends(get_quiz_service),
) -> QuizViewResponse:
    try:
        quiz = service.reset(session_id)
    except FunnelError as exc:
        raise _http_error(exc)
    return _view(service, quiz)


@router.post("/quiz/{session_id}/abandon", status_code=204)
def abandon_quiz(
    session_id: str,
    service: QuizSessionService = Depends(get_quiz_service),
) -> None:
    service.abandon(session_id)


# ----------------------------------------------------------------------
# Lead / checkout / fulfillment
# ----------------------------------------------------------------------


@router.post("/lead", response_model=LeadResponse)
def submit_lead(
    payload: LeadRequest,
    lead_capture: LeadCaptureService = Depends(get_lead_capture),
) -> LeadResponse:
    try:
        lead_capture.submit(payload.model_dump(by_alias=True))
    except FunnelError as exc:
        raise _http_error(exc)
    return LeadResponse(ok=True, stored=True)


@router.post("/checkout/create", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
    quiz_service: QuizSessionService = Depends(get_quiz_service),
) -> CheckoutResponse:
    body = payload.model_dump(by_alias=True)
    try:
        url = checkout.create(body)
    except FunnelError as exc:
        raise _http_error(exc)

    if isinstance(body.get("sessionId"), str):
        quiz_service.track_offer_click(body["sessionId"])
    return CheckoutResponse(url=url)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> dict:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        outcome = await run_in_threadpool(processor.handle, payload, signature)
    except FunnelError as exc:
        raise _http_error(exc)
    return {"received": True, "outcome": outcome}


@router.post("/access/resend", response_model=ResendResponse)
def resend_access(
    payload: ResendRequest,
    resend: AccessResendService = Depends(get_resend_service),
) -> ResendResponse:
    try:
        resend.resend(payload.model_dump(by_alias=True))
    except FunnelError as exc:
        raise _http_error(exc)
    return ResendResponse(ok=True, message="Access email resent successfully")


@router.get("/auth/magic", response_model=MagicLoginResponse)
def magic_login(token: str = Query(..., min_length=1)) -> MagicLoginResponse:
    result = validate_magic_token(token)
    if not result.valid:
        raise HTTPException(status_code=401, detail={"error": result.error})
    return MagicLoginResponse(user_id=result.user_id, email=result.email)
