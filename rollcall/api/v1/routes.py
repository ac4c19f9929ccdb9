"""
API v1 routes.

Defines REST endpoints for the email verification API.
"""

from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from rollcall.api.dependencies import get_verification_service
from rollcall.api.models import (
    ErrorResponse,
    SendCodeRequest,
    SendCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from rollcall.domain.exceptions import (
    Cooldown,
    InvalidCode,
    InvalidEmail,
    InvalidPayload,
    ResendLimitExceeded,
    TooManyAttempts,
    VerificationError,
)
from rollcall.domain.verification import EmailVerificationService

_RATE_LIMITED = (Cooldown, ResendLimitExceeded, TooManyAttempts)

# Error reported when a body cannot be read at all (bad JSON, wrong types).
_UNREADABLE_BODY_ERRORS: dict[str, type[VerificationError]] = {
    "send_verification_code": InvalidEmail,
    "verify_email_code": InvalidPayload,
}


def error_response(exc: VerificationError) -> JSONResponse:
    """
    Translate a domain error into its JSON body and status code.

    Rate limits map to 429, everything else to 400. Cooldown also sets
    the Retry-After header.
    """
    body = ErrorResponse(error=exc.error)
    headers = None
    if isinstance(exc, Cooldown):
        body.retry_after_seconds = exc.retry_after_seconds
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    elif isinstance(exc, InvalidCode):
        body.attempts_remaining = exc.attempts_remaining

    status_code = (
        status.HTTP_429_TOO_MANY_REQUESTS
        if isinstance(exc, _RATE_LIMITED)
        else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


class VerificationRoute(APIRoute):
    """APIRoute answering unreadable request bodies with the endpoint's typed 400."""

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        route_handler = super().get_route_handler()
        unreadable_body = _UNREADABLE_BODY_ERRORS.get(self.name)
        if unreadable_body is None:
            return route_handler

        async def typed_error_route_handler(request: Request) -> Response:
            try:
                return await route_handler(request)
            except RequestValidationError:
                return error_response(unreadable_body())

        return typed_error_route_handler


router = APIRouter(tags=["v1"], route_class=VerificationRoute)


@router.post(
    "/sendVerificationCode",
    response_model=SendCodeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "invalid_email"},
        429: {"model": ErrorResponse, "description": "cooldown or resend_limit"},
        500: {"model": ErrorResponse, "description": "server_error"},
    },
    summary="Send an email verification code",
    description="Issue a 6-digit code for the given email and deliver it. "
    "Subject to a per-email cooldown and a resend limit.",
)
def send_verification_code(
    request_data: SendCodeRequest,
    service: EmailVerificationService = Depends(get_verification_service),
) -> SendCodeResponse | JSONResponse:
    """
    Issue a verification code.

    - **email**: Address to verify

    Returns the number of seconds until the code expires.
    """
    try:
        issued = service.issue_code(request_data.email)
    except VerificationError as exc:
        return error_response(exc)
    return SendCodeResponse(expires_in_seconds=issued.expires_in_seconds)


@router.post(
    "/verifyEmailCode",
    response_model=VerifyCodeResponse,
    responses={
        400: {"model": ErrorResponse, "description": "invalid_payload, invalid_code or expired"},
        429: {"model": ErrorResponse, "description": "too_many_attempts"},
        500: {"model": ErrorResponse, "description": "server_error"},
    },
    summary="Verify an email with its code",
    description="Submit the 6-digit code received by email. "
    "On success the student account is marked as email verified.",
)
def verify_email_code(
    request_data: VerifyCodeRequest,
    service: EmailVerificationService = Depends(get_verification_service),
) -> VerifyCodeResponse | JSONResponse:
    """
    Verify an email address.

    - **email**: Address being verified
    - **code**: 6-digit verification code from email
    """
    try:
        service.verify_code(request_data.email, request_data.code)
    except VerificationError as exc:
        return error_response(exc)
    return VerifyCodeResponse()
