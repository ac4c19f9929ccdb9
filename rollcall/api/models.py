"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON keys are camelCase on the wire; Python attributes stay snake_case.

Request fields are lenient: numbers are coerced to strings and null is read
as an empty string, so shape problems surface as the domain's typed errors
instead of generic validation failures.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class CamelRequest(CamelModel):
    """Base for request bodies whose string fields read null as empty."""

    @field_validator("*", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class SendCodeRequest(CamelRequest):
    """Request model for issuing a verification code."""

    # Shape is checked by the domain so that a bad address maps to invalid_email.
    email: str = Field(default="", description="Email address to verify")


class SendCodeResponse(CamelModel):
    """Response model for a sent verification code."""

    ok: bool = True
    message: str = "code_sent"
    expires_in_seconds: int


class VerifyCodeRequest(CamelRequest):
    """Request model for submitting a verification code."""

    email: str = Field(default="", description="Email address being verified")
    code: str = Field(default="", description="6-digit verification code")


class VerifyCodeResponse(CamelModel):
    """Response model for a verified email."""

    ok: bool = True
    message: str = "email_verified"


class ErrorResponse(CamelModel):
    """Standard error response model."""

    ok: bool = False
    error: str
    retry_after_seconds: int | None = None
    attempts_remaining: int | None = None


class CheckoutRequest(CamelRequest):
    """Request model for starting a subscription checkout."""

    price_id: str = Field(default="", description="Payment provider price identifier")


class CheckoutResponse(BaseModel):
    """Hosted checkout page to redirect the organization admin to."""

    url: str


class BillingStatusResponse(BaseModel):
    """Billing snapshot for an organization (snake_case keys)."""

    plan: str
    subscription_status: str
    current_period_end: datetime | None = None
    can_manage_billing: bool


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the payment provider."""

    received: bool = True
    ignored: bool | None = None


class BillingErrorResponse(BaseModel):
    """Error body for billing endpoints."""

    error: str
