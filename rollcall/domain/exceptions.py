"""
Domain exceptions - Semantic error types for email verification and billing.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception carries the stable ``error`` code sent to clients.
"""


class VerificationError(Exception):
    """Base class for email verification domain errors."""

    error = "verification_error"


class InvalidEmail(VerificationError):
    """Email is empty or not shaped like local@domain.tld."""

    error = "invalid_email"


class InvalidPayload(VerificationError):
    """Email or code failed shape validation on verify."""

    error = "invalid_payload"


class Cooldown(VerificationError):
    """A code was sent too recently for this email."""

    error = "cooldown"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(f"retry after {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds


class ResendLimitExceeded(VerificationError):
    """Too many regenerations while the current code is still valid."""

    error = "resend_limit"


class InvalidCode(VerificationError):
    """
    Code mismatch, or no pending verification for the email.

    Both cases share this type so callers cannot tell them apart.
    ``attempts_remaining`` is None when no record exists.
    """

    error = "invalid_code"

    def __init__(self, attempts_remaining: int | None = None) -> None:
        super().__init__("invalid code")
        self.attempts_remaining = attempts_remaining


class CodeExpired(VerificationError):
    """The pending code is past its expiry."""

    error = "expired"


class TooManyAttempts(VerificationError):
    """Attempt limit reached for the pending code."""

    error = "too_many_attempts"


class BillingError(Exception):
    """Base class for billing domain errors."""

    error = "billing_error"


class InvalidPrice(BillingError):
    """Price id is not mapped to any plan."""

    error = "invalid_price"


class InvalidWebhook(BillingError):
    """Webhook signature, secret or payload was rejected."""

    error = "invalid_signature"
