"""
Domain layer - Pure business logic with zero framework imports.

This package contains the core business logic for the email verification
lifecycle and organization billing. It defines its own port interfaces for
infrastructure abstraction, keeping the database, mail transport and
payment provider swappable.
"""

from .billing import BillingService, BillingStatus, WebhookOutcome
from .exceptions import (
    BillingError,
    CodeExpired,
    Cooldown,
    InvalidCode,
    InvalidEmail,
    InvalidPayload,
    InvalidPrice,
    InvalidWebhook,
    ResendLimitExceeded,
    TooManyAttempts,
    VerificationError,
)
from .ports import (
    BillingRepository,
    BillingScope,
    BillingUpdate,
    EmailSender,
    OrgBilling,
    PaymentGateway,
    Subscription,
    VerificationRecord,
    VerificationRepository,
    VerificationScope,
    WebhookEvent,
)
from .verification import EmailVerificationService, IssuedCode

__all__ = [
    "BillingError",
    "BillingRepository",
    "BillingScope",
    "BillingService",
    "BillingStatus",
    "BillingUpdate",
    "CodeExpired",
    "Cooldown",
    "EmailSender",
    "EmailVerificationService",
    "InvalidCode",
    "InvalidEmail",
    "InvalidPayload",
    "InvalidPrice",
    "InvalidWebhook",
    "IssuedCode",
    "OrgBilling",
    "PaymentGateway",
    "ResendLimitExceeded",
    "Subscription",
    "TooManyAttempts",
    "VerificationError",
    "VerificationRecord",
    "VerificationRepository",
    "VerificationScope",
    "WebhookEvent",
    "WebhookOutcome",
]
