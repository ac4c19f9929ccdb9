"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class VerificationRecord:
    """
    Snapshot of one row of the verification store.

    Lifecycle:
    - Inserted on first send (attempts=0, resend_count=0, verified=False)
    - Refreshed on resend (new code/expiry/last_sent_at, resend_count + 1)
    - attempts incremented on each wrong guess
    - verified=True on success (terminal)
    """

    id: int
    email: str
    code: str
    expires_at: datetime
    attempts: int
    resend_count: int
    last_sent_at: datetime
    verified: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class VerificationScope(Protocol):
    """
    Store operations for a single email, inside one unit of work.

    Everything done through a scope is committed together when the
    scope exits normally and rolled back if it exits with an error.
    """

    def latest_unverified(self) -> VerificationRecord | None:
        """Return the most recently created unverified record, if any."""
        ...

    def insert(self, code: str, expires_at: datetime, sent_at: datetime) -> int:
        """
        Insert a fresh record (attempts=0, resend_count=0, verified=False).

        Returns:
            The new record id
        """
        ...

    def refresh(
        self, record_id: int, code: str, expires_at: datetime, sent_at: datetime
    ) -> None:
        """Replace code and expiry on a live record and bump its resend count."""
        ...

    def set_attempts(self, record_id: int, attempts: int) -> None:
        """Persist the failed-attempt counter for a record."""
        ...

    def mark_verified(self, record_id: int) -> None:
        """Flag the record and the owning student account as verified."""
        ...


class VerificationRepository(Protocol):
    """Port interface for verification persistence."""

    def scope(self, email: str) -> AbstractContextManager[VerificationScope]:
        """
        Open a unit of work serialized on the normalized email.

        Two scopes for the same email never interleave, so a
        check-then-write sequence inside one scope is race free.

        Args:
            email: Normalized email address
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address.

        Args:
            email: Recipient email address
            code: 6-digit verification code
        """
        ...


@dataclass(frozen=True)
class OrgBilling:
    """Billing row for one organization."""

    org_id: int
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    plan: str | None = None
    subscription_status: str | None = None
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class BillingUpdate:
    """
    Partial billing change for an organization.

    None means "keep the stored value", so a later event that lacks a
    field never erases what an earlier event recorded.
    """

    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    plan: str | None = None
    subscription_status: str | None = None
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class Subscription:
    """The parts of a provider subscription that billing tracks."""

    id: str | None
    customer_id: str | None
    status: str | None
    price_id: str | None
    current_period_end: datetime | None


@dataclass(frozen=True)
class WebhookEvent:
    """A verified payment provider event."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)


class BillingScope(Protocol):
    """
    Billing store operations inside one unit of work.

    Committed together when the scope exits normally, rolled back otherwise.
    """

    def claim_event(self, event_id: str) -> bool:
        """
        Record a webhook event id as processed.

        Returns:
            False if the event was already processed (or is being processed)
        """
        ...

    def org_id_for_customer(self, customer_id: str) -> int | None:
        """Organization that owns a provider customer, if known."""
        ...

    def upsert(self, org_id: int, update: BillingUpdate) -> None:
        """Create or merge the organization's billing row."""
        ...


class BillingRepository(Protocol):
    """Port interface for billing persistence."""

    def get(self, org_id: int) -> OrgBilling | None:
        """Current billing row for an organization, if any."""
        ...

    def transaction(self) -> AbstractContextManager[BillingScope]:
        """Open a unit of work for applying one webhook event."""
        ...


class PaymentGateway(Protocol):
    """Port interface for the payment provider."""

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify a webhook signature and parse the event.

        Raises:
            InvalidWebhook: Signature, secret or payload rejected
        """
        ...

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        """Fetch a subscription from the provider."""
        ...

    def create_checkout_session(
        self, org_id: int, price_id: str, success_url: str, cancel_url: str
    ) -> str:
        """
        Start a hosted subscription checkout.

        Returns:
            URL of the hosted checkout page
        """
        ...
