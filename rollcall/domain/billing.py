"""
Billing domain service - organization subscriptions driven by provider events.

Webhook events are applied at most once. The event id is claimed in the
same unit of work that applies the event, so a replayed or concurrently
delivered event is acknowledged without touching billing state, and an
event whose processing fails stays unclaimed for the provider to retry.

Handled events:
    checkout.session.completed     -> link customer and subscription to the org
    customer.subscription.updated  -> refresh plan, status and period end
    customer.subscription.deleted  -> same as updated; the status says canceled
Other event types are acknowledged and claimed without changes.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .exceptions import InvalidPrice
from .ports import (
    BillingRepository,
    BillingScope,
    BillingUpdate,
    PaymentGateway,
    Subscription,
)

logger = logging.getLogger(__name__)

DEFAULT_PLAN = "free"
DEFAULT_SUBSCRIPTION_STATUS = "inactive"

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_EVENTS = frozenset({"customer.subscription.updated", "customer.subscription.deleted"})

BILLING_ADMIN_ROLES = frozenset({"owner", "admin"})


def can_manage_billing(role: str) -> bool:
    """Only organization owners and admins manage billing."""
    return role.strip().lower() in BILLING_ADMIN_ROLES


def timestamp_to_datetime(value: Any) -> datetime | None:
    """Provider epoch seconds to an aware UTC datetime; missing or zero is None."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc)


def parse_org_id(value: Any) -> int | None:
    """Positive integer organization id, or None."""
    try:
        org_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return org_id if org_id > 0 else None


def subscription_from_mapping(obj: Mapping[str, Any]) -> Subscription:
    """Read the tracked fields from a provider subscription object."""
    items = (obj.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    # Newer API versions carry the period on the subscription item.
    period_end = obj.get("current_period_end") or first_item.get("current_period_end")
    return Subscription(
        id=obj.get("id") or None,
        customer_id=obj.get("customer") or None,
        status=obj.get("status") or None,
        price_id=price.get("id") or None,
        current_period_end=timestamp_to_datetime(period_end),
    )


@dataclass(frozen=True)
class BillingStatus:
    """What an organization member sees about its subscription."""

    plan: str
    subscription_status: str
    current_period_end: datetime | None
    can_manage_billing: bool


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    ignored: bool


@dataclass
class BillingService:
    """
    Domain service for organization billing.

    Reads billing status, starts checkouts for known prices and applies
    provider webhook events idempotently.
    """

    repository: BillingRepository
    gateway: PaymentGateway
    price_plans: Mapping[str, str] = field(default_factory=dict)
    app_url: str = "http://localhost:3000"

    def get_billing_status(self, org_id: int, can_manage: bool) -> BillingStatus:
        """Billing snapshot with free/inactive defaults for unknown organizations."""
        billing = self.repository.get(org_id)
        return BillingStatus(
            plan=(billing and billing.plan) or DEFAULT_PLAN,
            subscription_status=(billing and billing.subscription_status)
            or DEFAULT_SUBSCRIPTION_STATUS,
            current_period_end=billing.current_period_end if billing else None,
            can_manage_billing=bool(can_manage),
        )

    def create_checkout_session(self, org_id: int, price_id: str) -> str:
        """
        Start a subscription checkout for the organization.

        Returns:
            URL of the hosted checkout page

        Raises:
            InvalidPrice: ``price_id`` is not one of the configured plans
        """
        if price_id not in self.price_plans:
            raise InvalidPrice(price_id)

        url = self.gateway.create_checkout_session(
            org_id,
            price_id,
            success_url=f"{self.app_url}/billing/success",
            cancel_url=f"{self.app_url}/billing/cancel",
        )
        logger.info("Checkout started for org %s (plan %s)", org_id, self.price_plans[price_id])
        return url

    def handle_webhook(self, payload: bytes, signature: str) -> WebhookOutcome:
        """
        Verify and apply one webhook delivery.

        Raises:
            InvalidWebhook: Signature, secret or payload rejected
        """
        event = self.gateway.construct_event(payload, signature)

        with self.repository.transaction() as scope:
            if not scope.claim_event(event.id):
                logger.info("Ignoring already processed webhook event %s", event.id)
                return WebhookOutcome(event_id=event.id, ignored=True)

            if event.type == CHECKOUT_COMPLETED:
                self._checkout_completed(scope, event.data)
            elif event.type in SUBSCRIPTION_EVENTS:
                self._subscription_changed(scope, event.data)
            else:
                logger.debug("No billing change for webhook event type %s", event.type)

        logger.info("Processed webhook event %s (%s)", event.id, event.type)
        return WebhookOutcome(event_id=event.id, ignored=False)

    def _plan_for(self, price_id: str | None) -> str | None:
        return self.price_plans.get(price_id) if price_id else None

    def _checkout_completed(self, scope: BillingScope, session: Mapping[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        org_id = parse_org_id(metadata.get("org_id") or session.get("client_reference_id"))
        if org_id is None:
            logger.warning("Checkout session %s carries no organization", session.get("id"))
            return

        customer_id = session.get("customer") or None
        subscription_id = session.get("subscription") or None
        if not subscription_id:
            scope.upsert(org_id, BillingUpdate(stripe_customer_id=customer_id))
            return

        subscription = self.gateway.retrieve_subscription(subscription_id)
        scope.upsert(
            org_id,
            BillingUpdate(
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription_id,
                plan=self._plan_for(subscription.price_id),
                subscription_status=subscription.status,
                current_period_end=subscription.current_period_end,
            ),
        )

    def _subscription_changed(self, scope: BillingScope, obj: Mapping[str, Any]) -> None:
        subscription = subscription_from_mapping(obj)
        if not subscription.customer_id:
            return

        org_id = scope.org_id_for_customer(subscription.customer_id)
        if org_id is None:
            logger.warning("No organization for customer %s", subscription.customer_id)
            return

        scope.upsert(
            org_id,
            BillingUpdate(
                stripe_customer_id=subscription.customer_id,
                stripe_subscription_id=subscription.id,
                plan=self._plan_for(subscription.price_id),
                subscription_status=subscription.status,
                current_period_end=subscription.current_period_end,
            ),
        )
