"""
Stripe payment gateway - Implements PaymentGateway protocol.

The API key is passed on each call instead of being set on the
module-wide ``stripe.api_key``, so several gateways can coexist.
"""

import json
import logging

import stripe

from rollcall.domain.billing import subscription_from_mapping
from rollcall.domain.exceptions import InvalidWebhook
from rollcall.domain.ports import Subscription, WebhookEvent

logger = logging.getLogger(__name__)


class StripePaymentGateway:
    """
    Implements PaymentGateway protocol via the stripe SDK.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, api_key: str | None, webhook_secret: str | None) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret:
            logger.error("Webhook received but no webhook secret is configured")
            raise InvalidWebhook("webhook secret is not configured")

        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise InvalidWebhook("signature verification failed") from exc
        except ValueError as exc:
            raise InvalidWebhook("payload is not valid JSON") from exc

        # The signature covers the raw payload; the domain works on plain dicts.
        raw = json.loads(payload)
        if not isinstance(raw, dict) or not raw.get("id") or not raw.get("type"):
            raise InvalidWebhook("payload is not an event")
        return WebhookEvent(
            id=raw["id"],
            type=raw["type"],
            data=(raw.get("data") or {}).get("object") or {},
        )

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._api_key)
        return subscription_from_mapping(subscription.to_dict())

    def create_checkout_session(
        self, org_id: int, price_id: str, success_url: str, cancel_url: str
    ) -> str:
        session = stripe.checkout.Session.create(
            api_key=self._api_key,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=str(org_id),
            metadata={"org_id": str(org_id)},
        )
        return session.url
