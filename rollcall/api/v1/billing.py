"""
API v1 billing routes.

Organization billing status, subscription checkout and the payment
provider webhook. Organization identity comes from the X-Org-Id and
X-User-Role headers set by the upstream auth gateway.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from rollcall.api.dependencies import (
    OrgMember,
    get_billing_service,
    get_org_member,
    require_billing_admin,
)
from rollcall.api.models import (
    BillingErrorResponse,
    BillingStatusResponse,
    CheckoutRequest,
    CheckoutResponse,
    WebhookResponse,
)
from rollcall.domain.billing import BillingService, can_manage_billing
from rollcall.domain.exceptions import InvalidPrice, InvalidWebhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


def billing_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=BillingErrorResponse(error=message).model_dump(),
    )


@router.get(
    "/status",
    response_model=BillingStatusResponse,
    responses={401: {"model": BillingErrorResponse, "description": "Unauthorized"}},
    summary="Get organization billing status",
)
def billing_status(
    member: OrgMember = Depends(get_org_member),
    service: BillingService = Depends(get_billing_service),
) -> BillingStatusResponse:
    """
    Current plan and subscription state for the caller's organization.

    Organizations without a subscription report plan ``free`` and status
    ``inactive``.
    """
    snapshot = service.get_billing_status(member.org_id, can_manage_billing(member.role))
    return BillingStatusResponse(**asdict(snapshot))


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    responses={
        400: {"model": BillingErrorResponse, "description": "Invalid priceId"},
        401: {"model": BillingErrorResponse, "description": "Unauthorized"},
        403: {"model": BillingErrorResponse, "description": "Forbidden"},
    },
    summary="Start a subscription checkout",
    description="Owners and admins only. Returns the hosted checkout URL.",
)
def create_checkout(
    request_data: CheckoutRequest,
    member: OrgMember = Depends(require_billing_admin),
    service: BillingService = Depends(get_billing_service),
) -> CheckoutResponse | JSONResponse:
    try:
        url = service.create_checkout_session(member.org_id, request_data.price_id)
    except InvalidPrice:
        return billing_error(status.HTTP_400_BAD_REQUEST, "Invalid priceId")
    return CheckoutResponse(url=url)


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": BillingErrorResponse, "description": "Missing or invalid signature"},
    },
    summary="Receive payment provider events",
    description="Signed with the Stripe-Signature header. "
    "Replayed events are acknowledged with ignored=true and change nothing.",
)
async def billing_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    service: BillingService = Depends(get_billing_service),
) -> WebhookResponse | JSONResponse:
    if not stripe_signature:
        return billing_error(status.HTTP_400_BAD_REQUEST, "Missing Stripe signature")

    # The signature is computed over the exact bytes received.
    payload = await request.body()
    try:
        outcome = await run_in_threadpool(service.handle_webhook, payload, stripe_signature)
    except InvalidWebhook as exc:
        logger.warning("Rejected webhook: %s", exc)
        return billing_error(
            status.HTTP_400_BAD_REQUEST, "Webhook signature verification failed"
        )
    return WebhookResponse(ignored=True if outcome.ignored else None)
