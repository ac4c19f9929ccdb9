"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from psycopg_pool import ConnectionPool

from rollcall.adapters.payments.stripe_gateway import StripePaymentGateway
from rollcall.adapters.repository.billing import PostgresBillingRepository
from rollcall.adapters.repository.postgres import PostgresVerificationRepository
from rollcall.adapters.smtp.console import ConsoleEmailSender
from rollcall.adapters.smtp.override import FunctionEmailSender, SendFunction
from rollcall.adapters.smtp.relay import SmtpEmailSender
from rollcall.config.settings import Settings, get_settings
from rollcall.domain.billing import BillingService, can_manage_billing, parse_org_id
from rollcall.domain.ports import EmailSender, PaymentGateway
from rollcall.domain.verification import EmailVerificationService, utc_now


def build_email_sender(settings: Settings, override: SendFunction | None = None) -> EmailSender:
    """
    Choose the delivery transport once, at startup.

    Precedence: caller override, then SMTP when ``smtp_host`` is set,
    then the console fallback.
    """
    if override is not None:
        return FunctionEmailSender(override)
    if settings.smtp_host:
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            from_address=settings.mail_from_address,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
            ttl_minutes=settings.code_ttl_minutes,
        )
    return ConsoleEmailSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with, falling back to the cached defaults."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_repository(request: Request) -> PostgresVerificationRepository:
    """Create repository with connection pool from app state."""
    pool = get_pool(request)
    return PostgresVerificationRepository(pool)


def get_email_sender(request: Request) -> EmailSender:
    """Get the sender built at startup, or the console fallback."""
    sender = getattr(request.app.state, "email_sender", None)
    return sender if sender is not None else ConsoleEmailSender()


def get_verification_service(request: Request) -> EmailVerificationService:
    """
    Create verification service with injected dependencies.

    Wires together the repository, email sender and limits for the domain service.
    """
    settings = get_app_settings(request)
    return EmailVerificationService(
        repository=get_repository(request),
        email_sender=get_email_sender(request),
        cooldown=settings.cooldown,
        code_ttl=settings.code_ttl,
        max_attempts=settings.max_verify_attempts,
        max_resends=settings.max_resends,
        clock=getattr(request.app.state, "clock", None) or utc_now,
    )


class BillingAccessDenied(Exception):
    """Caller is not an authenticated organization member, or not a billing admin."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class OrgMember:
    org_id: int
    role: str


def get_org_member(
    x_org_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> OrgMember:
    """
    Identify the caller from the gateway-provided organization headers.

    Raises:
        BillingAccessDenied: 401 when X-Org-Id is missing or not a positive integer
    """
    org_id = parse_org_id(x_org_id)
    if org_id is None:
        raise BillingAccessDenied(401, "Unauthorized")
    return OrgMember(org_id=org_id, role=(x_user_role or "").strip().lower())


def require_billing_admin(member: OrgMember = Depends(get_org_member)) -> OrgMember:
    """Allow only organization owners and admins through."""
    if not can_manage_billing(member.role):
        raise BillingAccessDenied(403, "Forbidden")
    return member


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    return StripePaymentGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )


def get_billing_service(request: Request) -> BillingService:
    """Create billing service over the pool and the payment gateway built at startup."""
    settings = get_app_settings(request)
    gateway = getattr(request.app.state, "payment_gateway", None)
    return BillingService(
        repository=PostgresBillingRepository(get_pool(request)),
        gateway=gateway if gateway is not None else build_payment_gateway(settings),
        price_plans=settings.stripe_price_plans,
        app_url=settings.app_url,
    )
