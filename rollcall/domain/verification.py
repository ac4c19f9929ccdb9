"""
Email verification domain service - code issuance and verification.

This module contains the core business logic for proving that a student
owns the email address on their account.

Verification Lifecycle
======================

Issue (``issue_code``):
    - Cooldown: no new send within ``cooldown`` of the last one
    - Resend limit: at most ``max_resends`` regenerations while the
      current code is still valid
    - Unexpired record -> refreshed in place (resend_count + 1)
    - No record, or expired record -> fresh row inserted

Verify (``verify_code``):
    - No pending record        -> InvalidCode (no attempts reported)
    - Past expires_at          -> CodeExpired
    - attempts >= max_attempts -> TooManyAttempts (checked before comparing)
    - Mismatch                 -> attempts + 1, InvalidCode(attempts_remaining)
    - Match                    -> record and student marked verified

Every read-decide-write sequence runs inside one repository scope, which
the repository serializes per email. Delivery happens after the scope is
committed, so a delivery failure never discards an issued code.
"""

import logging
import math
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .exceptions import (
    CodeExpired,
    Cooldown,
    InvalidCode,
    InvalidEmail,
    InvalidPayload,
    ResendLimitExceeded,
    TooManyAttempts,
    VerificationError,
)
from .ports import EmailSender, VerificationRecord, VerificationRepository, VerificationScope

logger = logging.getLogger(__name__)

CODE_LENGTH = 6

_EMAIL_SHAPE = re.compile(r".+@.+\..+")
_CODE_SHAPE = re.compile(r"[0-9]{%d}" % CODE_LENGTH)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    """Minimal local@domain.tld shape check on an already normalized email."""
    return bool(email) and _EMAIL_SHAPE.search(email) is not None


def generate_verification_code() -> str:
    """
    Generate a cryptographically secure 6-digit verification code.

    Uniform over [0, 1_000_000). Returns string to preserve leading zeros.
    """
    return str(secrets.randbelow(10**CODE_LENGTH)).zfill(CODE_LENGTH)


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` until ``moment``, rounded up, never negative."""
    return max(0, math.ceil((moment - now).total_seconds()))


@dataclass(frozen=True)
class IssuedCode:
    """Outcome of a successful issuance."""

    email: str
    expires_in_seconds: int
    resent: bool


@dataclass
class EmailVerificationService:
    """
    Domain service for email verification.

    Orchestrates code issuance (cooldown, resend limit, persistence,
    delivery) and code verification (expiry, attempt limit, comparison,
    account activation).
    """

    repository: VerificationRepository
    email_sender: EmailSender
    cooldown: timedelta = timedelta(seconds=60)
    code_ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 5
    max_resends: int = 3
    clock: Callable[[], datetime] = field(default=utc_now)

    def issue_code(self, email: str) -> IssuedCode:
        """
        Issue (or re-issue) a verification code and deliver it.

        Args:
            email: User's email address (will be normalized)

        Returns:
            IssuedCode with the seconds remaining until expiry

        Raises:
            InvalidEmail: Empty or malformed email
            Cooldown: Previous code sent less than ``cooldown`` ago
            ResendLimitExceeded: Too many resends for the still-valid code
        """
        normalized_email = normalize_email(email)
        if not is_valid_email(normalized_email):
            raise InvalidEmail(normalized_email)

        with self.repository.scope(normalized_email) as scope:
            # Read the clock once the scope holds the per-email lock.
            now = self.clock()
            existing = scope.latest_unverified()
            if existing is not None:
                self._check_send_allowed(existing, now)

            code = generate_verification_code()
            expires_at = now + self.code_ttl

            resent = existing is not None and not existing.is_expired(now)
            if resent:
                scope.refresh(existing.id, code, expires_at, now)
            else:
                scope.insert(code, expires_at, now)

        logger.info(
            "Verification code %s for %s (expires in %ss)",
            "reissued" if resent else "issued",
            normalized_email,
            int(self.code_ttl.total_seconds()),
        )
        self._deliver(normalized_email, code)

        return IssuedCode(
            email=normalized_email,
            expires_in_seconds=seconds_until(expires_at, now),
            resent=resent,
        )

    def verify_code(self, email: str, code: str) -> str:
        """
        Check a submitted code and mark the account verified on match.

        Args:
            email: User's email (will be normalized)
            code: 6-digit verification code (surrounding whitespace ignored)

        Returns:
            Normalized email address of the verified account

        Raises:
            InvalidPayload: Malformed email or code
            InvalidCode: No pending code, or the code does not match
            CodeExpired: Pending code is past its expiry
            TooManyAttempts: Attempt limit already reached
        """
        normalized_email = normalize_email(email)
        code = code.strip()
        if not is_valid_email(normalized_email) or not _CODE_SHAPE.fullmatch(code):
            raise InvalidPayload()

        with self.repository.scope(normalized_email) as scope:
            now = self.clock()
            # Failed attempts must be committed, so the outcome is raised
            # only after the scope has exited cleanly.
            failure = self._attempt(scope, code, now)

        if failure is not None:
            raise failure

        logger.info("Email verified: %s", normalized_email)
        return normalized_email

    def _check_send_allowed(self, existing: VerificationRecord, now: datetime) -> None:
        cooldown_remaining = self.cooldown - (now - existing.last_sent_at)
        if cooldown_remaining > timedelta(0):
            raise Cooldown(math.ceil(cooldown_remaining.total_seconds()))

        resend_count = existing.resend_count or 0
        if not existing.is_expired(now) and resend_count >= self.max_resends:
            raise ResendLimitExceeded(existing.email)

    def _attempt(
        self, scope: VerificationScope, code: str, now: datetime
    ) -> VerificationError | None:
        record = scope.latest_unverified()
        if record is None:
            return InvalidCode()

        if record.is_expired(now):
            return CodeExpired()

        attempts = record.attempts or 0
        if attempts >= self.max_attempts:
            return TooManyAttempts()

        if not secrets.compare_digest(record.code.encode(), code.encode()):
            attempts += 1
            scope.set_attempts(record.id, attempts)
            return InvalidCode(attempts_remaining=max(0, self.max_attempts - attempts))

        scope.mark_verified(record.id)
        return None

    def _deliver(self, email: str, code: str) -> None:
        # The code is already persisted and valid; a failed send is not fatal.
        try:
            self.email_sender.send_verification_code(email, code)
        except Exception:
            logger.exception("Verification email delivery failed for %s", email)
