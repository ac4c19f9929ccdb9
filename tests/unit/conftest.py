"""
Unit test fixtures.

Provides in-memory VerificationRepository and BillingRepository
implementations with the same commit/rollback behaviour as the PostgreSQL
adapters, so domain rules can be exercised without a database.
"""

import copy
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, fields
from datetime import datetime

import pytest

from rollcall.domain.billing import BillingService
from rollcall.domain.ports import BillingUpdate, OrgBilling, VerificationRecord
from rollcall.domain.verification import EmailVerificationService

PRICE_PLANS = {"price_basic": "basic", "price_pro": "pro"}


class InMemoryScope:
    """VerificationScope over a staged copy of the repository rows."""

    def __init__(self, repository: "InMemoryVerificationRepository", email: str) -> None:
        self._repository = repository
        self._email = email
        self.rows: list[dict] = copy.deepcopy(repository.rows)
        self.verified_students: set[str] = set()

    def latest_unverified(self) -> VerificationRecord | None:
        candidates = [r for r in self.rows if r["email"] == self._email and not r["verified"]]
        if not candidates:
            return None
        row = max(candidates, key=lambda r: r["id"])
        return VerificationRecord(**row)

    def insert(self, code: str, expires_at: datetime, sent_at: datetime) -> int:
        record_id = self._repository.next_id()
        self.rows.append(
            asdict(
                VerificationRecord(
                    id=record_id,
                    email=self._email,
                    code=code,
                    expires_at=expires_at,
                    attempts=0,
                    resend_count=0,
                    last_sent_at=sent_at,
                )
            )
        )
        return record_id

    def _row(self, record_id: int) -> dict:
        return next(r for r in self.rows if r["id"] == record_id)

    def refresh(
        self, record_id: int, code: str, expires_at: datetime, sent_at: datetime
    ) -> None:
        row = self._row(record_id)
        row.update(
            code=code,
            expires_at=expires_at,
            last_sent_at=sent_at,
            resend_count=(row["resend_count"] or 0) + 1,
        )

    def set_attempts(self, record_id: int, attempts: int) -> None:
        self._row(record_id)["attempts"] = attempts

    def mark_verified(self, record_id: int) -> None:
        self._row(record_id)["verified"] = True
        self.verified_students.add(self._email)


class InMemoryVerificationRepository:
    """Implements VerificationRepository; commits a scope only if it exits cleanly."""

    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.verified_students: set[str] = set()
        self.commits = 0
        self._last_id = 0

    def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    @contextmanager
    def scope(self, email: str) -> Iterator[InMemoryScope]:
        scope = InMemoryScope(self, email)
        yield scope
        self.rows = scope.rows
        self.verified_students |= scope.verified_students
        self.commits += 1

    def records_for(self, email: str) -> list[VerificationRecord]:
        return [VerificationRecord(**r) for r in self.rows if r["email"] == email]

    def latest(self, email: str) -> VerificationRecord:
        return max(self.records_for(email), key=lambda r: r.id)


@pytest.fixture
def repository() -> InMemoryVerificationRepository:
    return InMemoryVerificationRepository()


@pytest.fixture
def service(repository, sender, clock) -> EmailVerificationService:
    """Service with default limits: 60s cooldown, 10 min TTL, 5 attempts, 3 resends."""
    return EmailVerificationService(repository=repository, email_sender=sender, clock=clock)


class InMemoryBillingScope:
    """BillingScope over staged copies of the billing rows and claimed events."""

    def __init__(self, repository: "InMemoryBillingRepository") -> None:
        self.billing: dict[int, OrgBilling] = dict(repository.billing)
        self.events: set[str] = set(repository.events)

    def claim_event(self, event_id: str) -> bool:
        if event_id in self.events:
            return False
        self.events.add(event_id)
        return True

    def org_id_for_customer(self, customer_id: str) -> int | None:
        return next(
            (b.org_id for b in self.billing.values() if b.stripe_customer_id == customer_id),
            None,
        )

    def upsert(self, org_id: int, update: BillingUpdate) -> None:
        current = self.billing.get(org_id, OrgBilling(org_id=org_id))
        merged = {}
        for f in fields(BillingUpdate):
            value = getattr(update, f.name)
            merged[f.name] = value if value is not None else getattr(current, f.name)
        self.billing[org_id] = OrgBilling(org_id=org_id, **merged)


class InMemoryBillingRepository:
    """Implements BillingRepository; commits a transaction only if it exits cleanly."""

    def __init__(self) -> None:
        self.billing: dict[int, OrgBilling] = {}
        self.events: set[str] = set()

    def get(self, org_id: int) -> OrgBilling | None:
        return self.billing.get(org_id)

    @contextmanager
    def transaction(self) -> Iterator[InMemoryBillingScope]:
        scope = InMemoryBillingScope(self)
        yield scope
        self.billing = scope.billing
        self.events = scope.events


@pytest.fixture
def billing_repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository()


@pytest.fixture
def billing_service(billing_repository, gateway) -> BillingService:
    """Billing service with two known prices and a fixed app URL."""
    return BillingService(
        repository=billing_repository,
        gateway=gateway,
        price_plans=PRICE_PLANS,
        app_url="https://app.rollcall.test",
    )
