"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for cooldown and expiry scenarios
- Recording email senders
- A payment gateway fake that signs events with a fixed token
- A migrated PostgreSQL connection pool (skips when no database is reachable)
"""

import json
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from rollcall.adapters.repository.postgres import run_migrations
from rollcall.config.settings import get_settings
from rollcall.domain.exceptions import InvalidWebhook
from rollcall.domain.ports import Subscription, WebhookEvent


class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender:
    """EmailSender that remembers every (email, code) it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_verification_code(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class FakePaymentGateway:
    """PaymentGateway that trusts only ``SIGNATURE`` and records provider calls."""

    SIGNATURE = "t=1700000000,v1=trusted"

    def __init__(self) -> None:
        self.subscriptions: dict[str, Subscription] = {}
        self.retrieved: list[str] = []
        self.checkouts: list[dict[str, Any]] = []

    @staticmethod
    def payload(event_id: str, event_type: str, obj: dict[str, Any]) -> bytes:
        return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()

    def construct_event(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != self.SIGNATURE:
            raise InvalidWebhook("signature verification failed")
        raw = json.loads(payload)
        return WebhookEvent(id=raw["id"], type=raw["type"], data=raw["data"]["object"])

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        self.retrieved.append(subscription_id)
        return self.subscriptions[subscription_id]

    def create_checkout_session(
        self, org_id: int, price_id: str, success_url: str, cancel_url: str
    ) -> str:
        self.checkouts.append(
            {
                "org_id": org_id,
                "price_id": price_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
            }
        )
        return f"https://checkout.test/session/{org_id}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create a migrated connection pool, or skip if PostgreSQL is down."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=5)
    except PoolTimeout:
        pool.close()
        pytest.skip(f"PostgreSQL not reachable at {settings.database_url}")

    run_migrations(pool)
    yield pool
    pool.close()


def clean_tables(pool: ConnectionPool) -> None:
    """Remove verification, student and billing rows between tests."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM email_verification_codes")
        conn.execute("DELETE FROM students")
        conn.execute("DELETE FROM org_billing")
        conn.execute("DELETE FROM stripe_events")
        conn.commit()


class StudentAccounts:
    """Direct access to the students table for arranging and asserting."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, email: str, name: str = "Test Student") -> None:
        with self._pool.connection() as conn:
            conn.execute(
                "INSERT INTO students (email, name, email_verified) VALUES (%s, %s, FALSE)",
                (email, name),
            )
            conn.commit()

    def is_verified(self, email: str) -> bool | None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT email_verified FROM students WHERE email = %s", (email,))
            row = cursor.fetchone()
        return None if row is None else row[0]


@pytest.fixture
def db(pool: ConnectionPool) -> Generator[ConnectionPool, None, None]:
    """The shared pool, with tables emptied before each test."""
    clean_tables(pool)
    yield pool


@pytest.fixture
def students(db: ConnectionPool) -> StudentAccounts:
    return StudentAccounts(db)
