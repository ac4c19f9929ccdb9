"""
PostgreSQL billing adapter - Implements BillingRepository protocol.

Idempotent webhooks:
--------------------
``claim_event`` inserts the event id with ``ON CONFLICT DO NOTHING`` inside
the transaction that applies the event. A replay sees the committed row
and claims nothing. A concurrent duplicate blocks on the primary key until
the first delivery commits (then claims nothing) or rolls back (then
claims the id itself).

Upserts merge with COALESCE, so fields an event does not carry keep their
stored values.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from psycopg import Cursor
from psycopg_pool import ConnectionPool

from rollcall.domain.ports import BillingUpdate, OrgBilling

logger = logging.getLogger(__name__)

_SELECT_BILLING_SQL = """
    SELECT org_id, stripe_customer_id, stripe_subscription_id,
           plan, subscription_status, current_period_end
    FROM org_billing
    WHERE org_id = %s
"""

_CLAIM_EVENT_SQL = "INSERT INTO stripe_events (event_id) VALUES (%s) ON CONFLICT DO NOTHING"

_ORG_FOR_CUSTOMER_SQL = "SELECT org_id FROM org_billing WHERE stripe_customer_id = %s"

_UPSERT_BILLING_SQL = """
    INSERT INTO org_billing (
        org_id, stripe_customer_id, stripe_subscription_id,
        plan, subscription_status, current_period_end
    ) VALUES (%s, %s, %s, %s, %s, %s)
    ON CONFLICT (org_id) DO UPDATE SET
        stripe_customer_id = COALESCE(EXCLUDED.stripe_customer_id, org_billing.stripe_customer_id),
        stripe_subscription_id = COALESCE(
            EXCLUDED.stripe_subscription_id, org_billing.stripe_subscription_id
        ),
        plan = COALESCE(EXCLUDED.plan, org_billing.plan),
        subscription_status = COALESCE(
            EXCLUDED.subscription_status, org_billing.subscription_status
        ),
        current_period_end = COALESCE(EXCLUDED.current_period_end, org_billing.current_period_end)
"""


class PostgresBillingScope:
    """Implements BillingScope protocol on an open cursor."""

    def __init__(self, cursor: Cursor) -> None:
        self._cursor = cursor

    def claim_event(self, event_id: str) -> bool:
        self._cursor.execute(_CLAIM_EVENT_SQL, (event_id,))
        return self._cursor.rowcount == 1

    def org_id_for_customer(self, customer_id: str) -> int | None:
        self._cursor.execute(_ORG_FOR_CUSTOMER_SQL, (customer_id,))
        row = self._cursor.fetchone()
        return None if row is None else row[0]

    def upsert(self, org_id: int, update: BillingUpdate) -> None:
        self._cursor.execute(
            _UPSERT_BILLING_SQL,
            (
                org_id,
                update.stripe_customer_id,
                update.stripe_subscription_id,
                update.plan,
                update.subscription_status,
                update.current_period_end,
            ),
        )
        logger.info("Billing updated for org %s", org_id)


class PostgresBillingRepository:
    """
    Implements BillingRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, org_id: int) -> OrgBilling | None:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(_SELECT_BILLING_SQL, (org_id,))
            row = cursor.fetchone()
        if row is None:
            return None
        return OrgBilling(
            org_id=row[0],
            stripe_customer_id=row[1],
            stripe_subscription_id=row[2],
            plan=row[3],
            subscription_status=row[4],
            current_period_end=row[5],
        )

    @contextmanager
    def transaction(self) -> Iterator[PostgresBillingScope]:
        """Commit on normal exit; the pooled connection rolls back on error."""
        with self._pool.connection() as conn, conn.cursor() as cursor:
            yield PostgresBillingScope(cursor)
            conn.commit()
