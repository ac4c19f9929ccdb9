"""
Integration test fixtures.

Requires PostgreSQL (DATABASE_URL); every test here is skipped otherwise.
"""

import pytest
from psycopg_pool import ConnectionPool

from rollcall.adapters.repository.postgres import PostgresVerificationRepository


@pytest.fixture
def repository(db: ConnectionPool) -> PostgresVerificationRepository:
    """Create repository instance for each test, on clean tables."""
    return PostgresVerificationRepository(db)


def fetch_rows(pool: ConnectionPool, email: str) -> list[tuple]:
    """All verification rows for an email, oldest first."""
    with pool.connection() as conn, conn.cursor() as cursor:
        cursor.execute(
            """
            SELECT id, code, attempts, resend_count, verified
            FROM email_verification_codes
            WHERE email = %s
            ORDER BY id
            """,
            (email,),
        )
        return cursor.fetchall()


@pytest.fixture
def rows(db: ConnectionPool):
    """Callable returning (id, code, attempts, resend_count, verified) rows for an email."""
    return lambda email: fetch_rows(db, email)
