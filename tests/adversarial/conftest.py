"""
Shared fixtures for adversarial tests.

Provides a service wired to the real PostgreSQL repository so that
concurrent abuse is checked against actual row locking.
"""

import pytest
from psycopg_pool import ConnectionPool

from rollcall.adapters.repository.postgres import PostgresVerificationRepository
from rollcall.domain.verification import EmailVerificationService


@pytest.fixture
def service(db: ConnectionPool, sender, clock) -> EmailVerificationService:
    """Service with default limits over a clean database."""
    return EmailVerificationService(
        repository=PostgresVerificationRepository(db),
        email_sender=sender,
        clock=clock,
    )


@pytest.fixture
def attempts(db: ConnectionPool):
    """Callable returning the attempts counter of the newest record for an email."""

    def read(email: str) -> int:
        with db.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                "SELECT attempts FROM email_verification_codes WHERE email = %s "
                "ORDER BY id DESC LIMIT 1",
                (email,),
            )
            return cursor.fetchone()[0]

    return read
