"""
PostgreSQL repository adapter - Implements VerificationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Concurrency Design - Per-Email Serialization:
---------------------------------------------
Cooldown, resend-limit and attempt-limit rules are all check-then-write.
Each scope runs in a single transaction that first takes
``pg_advisory_xact_lock`` keyed by a hash of the normalized email, so two
requests for the same email queue behind each other while requests for
different emails proceed in parallel. The lock is released automatically
on commit or rollback.

Marking the record verified and flagging the student account happen in
the same transaction, so either both are stored or neither is.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from psycopg import Cursor
from psycopg_pool import ConnectionPool

from rollcall.domain.ports import VerificationRecord

logger = logging.getLogger(__name__)

_LOCK_SQL = "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))"

_SELECT_LATEST_SQL = """
    SELECT id, email, code, expires_at, attempts, resend_count, last_sent_at, verified
    FROM email_verification_codes
    WHERE email = %s AND verified = FALSE
    ORDER BY created_at DESC, id DESC
    LIMIT 1
"""

_INSERT_SQL = """
    INSERT INTO email_verification_codes
        (email, code, expires_at, attempts, resend_count, last_sent_at, verified)
    VALUES (%s, %s, %s, 0, 0, %s, FALSE)
    RETURNING id
"""

_REFRESH_SQL = """
    UPDATE email_verification_codes
    SET code = %s,
        expires_at = %s,
        last_sent_at = %s,
        resend_count = COALESCE(resend_count, 0) + 1
    WHERE id = %s
"""

_SET_ATTEMPTS_SQL = "UPDATE email_verification_codes SET attempts = %s WHERE id = %s"

_MARK_RECORD_VERIFIED_SQL = "UPDATE email_verification_codes SET verified = TRUE WHERE id = %s"

_MARK_STUDENT_VERIFIED_SQL = "UPDATE students SET email_verified = TRUE WHERE email = %s"


class PostgresVerificationScope:
    """
    Implements VerificationScope protocol on an open cursor.

    Bound to one email and one transaction; created only by
    PostgresVerificationRepository.scope().
    """

    def __init__(self, cursor: Cursor, email: str) -> None:
        self._cursor = cursor
        self._email = email

    def latest_unverified(self) -> VerificationRecord | None:
        self._cursor.execute(_SELECT_LATEST_SQL, (self._email,))
        row = self._cursor.fetchone()
        if row is None:
            return None
        return VerificationRecord(
            id=row[0],
            email=row[1],
            code=row[2],
            expires_at=row[3],
            attempts=row[4],
            resend_count=row[5],
            last_sent_at=row[6],
            verified=row[7],
        )

    def insert(self, code: str, expires_at: datetime, sent_at: datetime) -> int:
        self._cursor.execute(_INSERT_SQL, (self._email, code, expires_at, sent_at))
        row = self._cursor.fetchone()
        return row[0]

    def refresh(
        self, record_id: int, code: str, expires_at: datetime, sent_at: datetime
    ) -> None:
        self._cursor.execute(_REFRESH_SQL, (code, expires_at, sent_at, record_id))

    def set_attempts(self, record_id: int, attempts: int) -> None:
        self._cursor.execute(_SET_ATTEMPTS_SQL, (attempts, record_id))

    def mark_verified(self, record_id: int) -> None:
        self._cursor.execute(_MARK_RECORD_VERIFIED_SQL, (record_id,))
        self._cursor.execute(_MARK_STUDENT_VERIFIED_SQL, (self._email,))
        if self._cursor.rowcount == 0:
            logger.warning("Verified email has no student account: %s", self._email)


class PostgresVerificationRepository:
    """
    Implements VerificationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def scope(self, email: str) -> Iterator[PostgresVerificationScope]:
        """
        Open a transaction holding the advisory lock for ``email``.

        Commits when the block exits normally. If the block raises, the
        pooled connection context rolls the transaction back.

        Args:
            email: Normalized email address
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(_LOCK_SQL, (email,))
            yield PostgresVerificationScope(cursor, email)
            conn.commit()


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: rollcall/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
