"""Repository adapters - Database implementations."""

from .billing import PostgresBillingRepository
from .postgres import PostgresVerificationRepository, run_migrations

__all__ = ["PostgresBillingRepository", "PostgresVerificationRepository", "run_migrations"]
