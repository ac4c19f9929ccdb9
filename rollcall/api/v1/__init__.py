"""
API v1 package.

Contains versioned API routes for email verification and billing.
"""

from rollcall.api.v1.billing import router as billing_router
from rollcall.api.v1.routes import router

__all__ = ["billing_router", "router"]
