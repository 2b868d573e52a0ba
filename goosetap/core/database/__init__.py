"""
Database subsystem: async engine/session management, declarative base and
retry policy.
"""

from goosetap.core.database.base import Base, TimestampMixin, ensure_utc, utcnow
from goosetap.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from goosetap.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "ensure_utc",
    "utcnow",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
]
