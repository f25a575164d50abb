from warthug.core.database.base import IdModel, TimestampedModel, as_utc, utc_now
from warthug.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from warthug.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
    "DatabaseService",
    "IdModel",
    "TimestampedModel",
    "as_utc",
    "utc_now",
]
