"""
Database Retry Policy

Purpose
-------
Retry whole player operations that lost an optimistic-concurrency race.

A player save is a compare-and-swap on the row's `version` column. When two
requests for the same player interleave, the loser's save matches no row and
raises a conflict; the only correct recovery is to reload the player and run
the entire operation again. This module owns that loop.

Responsibilities
----------------
- Execute async operations with retry logic
- Classify errors as retriable or non-retriable
- Exponential backoff with jitter between attempts
- Structured logs for each failed attempt and for the final give-up

Non-Responsibilities
--------------------
- Transaction management (the retried operation opens its own transaction)
- Business rules (domain failures are never retried)

Backoff Strategy
----------------
min(initial * 2^(attempt-1), max) + random(0, jitter)

Configuration
-------------
- VERSION_CONFLICT_MAX_ATTEMPTS (default: 5)
- VERSION_CONFLICT_INITIAL_BACKOFF_MS (default: 10)
- VERSION_CONFLICT_MAX_BACKOFF_MS (default: 200)
- VERSION_CONFLICT_JITTER_MS (default: 10)

Retry Patterns
--------------
Retry the operation that creates the transaction, never work inside one:

```python
async def operation():
    async with DatabaseService.get_transaction() as session:
        ...

await retry_policy.execute(operation, operation_name="energy.tap")
```
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm.exc import StaleDataError

from warthug.core.config.config import Config
from warthug.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class DatabaseRetryConfig:
    """
    Configuration for retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including the initial attempt).
    initial_backoff_ms : int
        Backoff before the second attempt.
    max_backoff_ms : int
        Upper bound on the exponential part of the backoff.
    jitter_ms : int
        Maximum random jitter added to each backoff.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered retriable.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: Tuple[Type[BaseException], ...] = (StaleDataError,)

    @classmethod
    def from_config(
        cls,
        retriable_exceptions: Tuple[Type[BaseException], ...] = (),
    ) -> DatabaseRetryConfig:
        """
        Build retry configuration from Config.

        `retriable_exceptions` extends the default set; callers pass their
        own conflict error type here.
        """
        return cls(
            max_attempts=int(getattr(Config, "VERSION_CONFLICT_MAX_ATTEMPTS", 5)),
            initial_backoff_ms=int(
                getattr(Config, "VERSION_CONFLICT_INITIAL_BACKOFF_MS", 10)
            ),
            max_backoff_ms=int(getattr(Config, "VERSION_CONFLICT_MAX_BACKOFF_MS", 200)),
            jitter_ms=int(getattr(Config, "VERSION_CONFLICT_JITTER_MS", 10)),
            retriable_exceptions=(StaleDataError, *retriable_exceptions),
        )


# ============================================================================
# Retry Policy
# ============================================================================


class DatabaseRetryPolicy:
    """
    Execute async operations with retry semantics.

    Usage
    -----
    >>> policy = DatabaseRetryPolicy.from_config((VersionConflictError,))
    >>> await policy.execute(do_tap, operation_name="energy.tap")
    """

    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @classmethod
    def from_config(
        cls,
        retriable_exceptions: Tuple[Type[BaseException], ...] = (),
    ) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config(retriable_exceptions))

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        """Exponential backoff for the given 1-indexed attempt, capped and jittered."""
        exponent = max(attempt - 1, 0)
        base = self._config.initial_backoff_ms * (2**exponent)
        capped = min(base, self._config.max_backoff_ms)

        jitter = (
            random.randint(0, self._config.jitter_ms)
            if self._config.jitter_ms > 0
            else 0
        )

        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run `operation`, retrying retriable failures up to max_attempts.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument coroutine factory; called once per attempt.
        operation_name : str
            Stable identifier for logs (e.g. "cards.upgrade").
        context : Optional[dict[str, Any]]
            Additional structured context for logs.

        Raises
        ------
        BaseException
            The last exception when retries are exhausted, or any
            non-retriable exception immediately.
        """
        ctx_extra = context.copy() if context else {}
        ctx_extra["operation_name"] = operation_name

        attempt = 0

        while True:
            attempt += 1

            try:
                return await operation()

            except Exception as exc:
                if not self._is_retriable(exc):
                    raise

                error_type = type(exc).__name__
                will_retry = attempt < self._config.max_attempts

                logger.warning(
                    "Operation lost a concurrent update race",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "will_retry": will_retry,
                    },
                )

                if not will_retry:
                    logger.error(
                        "Operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": error_type,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.debug(
                    "Backing off before retry",
                    extra={**ctx_extra, "attempt": attempt, "backoff_ms": backoff_ms},
                )
                await asyncio.sleep(backoff_ms / 1000.0)
