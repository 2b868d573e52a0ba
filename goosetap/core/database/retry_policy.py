"""
Database Retry Policy - Infrastructure Resilience

Purpose
-------
Configurable retry policy for transient database failures with exponential
backoff and jitter. Wraps a whole unit of work (including the transaction it
opens) and re-runs it when the failure is classified as retriable.

Architecture Notes
------------------
**Retry Classification**:
- Retriable: OperationalError, DBAPIError (includes IntegrityError raised by
  concurrent first-contact inserts), StaleDataError (optimistic version
  mismatch).
- Non-retriable: everything else, in particular domain exceptions, which
  propagate on the first attempt.

**Backoff Strategy**:
- Formula: min(base * 2^(attempt-1), max) + random(0, jitter)

**Transaction Ownership**:
- Caller creates the transaction inside the operation.
- Never call `execute` from inside an open transaction.

Configuration
-------------
- DATABASE_RETRY_MAX_ATTEMPTS (default: 3)
- DATABASE_RETRY_INITIAL_BACKOFF_MS (default: 50)
- DATABASE_RETRY_MAX_BACKOFF_MS (default: 1000)
- DATABASE_RETRY_JITTER_MS (default: 50)

Usage Example
-------------
>>> retry_policy = DatabaseRetryPolicy.from_config()
>>>
>>> async def claim() -> dict:
>>>     async with DatabaseService.get_transaction() as session:
>>>         ...
>>>
>>> await retry_policy.execute(
>>>     claim,
>>>     operation_name="rewards.claim_daily",
>>>     context={"telegram_id": 123},
>>> )
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from goosetap.core.config.config import Config
from goosetap.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class DatabaseRetryConfig:
    """
    Configuration for database retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including initial attempt).
    initial_backoff_ms : int
        Initial backoff duration in milliseconds.
    max_backoff_ms : int
        Maximum backoff duration in milliseconds.
    jitter_ms : int
        Maximum random jitter to add to backoff in milliseconds.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered retriable.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: Tuple[Type[BaseException], ...] = (
        OperationalError,
        DBAPIError,
        StaleDataError,
    )

    @classmethod
    def from_config(cls) -> DatabaseRetryConfig:
        return cls(
            max_attempts=Config.DATABASE_RETRY_MAX_ATTEMPTS,
            initial_backoff_ms=Config.DATABASE_RETRY_INITIAL_BACKOFF_MS,
            max_backoff_ms=Config.DATABASE_RETRY_MAX_BACKOFF_MS,
            jitter_ms=Config.DATABASE_RETRY_JITTER_MS,
        )


# ============================================================================
# Retry Policy
# ============================================================================


class DatabaseRetryPolicy:
    """
    Execute async database operations with retry semantics.

    Public API
    ----------
    - from_config() -> Create policy from Config
    - execute(operation, operation_name, context) -> Execute with retries
    """

    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @classmethod
    def from_config(cls) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config())

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        """
        Compute backoff duration for given attempt with jitter.

        Parameters
        ----------
        attempt : int
            Current attempt number (1-indexed).
        """
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
        Execute async operation with retry logic for transient failures.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument async callable performing database work.
        operation_name : str
            Stable identifier for logging (e.g., "rewards.claim_task").
        context : Optional[dict[str, Any]]
            Additional structured context for logs.

        Raises
        ------
        Exception
            The last exception when retries are exhausted, or the first
            non-retriable exception unchanged.
        """
        ctx_extra = context.copy() if context else {}
        ctx_extra["operation"] = operation_name

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
                    "Database operation failed",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "will_retry": will_retry,
                    },
                )

                if not will_retry:
                    logger.error(
                        "Database operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": error_type,
                            "max_attempts": self._config.max_attempts,
                        },
                        exc_info=True,
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.debug(
                    "Backing off before retry",
                    extra={**ctx_extra, "attempt": attempt, "backoff_ms": backoff_ms},
                )
                await asyncio.sleep(backoff_ms / 1000.0)
