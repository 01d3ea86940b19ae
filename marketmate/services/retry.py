from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.config import settings
from marketmate.core.errors import ConflictError


log = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def compute_backoff_seconds(attempt: int, base: float = 0.05, cap: float = 1.0) -> float:
    # exponential backoff with jitter
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    return exp + random.uniform(0, exp / 3)


def is_retryable(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in RETRYABLE_SQLSTATES


async def run_atomic(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
) -> T:
    """
    Run ``work`` and commit it as one transaction.

    Any exception rolls everything back. Serialization failures and
    deadlocks re-run ``work`` from scratch a fixed number of times, then
    surface as ConflictError.
    """
    max_attempts = attempts or settings.tx_max_attempts
    for attempt in range(1, max_attempts + 1):
        try:
            result = await work()
            await db.commit()
            return result
        except DBAPIError as e:
            await db.rollback()
            if not is_retryable(e):
                raise
            if attempt >= max_attempts:
                log.warning("transaction conflict: giving up after %d attempts", attempt)
                raise ConflictError("Concurrent update conflict, please retry") from e
            delay = compute_backoff_seconds(attempt)
            log.info("transaction conflict: retry %d/%d in %.3fs", attempt, max_attempts, delay)
            await asyncio.sleep(delay)
        except Exception:
            await db.rollback()
            raise
    raise AssertionError("unreachable")
