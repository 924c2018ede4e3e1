"""Deadlock retry helper for write transactions."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL ER_LOCK_DEADLOCK, SQL Server deadlock victim
_DEADLOCK_CODES = {1213, 1205}
_DEADLOCK_SQLSTATE = "40001"


def _is_deadlock(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    args = getattr(orig, "args", None) or ()
    if not args:
        return False
    first = args[0]
    if isinstance(first, tuple) and first:
        first = first[0]
    if isinstance(first, int):
        return first in _DEADLOCK_CODES
    return str(first) == _DEADLOCK_SQLSTATE


def run_with_deadlock_retry(
    fn: Callable[[], T],
    max_retries: int = 3,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Run ``fn`` (one whole transaction), retrying it on deadlock.

    A deadlock rolls back the entire transaction, so ``fn`` must open its
    own transaction; single statements are never retried in isolation.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")
    sleep = sleep or time.sleep
    attempt = 1
    while True:
        try:
            return fn()
        except DBAPIError as e:
            if not _is_deadlock(e) or attempt >= max_retries:
                # Non-deadlocks and the final attempt surface the original error
                logger.error("transaction failed (attempt %d/%d): %s", attempt, max_retries, e)
                raise
            delay = min(1000 * (2 ** (attempt - 1)), 5000)
            jitter = random.uniform(0, delay * 0.1)
            total_delay = (delay + jitter) / 1000.0
            logger.warning(
                "deadlock detected (attempt %d/%d), retrying in %.2fs",
                attempt, max_retries, total_delay,
            )
            sleep(total_delay)
            attempt += 1
