# Overview: Retry helpers shared by the service layer and the replication worker.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


def backoff_delay(attempt: int, *, base: float, cap: float | None = None) -> float:
    """base * 2**attempt, capped."""
    delay = base * (2 ** max(attempt, 0))
    if cap is not None:
        delay = min(delay, cap)
    return delay


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a storage operation with retry on lock contention.

    Retries on OperationalError (database locked, deadlocks) and StaleDataError.
    The operation is expected to open its own store.transaction(), which has
    already rolled back by the time the error reaches us.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_delay(attempt, base=backoff_base))
