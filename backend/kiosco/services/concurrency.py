# Overview: Row locking, retry and timeout classification shared by the gateway and procedures.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

# Driver messages for a statement/lock that ran out of time
TIMEOUT_MARKERS = (
    "statement timeout",
    "lock timeout",
    "database is locked",
    "lock wait timeout",
    "timeout expired",
    "timed out",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_timeout(exc: BaseException) -> bool:
    """True when the data store gave up waiting (pool checkout, statement or lock)."""
    if isinstance(exc, PoolTimeoutError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in TIMEOUT_MARKERS)
    return False


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries deadlocks and StaleDataError. A timeout is raised at once: the
    write may have landed, and running a stock decrement twice is not safe.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if is_timeout(exc):
                raise
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
