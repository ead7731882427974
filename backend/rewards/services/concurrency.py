# Overview: Row locking and retry helpers shared by every ledger-mutating service.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for balance, budget and capacity checks.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers
    instead); PostgreSQL and MySQL honor it. The version_id columns on
    User and Event catch anything the lock does not.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a check-then-write operation, retrying it from the top on
    concurrency failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (a concurrent writer bumped a version_id we read). The session is rolled
    back before each retry so the next attempt re-reads fresh rows.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Concurrent update detected (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` and commit its writes as a single unit.

    A concurrency failure at flush or commit time rolls everything back and
    re-runs `func` from the top, so validation always sees the rows it writes.
    Domain errors (RewardsError) are not retried; the caller rolls back.
    """
    def _op():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
