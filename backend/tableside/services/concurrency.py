# Overview: Service-layer helpers for concurrency; row locks and retry on transient database failures.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate untouched.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def flush_or_commit(*, commit: bool, action: str) -> None:
    """
    Push pending writes; commit too when the caller owns the transaction.

    Integrity violations become PersistenceError. OperationalError and
    StaleDataError propagate so run_with_retry can see them.
    """
    try:
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except IntegrityError as exc:
        if commit:
            db.session.rollback()
        raise PersistenceError(f"Failed to {action}", details=str(exc.orig))
