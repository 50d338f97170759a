# Overview: Retry and row-locking helpers for registration, payment and booking writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock contention (OperationalError) and a version_id mismatch on
# Registration, Payment or Accommodation (StaleDataError)
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a booking decrements.

    NOTE: SQLite ignores FOR UPDATE; Accommodation.version_id still catches
    the lost update there.
    """
    return query.with_for_update()


def run_with_retry(func, *, label: str = "write", attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work, retrying when another writer got there first.

    func owns its transaction: it re-reads the aggregate, mutates it and
    commits. The session is rolled back before every retry. Errors other
    than RETRYABLE_ERRORS propagate untouched on the first attempt.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as e:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error("%s failed after %d attempts: %s", label, attempts, e)
                raise
            current_app.logger.warning(
                "%s conflicted (attempt %d/%d), retrying: %s", label, attempt, attempts, e.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
    return None
