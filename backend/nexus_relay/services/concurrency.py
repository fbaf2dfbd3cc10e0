# Overview: Service-layer concurrency helpers; retry transient storage failures with backoff.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class StorageUnavailable(Exception):
    """
    Raised when the database keeps failing after retries.

    Transient from the caller's point of view: the whole batch can be retried,
    since every append is idempotent.
    """
    pass


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, dropped connections) and
    StaleDataError (optimistic locking conflicts). Once attempts are exhausted
    the failure surfaces as StorageUnavailable.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error(
                    "Storage operation failed after %d attempts: %s", attempts, exc
                )
                raise StorageUnavailable("Storage temporarily unavailable") from exc
            time.sleep(backoff_base * (2 ** attempt))

