# Overview: Retry helper for terminal-local database writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError ("database is locked" when two terminal
    windows write the same SQLite file) and StaleDataError.
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
            logger.debug("Retrying local write after %s (attempt %d)", type(exc).__name__, attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

