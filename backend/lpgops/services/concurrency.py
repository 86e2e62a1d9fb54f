# Overview: Row locking and unit-of-work retry for the ledger write paths.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a ledger write is about to change.

    NOTE: SQLite ignores the clause; there the customer version_id check
    is what catches a concurrent writer.
    """
    return query.with_for_update()


def lock_row(model, row_id: int):
    """Lock one customer/stock row by primary key; None when it does not exist."""
    return lock_for_update(db.session.query(model).filter_by(id=row_id)).first()


def run_with_retry(func, *, description: str = "ledger write", attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one recorder or reverser unit of work, retrying it from scratch when
    it loses a race.

    func must do its own reads and commit: each retry starts from a
    rolled-back session, so a second attempt sees the winner's committed
    balance, counters and void flag. Lock timeouts (OperationalError) and
    customer version conflicts (StaleDataError) are retried; anything else,
    including the domain errors, rolls back and propagates unchanged.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts:
                logger.warning("%s gave up after %s attempts: %s", description, attempts, exc)
                raise
            logger.info("%s lost a concurrent update (attempt %s of %s), retrying: %s", description, attempt, attempts, exc)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise
