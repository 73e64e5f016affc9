"""Transaction runner with optimistic concurrency retries."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import get_settings
from app.core.errors import ConflictError, PersistenceError, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    name: str,
    context: Mapping[str, Any] | None = None,
    attempts: int | None = None,
) -> T:
    """Run ``operation`` and commit, retrying when a concurrent writer wins.

    ``operation`` must re-read every row it depends on because each retry
    starts from a rolled back session. Domain errors abort immediately,
    stale version checks and unique violations are retried, and any other
    database failure is logged and surfaced as :class:`PersistenceError`.

    A transaction left open by earlier reads on the same session (the
    request's user lookup, for instance) is committed first, so the
    operation never counts rows against a snapshot older than its locks.
    """

    max_attempts = attempts if attempts is not None else get_settings().membership_retry_attempts
    max_attempts = max(int(max_attempts), 1)
    details = dict(context or {})

    if db.in_transaction():
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("%s could not close the previous transaction %s", name, details)
            raise PersistenceError(name, details) from exc

    for attempt in range(1, max_attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except ServiceError:
            db.rollback()
            raise
        except (StaleDataError, IntegrityError) as exc:
            db.rollback()
            logger.info(
                "%s lost a concurrent update on attempt %s/%s (%s) %s",
                name,
                attempt,
                max_attempts,
                type(exc).__name__,
                details,
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("%s failed %s", name, details)
            raise PersistenceError(name, details) from exc
        except Exception:
            db.rollback()
            raise

    logger.warning("%s gave up after %s attempts %s", name, max_attempts, details)
    raise ConflictError("The resource was modified concurrently, please retry")
