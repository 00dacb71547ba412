"""
Atomic unit of work around one engine operation.

Replaces the repeated try/commit/rollback block every operation needs:

    with unit_of_work(session, "respond_to_offer", offer_id=offer_id):
        ...  # flush-only domain writes

On exit the session is committed. On failure it is rolled back, so no
partial write is ever visible, and the error is surfaced as:

    DealDeskError     → re-raised unchanged (not found, unauthorized, …)
    StaleDataError    → ConflictError(VERSION_CONFLICT), a concurrent writer won
    anything else     → logged with context, re-raised as PersistenceError

``read_only=True`` gives reads the same error translation without a commit.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.orm.exc import StaleDataError

from dealdesk.core.exceptions import ConflictError, DealDeskError, PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session, operation, *, read_only=False, **context):
    try:
        yield session
        if not read_only:
            session.commit()
    except DealDeskError:
        session.rollback()
        raise
    except StaleDataError as exc:
        session.rollback()
        logger.warning(
            "%s lost a concurrent update", operation,
            extra={"event_type": "uow.version_conflict", "operation": operation, **context},
        )
        raise ConflictError(
            "The record was modified by another request; reload and retry",
            code="VERSION_CONFLICT",
        ) from exc
    except Exception as exc:
        session.rollback()
        logger.exception(
            "%s failed", operation,
            extra={"event_type": "uow.failed", "operation": operation, **context},
        )
        raise PersistenceError(operation) from exc
