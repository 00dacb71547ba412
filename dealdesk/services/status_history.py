"""
Transaction Status History Log.

Append-only: rows are added through ``record_status_change`` and never
updated or deleted. Uses ``flush`` so callers keep transaction control;
the row commits (or rolls back) together with the status write it records.
"""

import logging

from dealdesk.models.transaction import TransactionStatusHistory

logger = logging.getLogger(__name__)

CREATED_REASON = "Transaction created"


def record_status_change(
    session,
    *,
    transaction_id: str,
    previous_status: str,
    new_status: str,
    changed_by_id: str,
    reason: str | None = None,
) -> TransactionStatusHistory:
    """Append a single history row and return the flushed instance."""
    entry = TransactionStatusHistory(
        transaction_id=transaction_id,
        previous_status=previous_status,
        new_status=new_status,
        changed_by_id=changed_by_id,
        reason=reason,
    )
    session.add(entry)
    session.flush()
    logger.debug(
        "Status history %s -> %s", previous_status, new_status,
        extra={
            "event_type": "transaction.status_logged",
            "transaction_id": transaction_id,
            "previous_status": previous_status,
            "new_status": new_status,
            "actor_id": changed_by_id,
        },
    )
    return entry


def record_creation(session, transaction, actor_id):
    """Anchor row written at creation: DRAFT → DRAFT."""
    return record_status_change(
        session,
        transaction_id=transaction.id,
        previous_status="DRAFT",
        new_status="DRAFT",
        changed_by_id=actor_id,
        reason=CREATED_REASON,
    )


def list_status_history(session, transaction_id):
    """History rows for a transaction, newest first."""
    return (
        session.query(TransactionStatusHistory)
        .filter(TransactionStatusHistory.transaction_id == transaction_id)
        .order_by(TransactionStatusHistory.created_at.desc())
        .all()
    )
