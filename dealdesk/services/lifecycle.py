"""
Transaction Lifecycle: status transition rules.

Manages transaction status moves with:
  - Transition validation (TRANSACTION_TRANSITIONS)
  - One history row per move, in the caller's unit of work
  - Side-effect timestamps (accepted_date, completion_date)

Edges:
    DRAFT    → PENDING | CANCELLED
    PENDING  → ACCEPTED | REJECTED | CANCELLED
    ACCEPTED → COMPLETED | CANCELLED
    REJECTED, CANCELLED, COMPLETED are terminal

Two moves are automatic and only happen through offers:
DRAFT → PENDING on the first offer and PENDING → ACCEPTED on acceptance.
``MANUAL_TARGETS`` lists what ``update_transaction`` may request directly.

Usage:
    from dealdesk.services.lifecycle import transition_transaction

    transition_transaction(session, txn, "COMPLETED", actor_id, reason="Closed")
"""

from datetime import datetime, timezone

from dealdesk.core.exceptions import ConflictError, ValidationError
from dealdesk.models.transaction import TERMINAL_STATUSES, TRANSACTION_STATUSES, TRANSACTION_TRANSITIONS
from dealdesk.services.status_history import record_status_change

# Targets a caller may set through update_transaction; ACCEPTED needs an
# accepted offer (final_amount) and PENDING needs an offer.
MANUAL_TARGETS = {"REJECTED", "CANCELLED", "COMPLETED"}


def validate_transition(current: str, target: str) -> dict:
    """
    Check whether *current* → *target* is an edge of the state machine.

    Returns:
        {"valid": bool, "from": str, "to": str, "reason": str|None}
    """
    if target not in TRANSACTION_STATUSES:
        return {"valid": False, "from": current, "to": target,
                "reason": f"Unknown status: {target}"}
    if current in TERMINAL_STATUSES:
        return {"valid": False, "from": current, "to": target,
                "reason": f"Cannot move from '{current}' to '{target}': {current} is final"}
    if target not in TRANSACTION_TRANSITIONS.get(current, []):
        return {"valid": False, "from": current, "to": target,
                "reason": f"Cannot move from '{current}' to '{target}'"}
    return {"valid": True, "from": current, "to": target, "reason": None}


def get_available_transitions(status: str, *, manual_only: bool = False) -> list[str]:
    """Statuses reachable in one step from *status*."""
    targets = TRANSACTION_TRANSITIONS.get(status, [])
    if manual_only:
        return [t for t in targets if t in MANUAL_TARGETS]
    return list(targets)


def transition_transaction(session, transaction, target, actor_id, *, reason=None):
    """
    Move *transaction* to *target*, stamp side-effect dates, append history.

    Flushes only; the caller commits.

    Returns:
        The flushed TransactionStatusHistory row.

    Raises:
        ValidationError: *target* is not a known status.
        ConflictError: *target* is not reachable from the current status.
    """
    if target not in TRANSACTION_STATUSES:
        raise ValidationError(
            f"Unknown transaction status: {target}",
            details={"status": f"must be one of {sorted(TRANSACTION_STATUSES)}"},
        )
    check = validate_transition(transaction.status, target)
    if not check["valid"]:
        raise ConflictError(
            check["reason"],
            code="INVALID_STATUS_TRANSITION",
            details={"from": check["from"], "to": check["to"],
                     "allowed": get_available_transitions(transaction.status)},
        )

    now = datetime.now(timezone.utc)
    previous = transaction.status
    transaction.status = target
    if target == "ACCEPTED":
        transaction.accepted_date = now
    elif target == "COMPLETED":
        transaction.completion_date = now

    return record_status_change(
        session,
        transaction_id=transaction.id,
        previous_status=previous,
        new_status=target,
        changed_by_id=actor_id,
        reason=reason,
    )
