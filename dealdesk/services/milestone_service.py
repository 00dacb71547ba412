"""
Milestone Tracker.

Instantiates the default closing checklist when a transaction is created
and records completion. Completion order is not enforced: any milestone may
be completed at any time by an authorized actor. Completion is one-way;
completing an already completed milestone fails with
``MILESTONE_ALREADY_COMPLETED`` and leaves the original stamp untouched.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update

from dealdesk.core.exceptions import ConflictError
from dealdesk.models.transaction import TransactionMilestone
from dealdesk.services.authorization import get_authorized_milestone
from dealdesk.services.base import EngineService
from dealdesk.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


# ── Default checklist templates ──────────────────────────────────────────

_BASE_MILESTONES = [
    {"title": "Initial Offer", "description": "Submit initial offer for the property",
     "order": 1, "is_required": True},
    {"title": "Offer Acceptance", "description": "Offer accepted by seller",
     "order": 2, "is_required": True},
    {"title": "Documentation Review", "description": "Review and upload required documents",
     "order": 3, "is_required": True},
]

_PURCHASE_MILESTONES = [
    {"title": "Property Inspection", "description": "Conduct property inspection",
     "order": 4, "is_required": True},
    {"title": "Mortgage Approval", "description": "Obtain mortgage approval",
     "order": 5, "is_required": False},
    {"title": "Final Walkthrough", "description": "Final property walkthrough",
     "order": 6, "is_required": True},
    {"title": "Closing", "description": "Complete property purchase",
     "order": 7, "is_required": True},
]

_LEASE_MILESTONES = [
    {"title": "Lease Agreement", "description": "Sign lease agreement",
     "order": 4, "is_required": True},
    {"title": "Security Deposit", "description": "Pay security deposit",
     "order": 5, "is_required": True},
    {"title": "Move-in Inspection", "description": "Conduct move-in inspection",
     "order": 6, "is_required": True},
]


def default_milestones(transaction_type: str) -> list[dict]:
    """Checklist template for a transaction type (fresh dicts each call)."""
    suffix = _PURCHASE_MILESTONES if transaction_type == "PURCHASE" else _LEASE_MILESTONES
    return [dict(m) for m in _BASE_MILESTONES + suffix]


def create_default_milestones(session, transaction) -> list[TransactionMilestone]:
    """Insert the template for *transaction*; flushes, caller commits."""
    rows = [
        TransactionMilestone(transaction_id=transaction.id, **template)
        for template in default_milestones(transaction.type)
    ]
    session.add_all(rows)
    session.flush()
    return rows


def _already_completed(milestone):
    return ConflictError(
        f"Milestone '{milestone.title}' is already completed",
        code="MILESTONE_ALREADY_COMPLETED",
        details={"completed_at": milestone.completed_at.isoformat(),
                 "completed_by_id": milestone.completed_by_id},
    )


class MilestoneService(EngineService):

    def complete_milestone(self, milestone_id, actor_id) -> dict:
        """Stamp ``completed_at``/``completed_by_id`` on a milestone.

        The stamp is written with ``UPDATE ... WHERE completed_at IS NULL``,
        so a completion committed by another request after this one loaded
        the row is never overwritten.

        Raises:
            NotFoundError: MILESTONE_NOT_FOUND.
            UnauthorizedError: actor outside the transaction's relation set.
            ConflictError: MILESTONE_ALREADY_COMPLETED.
        """
        with unit_of_work(self.session, "complete_milestone",
                          milestone_id=milestone_id, actor_id=actor_id):
            milestone = get_authorized_milestone(
                self.session, milestone_id, actor_id, action="complete",
            )
            if milestone.completed_at is not None:
                raise _already_completed(milestone)

            result = self.session.execute(
                update(TransactionMilestone)
                .where(TransactionMilestone.id == milestone.id,
                       TransactionMilestone.completed_at.is_(None))
                .values(completed_at=datetime.now(timezone.utc), completed_by_id=actor_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.refresh(milestone)
                raise _already_completed(milestone)
            transaction_id = milestone.transaction_id

        logger.info(
            "Milestone '%s' completed", milestone.title,
            extra={"event_type": "milestone.completed", "milestone_id": milestone_id,
                   "transaction_id": transaction_id, "actor_id": actor_id},
        )
        self._invalidate(transaction_id)
        return milestone.to_dict()
