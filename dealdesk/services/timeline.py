"""
Transaction timeline.

Merges the status history, completed milestones and offers of one
transaction into a single activity feed, newest first:

    {"type": "status_change" | "milestone" | "offer",
     "timestamp": iso, "title": str, "description": str | None,
     "actor_id": str, "status": str (status changes and offers only)}
"""

from datetime import datetime, timezone

from dealdesk.services.authorization import get_authorized_transaction
from dealdesk.services.base import EngineService
from dealdesk.services.status_history import list_status_history
from dealdesk.services.unit_of_work import unit_of_work
from dealdesk.utils.helpers import as_utc

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _status_entry(row):
    if row.previous_status == row.new_status:
        title = "Transaction created"
    else:
        title = f"Status changed from {row.previous_status} to {row.new_status}"
    return {
        "type": "status_change",
        "timestamp": as_utc(row.created_at),
        "title": title,
        "description": row.reason,
        "actor_id": row.changed_by_id,
        "status": row.new_status,
    }


def _milestone_entry(milestone):
    return {
        "type": "milestone",
        "timestamp": as_utc(milestone.completed_at),
        "title": f"Milestone completed: {milestone.title}",
        "description": milestone.description,
        "actor_id": milestone.completed_by_id,
    }


def _offer_entry(offer):
    kind = "Counter-offer" if offer.parent_offer_id else "Offer"
    return {
        "type": "offer",
        "timestamp": as_utc(offer.created_at),
        "title": f"{kind} of {offer.amount:,.2f} {offer.currency}",
        "description": offer.message,
        "actor_id": offer.offerer_id,
        "status": offer.status,
    }


def build_timeline(status_rows, milestones, offers) -> list[dict]:
    """Merge already-loaded rows into timeline entries, newest first."""
    entries = [_status_entry(r) for r in status_rows]
    entries += [_milestone_entry(m) for m in milestones if m.is_completed]
    entries += [_offer_entry(o) for o in offers]
    entries.sort(key=lambda e: e["timestamp"] or _EPOCH, reverse=True)
    for entry in entries:
        entry["timestamp"] = entry["timestamp"].isoformat() if entry["timestamp"] else None
    return entries


class TimelineService(EngineService):

    def get_transaction_timeline(self, transaction_id, actor_id) -> list[dict]:
        """Activity feed for one transaction; same authorization as reads."""
        with unit_of_work(self.session, "get_transaction_timeline", read_only=True,
                          transaction_id=transaction_id, actor_id=actor_id):
            txn = get_authorized_transaction(self.session, transaction_id, actor_id, action="view")
            return build_timeline(
                list_status_history(self.session, txn.id),
                txn.milestones.all(),
                txn.offers.all(),
            )
