"""
Transaction Authorization Guard.

One predicate for every read and write: an actor may act on a transaction
iff it is the buyer, the seller, the agent, or the owner of the property.
There is no role hierarchy and no admin override.

Every operation fetches its entity through the guarded-fetch helpers
below instead of ``session.get()`` directly, so the lookup and the
authorization check cannot drift apart:

    txn = get_authorized_transaction(session, txn_id, actor_id, action="update")
    offer = get_authorized_offer(session, offer_id, actor_id, action="respond to")

Not-found and unauthorized are reported distinctly by default. With
``HIDE_UNAUTHORIZED_AS_NOT_FOUND`` enabled an unauthorized actor gets the
same NotFoundError a missing id produces, so existence cannot be discovered.
"""

import logging

from flask import current_app, has_app_context

from dealdesk.core.exceptions import NotFoundError, UnauthorizedError
from dealdesk.models.transaction import Offer, Transaction, TransactionMilestone

logger = logging.getLogger(__name__)


def is_authorized(transaction: Transaction, actor_id: str | None) -> bool:
    """True if *actor_id* is in the transaction's relation set."""
    if not actor_id:
        return False
    return actor_id in transaction.party_ids()


def can_create_for_property(property_owner_id, data: dict, actor_id) -> bool:
    """Creation check: owner of the property, declared seller or declared agent."""
    if not actor_id:
        return False
    return actor_id in (property_owner_id, data.get("seller_id"), data.get("agent_id"))


def _hide_unauthorized() -> bool:
    if has_app_context():
        return bool(current_app.config.get("HIDE_UNAUTHORIZED_AS_NOT_FOUND", False))
    return False


def _deny(resource, resource_id, actor_id, action):
    logger.warning(
        "Denied %s on %s %s for actor %s", action, resource, resource_id, actor_id,
        extra={"event_type": "authz.denied", "actor_id": actor_id},
    )
    if _hide_unauthorized():
        raise NotFoundError(resource, resource_id)
    raise UnauthorizedError(action, resource, resource_id, actor_id)


def get_authorized_transaction(session, transaction_id, actor_id, *, action="access"):
    """Fetch a transaction the actor may act on.

    Raises:
        NotFoundError: no such transaction.
        UnauthorizedError: actor outside the relation set.
    """
    txn = session.get(Transaction, transaction_id) if transaction_id else None
    if txn is None:
        raise NotFoundError("Transaction", transaction_id)
    if not is_authorized(txn, actor_id):
        _deny("Transaction", transaction_id, actor_id, action)
    return txn


def get_authorized_offer(session, offer_id, actor_id, *, action="access"):
    """Fetch an offer whose transaction the actor may act on."""
    offer = session.get(Offer, offer_id) if offer_id else None
    if offer is None:
        raise NotFoundError("Offer", offer_id)
    if not is_authorized(offer.transaction, actor_id):
        _deny("Offer", offer_id, actor_id, action)
    return offer


def get_authorized_milestone(session, milestone_id, actor_id, *, action="access"):
    """Fetch a milestone whose transaction the actor may act on."""
    milestone = session.get(TransactionMilestone, milestone_id) if milestone_id else None
    if milestone is None:
        raise NotFoundError("Milestone", milestone_id)
    if not is_authorized(milestone.transaction, actor_id):
        _deny("Milestone", milestone_id, actor_id, action)
    return milestone
