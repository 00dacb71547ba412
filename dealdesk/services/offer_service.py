"""
Offer Negotiation Engine.

Creates offers and processes responses; derives the two automatic
transaction moves from offer outcomes:

    first offer on a DRAFT transaction  → transaction PENDING
    offer ACCEPTED                      → transaction ACCEPTED, final_amount set

Business rules enforced here:
    - Offers are only taken while the transaction is DRAFT or PENDING.
    - Only a PENDING offer can be answered; answers are ACCEPTED, REJECTED
      or COUNTERED.
    - An offerer cannot accept or counter their own offer (rejecting it is a
      withdrawal and is allowed).
    - An expired offer (``valid_until`` in the past) cannot be accepted.
    - Answering one offer never touches its siblings; competing offers must
      be rejected explicitly.
    - A counter is always a new row whose ``parent_offer_id`` is the
      countered offer; the transaction status is unchanged.

Each operation is one unit of work: offer update, counter insert,
transaction move and history row commit together or not at all.
"""

import logging
from datetime import datetime, timezone

from dealdesk.core.exceptions import ConflictError, ValidationError
from dealdesk.models.transaction import OFFER_RESPONSE_STATUSES, Offer
from dealdesk.services.authorization import get_authorized_offer, get_authorized_transaction
from dealdesk.services.base import EngineService
from dealdesk.services.lifecycle import transition_transaction
from dealdesk.services.unit_of_work import unit_of_work
from dealdesk.utils.helpers import as_utc, parse_datetime, to_decimal

logger = logging.getLogger(__name__)

OPEN_FOR_OFFERS = {"DRAFT", "PENDING"}


def _validated_amount(value, field="amount"):
    if value is None:
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "must be a number"}) from exc
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", details={field: "must be >= 0"})
    return amount


def _validated_datetime(value, field):
    try:
        return parse_datetime(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid datetime"}) from exc


class OfferService(EngineService):

    # ── Create ───────────────────────────────────────────────────────────

    def create_offer(self, data: dict, actor_id: str) -> dict:
        """
        Place a new PENDING offer on a transaction.

        Args:
            data: {"transaction_id", "amount", "offerer_id"?, "currency"?,
                   "message"?, "conditions"?, "valid_until"?}
                  ``offerer_id`` defaults to the actor (an agent may submit
                  on a buyer's behalf).
            actor_id: Who is performing the call.

        Returns:
            The offer dict.

        Raises:
            NotFoundError, UnauthorizedError, ValidationError,
            ConflictError(TRANSACTION_CLOSED)
        """
        transaction_id = data.get("transaction_id")
        with unit_of_work(self.session, "create_offer",
                          transaction_id=transaction_id, actor_id=actor_id):
            txn = get_authorized_transaction(
                self.session, transaction_id, actor_id, action="make an offer on",
            )
            if txn.status not in OPEN_FOR_OFFERS:
                raise ConflictError(
                    f"Transaction is {txn.status} and no longer takes offers",
                    code="TRANSACTION_CLOSED",
                )

            offerer_id = data.get("offerer_id") or actor_id
            offer = Offer(
                transaction_id=txn.id,
                offerer_id=offerer_id,
                amount=_validated_amount(data.get("amount")),
                currency=data.get("currency") or txn.currency or self._default_currency(),
                message=data.get("message"),
                conditions=data.get("conditions"),
                valid_until=_validated_datetime(data.get("valid_until"), "valid_until"),
            )
            self.session.add(offer)

            # The first offer from outside the sell side names the buyer
            if txn.buyer_id is None and offerer_id not in txn.party_ids():
                txn.buyer_id = offerer_id

            if txn.status == "DRAFT":
                transition_transaction(self.session, txn, "PENDING", actor_id, reason="Offer received")
            self.session.flush()

        logger.info(
            "Offer %s placed on transaction %s", offer.id, txn.id,
            extra={"event_type": "offer.created", "offer_id": offer.id,
                   "transaction_id": txn.id, "actor_id": actor_id},
        )
        self._invalidate(txn.id)
        return offer.to_dict()

    # ── Respond ──────────────────────────────────────────────────────────

    def respond_to_offer(self, offer_id, new_status, actor_id, counter_data=None) -> dict:
        """
        Accept, reject or counter a PENDING offer.

        Args:
            offer_id: Offer being answered.
            new_status: "ACCEPTED" | "REJECTED" | "COUNTERED".
            actor_id: Responder; becomes the offerer of a counter.
            counter_data: Required for COUNTERED: {"amount", "currency"?,
                          "message"?, "conditions"?, "valid_until"?}.
                          Currency defaults to the countered offer's.

        Returns:
            {"offer": dict, "counter_offer": dict | None}

        Raises:
            NotFoundError(OFFER_NOT_FOUND), UnauthorizedError,
            ValidationError(INVALID_OFFER_STATUS | SELF_RESPONSE),
            ConflictError(OFFER_NOT_PENDING | OFFER_EXPIRED | TRANSACTION_CLOSED |
                          INVALID_STATUS_TRANSITION | VERSION_CONFLICT)
        """
        with unit_of_work(self.session, "respond_to_offer",
                          offer_id=offer_id, actor_id=actor_id, new_status=new_status):
            offer = get_authorized_offer(self.session, offer_id, actor_id, action="respond to")

            if new_status not in OFFER_RESPONSE_STATUSES:
                raise ValidationError(
                    f"Invalid response status: {new_status}",
                    code="INVALID_OFFER_STATUS",
                    details={"status": f"must be one of {sorted(OFFER_RESPONSE_STATUSES)}"},
                )
            if offer.status != "PENDING":
                raise ConflictError(
                    f"Offer is already {offer.status}",
                    code="OFFER_NOT_PENDING",
                )
            if new_status != "REJECTED" and offer.offerer_id == actor_id:
                raise ValidationError(
                    "An offerer cannot accept or counter their own offer",
                    code="SELF_RESPONSE",
                )

            now = datetime.now(timezone.utc)
            txn = offer.transaction
            counter = None

            if new_status == "ACCEPTED":
                if offer.valid_until is not None and as_utc(offer.valid_until) < now:
                    raise ConflictError("Offer has expired", code="OFFER_EXPIRED")
                txn.final_amount = offer.amount
                transition_transaction(self.session, txn, "ACCEPTED", actor_id, reason="Offer accepted")
            elif new_status == "COUNTERED":
                if txn.status not in OPEN_FOR_OFFERS:
                    raise ConflictError(
                        f"Transaction is {txn.status} and no longer takes offers",
                        code="TRANSACTION_CLOSED",
                    )
                counter_data = counter_data or {}
                counter = Offer(
                    transaction_id=offer.transaction_id,
                    offerer_id=actor_id,
                    amount=_validated_amount(counter_data.get("amount"), "counter_offer.amount"),
                    currency=counter_data.get("currency") or offer.currency,
                    message=counter_data.get("message"),
                    conditions=counter_data.get("conditions"),
                    valid_until=_validated_datetime(counter_data.get("valid_until"),
                                                    "counter_offer.valid_until"),
                    parent_offer_id=offer.id,
                )
                self.session.add(counter)

            offer.status = new_status
            offer.responded_at = now
            self.session.flush()

        logger.info(
            "Offer %s %s", offer_id, new_status.lower(),
            extra={"event_type": f"offer.{new_status.lower()}", "offer_id": offer_id,
                   "transaction_id": offer.transaction_id, "actor_id": actor_id},
        )
        self._invalidate(offer.transaction_id)
        return {
            "offer": offer.to_dict(),
            "counter_offer": counter.to_dict() if counter is not None else None,
        }

    # ── Lookup ───────────────────────────────────────────────────────────

    def get_negotiation_chain(self, offer_id, actor_id) -> list[dict]:
        """Offers from the root of *offer_id*'s counter chain down to it."""
        with unit_of_work(self.session, "get_negotiation_chain", read_only=True,
                          offer_id=offer_id, actor_id=actor_id):
            offer = get_authorized_offer(self.session, offer_id, actor_id, action="view")
            chain = [offer]
            while chain[-1].parent_offer is not None:
                chain.append(chain[-1].parent_offer)
            return [o.to_dict() for o in reversed(chain)]
