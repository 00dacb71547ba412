"""
Transaction Lifecycle Service.

Top-level operations on a deal: create, read, list and update. Owns the
transaction status (through ``lifecycle.transition_transaction``), creates
the default milestones, anchors the status history and runs the property
status sync when a deal completes.

Usage:
    from dealdesk.services.transaction_service import TransactionService

    svc = TransactionService()
    txn = svc.create_transaction({"property_id": pid, "seller_id": sid,
                                  "type": "PURCHASE"}, actor_id=sid)
    svc.update_transaction(txn["id"], {"status": "CANCELLED"}, actor_id=sid)
"""

import logging

from sqlalchemy import or_

from dealdesk.core.exceptions import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from dealdesk.models.property import Property
from dealdesk.models.transaction import TRANSACTION_STATUSES, TRANSACTION_TYPES, Transaction
from dealdesk.services.authorization import can_create_for_property, get_authorized_transaction
from dealdesk.services.base import EngineService
from dealdesk.services.lifecycle import MANUAL_TARGETS, transition_transaction
from dealdesk.services.milestone_service import create_default_milestones
from dealdesk.services.property_sync import sync_completed_transaction
from dealdesk.services.status_history import record_creation
from dealdesk.services.unit_of_work import unit_of_work
from dealdesk.utils.helpers import paginated_result, pagination_params, parse_datetime, to_decimal

logger = logging.getLogger(__name__)

# Fields update_transaction copies from the patch as-is
_PATCHABLE_FIELDS = ("notes", "terms")
_PATCHABLE_AMOUNTS = ("commission", "commission_rate")

SORTABLE_FIELDS = {
    "created_at": Transaction.created_at,
    "updated_at": Transaction.updated_at,
    "offer_amount": Transaction.offer_amount,
    "final_amount": Transaction.final_amount,
    "status": Transaction.status,
}


def _amount_or_error(data, field):
    value = data.get(field)
    if value is None:
        return None
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "must be a number"}) from exc
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0", details={field: "must be >= 0"})
    return amount


def _datetime_or_error(data, field):
    try:
        return parse_datetime(data.get(field))
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid datetime"}) from exc


class TransactionService(EngineService):

    # ── Create ───────────────────────────────────────────────────────────

    def create_transaction(self, data: dict, actor_id: str) -> dict:
        """
        Open a new DRAFT transaction on a property.

        Atomically inserts the transaction, its default milestones and the
        DRAFT → DRAFT anchor history row.

        Args:
            data: {"property_id", "seller_id", "type", "buyer_id"?, "agent_id"?,
                   "offer_amount"?, "currency"?, "notes"?, "terms"?,
                   "expected_completion"?}
            actor_id: Must be the property owner, the declared seller or the
                      declared agent.

        Raises:
            NotFoundError(PROPERTY_NOT_FOUND), UnauthorizedError, ValidationError
        """
        property_id = data.get("property_id")
        with unit_of_work(self.session, "create_transaction",
                          property_id=property_id, actor_id=actor_id):
            prop = self.properties.find_property(property_id) if property_id else None
            if prop is None:
                raise NotFoundError("Property", property_id)
            if not can_create_for_property(prop.owner_id, data, actor_id):
                raise UnauthorizedError("create a transaction for", "Property", property_id, actor_id)

            txn_type = data.get("type")
            if txn_type not in TRANSACTION_TYPES:
                raise ValidationError(
                    f"Invalid transaction type: {txn_type}",
                    details={"type": f"must be one of {sorted(TRANSACTION_TYPES)}"},
                )
            if not data.get("seller_id"):
                raise ValidationError("seller_id is required", details={"seller_id": "required"})

            txn = Transaction(
                property_id=property_id,
                seller_id=data["seller_id"],
                buyer_id=data.get("buyer_id"),
                agent_id=data.get("agent_id"),
                type=txn_type,
                status="DRAFT",
                offer_amount=_amount_or_error(data, "offer_amount"),
                currency=data.get("currency") or self._default_currency(),
                notes=data.get("notes"),
                terms=data.get("terms"),
                expected_completion=_datetime_or_error(data, "expected_completion"),
            )
            self.session.add(txn)
            self.session.flush()

            create_default_milestones(self.session, txn)
            record_creation(self.session, txn, actor_id)

        logger.info(
            "Transaction %s created (%s)", txn.id, txn.type,
            extra={"event_type": "transaction.created", "transaction_id": txn.id,
                   "property_id": property_id, "actor_id": actor_id},
        )
        self._invalidate(txn.id)
        return txn.to_dict()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_transaction_by_id(self, transaction_id, actor_id) -> dict:
        """
        Hydrated transaction view.

        Offers, documents and status history newest first; milestones by order.
        Authorization always runs against the database; the view itself is
        served from the transaction cache when present and stored there on
        a miss.

        Raises:
            NotFoundError(TRANSACTION_NOT_FOUND), UnauthorizedError
        """
        with unit_of_work(self.session, "get_transaction_by_id", read_only=True,
                          transaction_id=transaction_id, actor_id=actor_id):
            txn = get_authorized_transaction(self.session, transaction_id, actor_id, action="view")
            view = self._cached_view(txn.id, "detail")
            if view is None:
                view = txn.to_dict(include_children=True)
                self._store_view(txn.id, "detail", view)
            return view

    def get_transactions(self, filters: dict | None, actor_id: str) -> dict:
        """
        Transactions the actor takes part in, filtered, sorted and paginated.

        Args:
            filters: {"status": [..] | str, "type", "property_id", "buyer_id",
                      "seller_id", "agent_id", "date_from", "date_to",
                      "page", "limit", "sort_by", "sort_order"}

        Returns:
            {"data": [transaction dicts + offer/document counts],
             "pagination": {page, limit, total, total_pages, has_next, has_prev}}
        """
        filters = filters or {}
        try:
            offset, limit, page = pagination_params(filters.get("page"), filters.get("limit"))
        except (TypeError, ValueError) as exc:
            raise ValidationError("page and limit must be integers",
                                  details={"page": "integer", "limit": "integer"}) from exc

        sort_by = filters.get("sort_by") or "created_at"
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Cannot sort by {sort_by}",
                details={"sort_by": f"must be one of {sorted(SORTABLE_FIELDS)}"},
            )
        sort_order = (filters.get("sort_order") or "desc").lower()
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be asc or desc", details={"sort_order": "asc | desc"})

        with unit_of_work(self.session, "get_transactions", read_only=True, actor_id=actor_id):
            q = (
                self.session.query(Transaction)
                .join(Property, Property.id == Transaction.property_id)
                .filter(or_(
                    Transaction.buyer_id == actor_id,
                    Transaction.seller_id == actor_id,
                    Transaction.agent_id == actor_id,
                    Property.owner_id == actor_id,
                ))
            )

            statuses = filters.get("status")
            if isinstance(statuses, str):
                statuses = [statuses]
            if statuses:
                unknown = set(statuses) - TRANSACTION_STATUSES
                if unknown:
                    raise ValidationError(
                        f"Unknown status filter: {', '.join(sorted(unknown))}",
                        details={"status": f"must be among {sorted(TRANSACTION_STATUSES)}"},
                    )
                q = q.filter(Transaction.status.in_(statuses))

            for field in ("type", "property_id", "buyer_id", "seller_id", "agent_id"):
                if filters.get(field):
                    q = q.filter(getattr(Transaction, field) == filters[field])

            date_from = _datetime_or_error(filters, "date_from")
            date_to = _datetime_or_error(filters, "date_to")
            if date_from:
                q = q.filter(Transaction.created_at >= date_from)
            if date_to:
                q = q.filter(Transaction.created_at <= date_to)

            total = q.count()
            column = SORTABLE_FIELDS[sort_by]
            q = q.order_by(column.asc() if sort_order == "asc" else column.desc(), Transaction.id)
            rows = q.offset(offset).limit(limit).all()

            data = []
            for txn in rows:
                item = txn.to_dict()
                item["offer_count"] = txn.offers.count()
                item["document_count"] = txn.documents.count()
                data.append(item)

        return paginated_result(data, total, page, limit)

    # ── Update ───────────────────────────────────────────────────────────

    def update_transaction(self, transaction_id, patch: dict, actor_id, expected_version=None) -> dict:
        """
        Apply a patch and, if the status changes, move along the state machine.

        Status moves log one history row. Moving to COMPLETED also marks the
        property SOLD/RENTED in the same commit; if that write fails nothing
        is applied.

        Args:
            patch: {"status"?, "reason"?, "commission"?, "commission_rate"?,
                    "notes"?, "terms"?, "expected_completion"?}
            expected_version: Optional optimistic-lock check against
                              ``transaction.version``.

        Raises:
            NotFoundError(TRANSACTION_NOT_FOUND), UnauthorizedError, ValidationError,
            ConflictError(INVALID_STATUS_TRANSITION | VERSION_CONFLICT)
        """
        patch = patch or {}
        with unit_of_work(self.session, "update_transaction",
                          transaction_id=transaction_id, actor_id=actor_id):
            txn = get_authorized_transaction(self.session, transaction_id, actor_id, action="update")

            if expected_version is not None and txn.version != expected_version:
                raise ConflictError(
                    f"Transaction is at version {txn.version}, expected {expected_version}",
                    code="VERSION_CONFLICT",
                )

            for field in _PATCHABLE_FIELDS:
                if field in patch:
                    setattr(txn, field, patch[field])
            for field in _PATCHABLE_AMOUNTS:
                if field in patch:
                    setattr(txn, field, _amount_or_error(patch, field))
            if txn.commission_rate is not None and txn.commission_rate > 100:
                raise ValidationError("commission_rate must be <= 100",
                                      details={"commission_rate": "0-100"})
            if "expected_completion" in patch:
                txn.expected_completion = _datetime_or_error(patch, "expected_completion")

            new_status = patch.get("status")
            status_changed = bool(new_status) and new_status != txn.status
            if status_changed:
                if new_status in TRANSACTION_STATUSES and new_status not in MANUAL_TARGETS:
                    raise ConflictError(
                        f"{new_status} is only reached through an offer",
                        code="INVALID_STATUS_TRANSITION",
                        details={"from": txn.status, "to": new_status},
                    )
                previous = txn.status
                transition_transaction(
                    self.session, txn, new_status, actor_id,
                    reason=patch.get("reason") or "Status updated",
                )
                if new_status == "COMPLETED":
                    sync_completed_transaction(txn, self.properties)
            self.session.flush()

        if status_changed:
            logger.info(
                "Transaction %s %s -> %s", txn.id, previous, new_status,
                extra={"event_type": "transaction.status_changed", "transaction_id": txn.id,
                       "previous_status": previous, "new_status": new_status,
                       "actor_id": actor_id},
            )
        self._invalidate(txn.id)
        return txn.to_dict()
