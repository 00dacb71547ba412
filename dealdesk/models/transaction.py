"""
DealDesk: Transaction negotiation domain models.

Models:
    - Transaction: one property deal, DRAFT → PENDING → ACCEPTED → COMPLETED.
    - Offer: priced proposal on a transaction; counters form a parent chain.
    - TransactionMilestone: closing checklist item, ordered per transaction.
    - TransactionStatusHistory: append-only status transition log.
    - TransactionDocument: register of files attached to a transaction.

Transaction and Offer carry a ``version`` column mapped as SQLAlchemy's
``version_id_col``: every UPDATE is issued as ``... WHERE version = :old``
and a concurrent writer that loses the race gets ``StaleDataError``.
"""

import uuid
from datetime import datetime, timezone

from dealdesk.models import db


__all__ = [
    "TRANSACTION_TYPES",
    "TRANSACTION_STATUSES",
    "TERMINAL_STATUSES",
    "TRANSACTION_TRANSITIONS",
    "OFFER_STATUSES",
    "OFFER_RESPONSE_STATUSES",
    "DOCUMENT_TYPES",
    "Transaction",
    "Offer",
    "TransactionMilestone",
    "TransactionStatusHistory",
    "TransactionDocument",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _amount(value):
    return float(value) if value is not None else None


# ── Constants ────────────────────────────────────────────────────────────────

TRANSACTION_TYPES = {"PURCHASE", "LEASE"}

TRANSACTION_STATUSES = {"DRAFT", "PENDING", "ACCEPTED", "REJECTED", "CANCELLED", "COMPLETED"}

TERMINAL_STATUSES = {"COMPLETED", "REJECTED", "CANCELLED"}

# ── Lifecycle Transition Guards ──────────────────────────────────────────────

TRANSACTION_TRANSITIONS = {
    "DRAFT":     ["PENDING", "CANCELLED"],
    "PENDING":   ["ACCEPTED", "REJECTED", "CANCELLED"],
    "ACCEPTED":  ["COMPLETED", "CANCELLED"],
    "REJECTED":  [],
    "CANCELLED": [],
    "COMPLETED": [],
}

OFFER_STATUSES = {"PENDING", "ACCEPTED", "REJECTED", "COUNTERED"}

# Statuses a responder may move a PENDING offer to
OFFER_RESPONSE_STATUSES = {"ACCEPTED", "REJECTED", "COUNTERED"}

DOCUMENT_TYPES = {
    "CONTRACT",
    "PURCHASE_AGREEMENT",
    "LEASE_AGREEMENT",
    "INSPECTION_REPORT",
    "MORTGAGE_APPROVAL",
    "TITLE_DEED",
    "IDENTIFICATION",
    "OTHER",
}


# ═════════════════════════════════════════════════════════════════════════════
# Transaction
# ═════════════════════════════════════════════════════════════════════════════

class Transaction(db.Model):
    """
    A single property deal negotiation from draft to close.

    Never deleted: closed deals stay for audit. ``status`` is only written
    through the lifecycle service, which appends a history row per move.
    """

    __tablename__ = "transactions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    property_id = db.Column(
        db.String(36), db.ForeignKey("properties.id"),
        nullable=False, index=True,
    )

    # Parties (opaque user ids owned by the identity service)
    buyer_id = db.Column(db.String(36), nullable=True, index=True)
    seller_id = db.Column(db.String(36), nullable=False, index=True)
    agent_id = db.Column(db.String(36), nullable=True, index=True)

    type = db.Column(db.String(20), nullable=False, comment="PURCHASE | LEASE")
    status = db.Column(
        db.String(20), nullable=False, default="DRAFT",
        comment="DRAFT | PENDING | ACCEPTED | REJECTED | CANCELLED | COMPLETED",
    )

    # Money
    offer_amount = db.Column(db.Numeric(14, 2), nullable=True, comment="Informational initial ask")
    final_amount = db.Column(
        db.Numeric(14, 2), nullable=True,
        comment="Amount of the accepted offer; null until acceptance",
    )
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    commission = db.Column(db.Numeric(14, 2), nullable=True)
    commission_rate = db.Column(db.Numeric(5, 2), nullable=True, comment="Percent, 0-100")

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.JSON, nullable=True, comment="Opaque deal terms, not interpreted")

    # Dates
    expected_completion = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # ── Constraints ──────────────────────────────────────────────────────
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('DRAFT','PENDING','ACCEPTED','REJECTED','CANCELLED','COMPLETED')",
            name="ck_transaction_status",
        ),
        db.CheckConstraint("type IN ('PURCHASE','LEASE')", name="ck_transaction_type"),
        db.Index("ix_transactions_status_created", "status", "created_at"),
    )

    # ── Relationships ────────────────────────────────────────────────────
    listed_property = db.relationship("Property", lazy="joined")
    offers = db.relationship(
        "Offer", backref="transaction", lazy="dynamic",
        order_by="Offer.created_at.desc()",
    )
    milestones = db.relationship(
        "TransactionMilestone", backref="transaction", lazy="dynamic",
        order_by="TransactionMilestone.order",
    )
    status_history = db.relationship(
        "TransactionStatusHistory", backref="transaction", lazy="dynamic",
        order_by="TransactionStatusHistory.created_at.desc()",
    )
    documents = db.relationship(
        "TransactionDocument", backref="transaction", lazy="dynamic",
        order_by="TransactionDocument.created_at.desc()",
    )

    def party_ids(self):
        """Actor ids in the relation set: buyer, seller, agent, property owner."""
        owner_id = self.listed_property.owner_id if self.listed_property else None
        return {pid for pid in (self.buyer_id, self.seller_id, self.agent_id, owner_id) if pid}

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "property_id": self.property_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "agent_id": self.agent_id,
            "type": self.type,
            "status": self.status,
            "offer_amount": _amount(self.offer_amount),
            "final_amount": _amount(self.final_amount),
            "currency": self.currency,
            "commission": _amount(self.commission),
            "commission_rate": _amount(self.commission_rate),
            "notes": self.notes,
            "terms": self.terms,
            "expected_completion": _iso(self.expected_completion),
            "accepted_date": _iso(self.accepted_date),
            "completion_date": _iso(self.completion_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }
        if include_children:
            result["offers"] = [o.to_dict() for o in self.offers]
            result["documents"] = [d.to_dict() for d in self.documents]
            result["milestones"] = [m.to_dict() for m in self.milestones]
            result["status_history"] = [h.to_dict() for h in self.status_history]
        return result

    def __repr__(self):
        return f"<Transaction {self.id} {self.type} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# Offer
# ═════════════════════════════════════════════════════════════════════════════

class Offer(db.Model):
    """
    Priced proposal on a transaction.

    Immutable except ``status`` and ``responded_at``. A counter-offer is a
    new row whose ``parent_offer_id`` points at the countered offer on the
    same transaction, so offers of a transaction form a forest.
    """

    __tablename__ = "offers"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    transaction_id = db.Column(
        db.String(36), db.ForeignKey("transactions.id"),
        nullable=False, index=True,
    )
    offerer_id = db.Column(db.String(36), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    message = db.Column(db.Text, nullable=True)
    conditions = db.Column(db.JSON, nullable=True, comment="Opaque offer conditions")
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="PENDING",
        comment="PENDING | ACCEPTED | REJECTED | COUNTERED",
    )
    parent_offer_id = db.Column(
        db.String(36), db.ForeignKey("offers.id"),
        nullable=True, index=True,
        comment="Countered offer this one answers; lookup only, not ownership",
    )
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('PENDING','ACCEPTED','REJECTED','COUNTERED')",
            name="ck_offer_status",
        ),
    )

    parent_offer = db.relationship("Offer", remote_side=[id])

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "offerer_id": self.offerer_id,
            "amount": _amount(self.amount),
            "currency": self.currency,
            "message": self.message,
            "conditions": self.conditions,
            "valid_until": _iso(self.valid_until),
            "status": self.status,
            "parent_offer_id": self.parent_offer_id,
            "responded_at": _iso(self.responded_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Offer {self.id} {self.amount} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# TransactionMilestone
# ═════════════════════════════════════════════════════════════════════════════

class TransactionMilestone(db.Model):
    """Checklist item; ``completed_at`` is one-way once stamped."""

    __tablename__ = "transaction_milestones"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    transaction_id = db.Column(
        db.String(36), db.ForeignKey("transactions.id"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("transaction_id", "order", name="uq_milestone_transaction_order"),
    )

    @property
    def is_completed(self):
        return self.completed_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "is_required": self.is_required,
            "due_date": _iso(self.due_date),
            "completed_at": _iso(self.completed_at),
            "completed_by_id": self.completed_by_id,
        }

    def __repr__(self):
        return f"<TransactionMilestone {self.order}: {self.title}>"


# ═════════════════════════════════════════════════════════════════════════════
# TransactionStatusHistory
# ═════════════════════════════════════════════════════════════════════════════

class TransactionStatusHistory(db.Model):
    """
    Immutable status transition record.

    One row per move, written in the same commit as the status write.
    Creation writes a DRAFT → DRAFT row to anchor the history.
    """

    __tablename__ = "transaction_status_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    transaction_id = db.Column(
        db.String(36), db.ForeignKey("transactions.id"),
        nullable=False, index=True,
    )
    previous_status = db.Column(db.String(20), nullable=False)
    new_status = db.Column(db.String(20), nullable=False)
    changed_by_id = db.Column(db.String(36), nullable=False)
    reason = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "changed_by_id": self.changed_by_id,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TransactionStatusHistory {self.previous_status}->{self.new_status}>"


# ═════════════════════════════════════════════════════════════════════════════
# TransactionDocument
# ═════════════════════════════════════════════════════════════════════════════

class TransactionDocument(db.Model):
    """Metadata for a file attached to a transaction (storage is external)."""

    __tablename__ = "transaction_documents"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    transaction_id = db.Column(
        db.String(36), db.ForeignKey("transactions.id"),
        nullable=False, index=True,
    )
    uploaded_by_id = db.Column(db.String(36), nullable=False)
    type = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="UPLOADED")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1024), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    requires_signature = db.Column(db.Boolean, nullable=False, default=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "uploaded_by_id": self.uploaded_by_id,
            "type": self.type,
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "requires_signature": self.requires_signature,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TransactionDocument {self.type}: {self.title}>"
