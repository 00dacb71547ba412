"""
Property Status Sync: boundary to the Property Repository.

The engine reads a property's owner when authorizing and writes its status
when a transaction completes. The default repository works on the same
SQLAlchemy session as the engine, so the property write joins the caller's
unit of work and rolls back with it.

    PURCHASE completed → property SOLD
    LEASE completed    → property RENTED
"""

import logging
from typing import Protocol

from dealdesk.core.exceptions import NotFoundError, ValidationError
from dealdesk.models import db
from dealdesk.models.property import PROPERTY_STATUSES, Property

logger = logging.getLogger(__name__)

COMPLETION_PROPERTY_STATUS = {
    "PURCHASE": "SOLD",
    "LEASE": "RENTED",
}


class PropertyRepository(Protocol):
    """What the engine needs from the property side."""

    def find_property(self, property_id: str) -> Property | None:
        ...

    def update_property_status(self, property_id: str, status: str) -> Property:
        ...


class SqlPropertyRepository:
    """PropertyRepository over the shared Flask-SQLAlchemy session.

    Writes are flushed, never committed: the caller owns the transaction.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def find_property(self, property_id):
        return self.session.get(Property, property_id)

    def update_property_status(self, property_id, status):
        if status not in PROPERTY_STATUSES:
            raise ValidationError(
                f"Unknown property status: {status}",
                details={"status": f"must be one of {sorted(PROPERTY_STATUSES)}"},
            )
        prop = self.session.get(Property, property_id)
        if prop is None:
            raise NotFoundError("Property", property_id)
        prop.status = status
        self.session.flush()
        return prop


def target_property_status(transaction_type: str) -> str:
    """Property status a completed transaction of *transaction_type* implies."""
    return COMPLETION_PROPERTY_STATUS[transaction_type]


def sync_completed_transaction(transaction, properties) -> str:
    """Push the completion outcome of *transaction* into its property.

    Must run inside the unit of work that writes the COMPLETED status;
    any exception propagates and aborts the whole operation.
    """
    new_status = target_property_status(transaction.type)
    properties.update_property_status(transaction.property_id, new_status)
    logger.info(
        "Property %s marked %s", transaction.property_id, new_status,
        extra={
            "event_type": "property.status_synced",
            "transaction_id": transaction.id,
            "property_id": transaction.property_id,
            "new_status": new_status,
        },
    )
    return new_status
