"""
Property boundary model.

Property CRUD belongs to the listing service; the negotiation engine only
reads ``owner_id`` and writes ``status`` when a deal closes.
"""

import uuid
from datetime import datetime, timezone

from dealdesk.models import db

PROPERTY_STATUSES = {"DRAFT", "ACTIVE", "UNDER_OFFER", "SOLD", "RENTED", "WITHDRAWN"}


def _uuid():
    return str(uuid.uuid4())


class Property(db.Model):
    __tablename__ = "properties"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    owner_id = db.Column(db.String(36), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False, default="")
    status = db.Column(
        db.String(20), nullable=False, default="DRAFT",
        comment="DRAFT | ACTIVE | UNDER_OFFER | SOLD | RENTED | WITHDRAWN",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Property {self.id} {self.status}>"
