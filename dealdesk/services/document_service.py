"""
Transaction document register.

Only metadata is stored; the file itself lives in external storage and is
referenced by ``file_url``. New documents start UPLOADED.
"""

import logging

from dealdesk.core.exceptions import ValidationError
from dealdesk.models.transaction import DOCUMENT_TYPES, TransactionDocument
from dealdesk.services.authorization import get_authorized_transaction
from dealdesk.services.base import EngineService
from dealdesk.services.unit_of_work import unit_of_work
from dealdesk.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("type", "title", "file_name", "file_url")


class DocumentService(EngineService):

    def upload_document(self, transaction_id, actor_id, data: dict) -> dict:
        """
        Register a document on a transaction.

        Args:
            data: {"type", "title", "file_name", "file_url", "description"?,
                   "file_size"?, "mime_type"?, "requires_signature"?, "expires_at"?}

        Raises:
            NotFoundError(TRANSACTION_NOT_FOUND), UnauthorizedError, ValidationError
        """
        data = data or {}
        with unit_of_work(self.session, "upload_document",
                          transaction_id=transaction_id, actor_id=actor_id):
            txn = get_authorized_transaction(
                self.session, transaction_id, actor_id, action="upload a document to",
            )

            missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
            if missing:
                raise ValidationError(
                    f"Missing document fields: {', '.join(missing)}",
                    details={f: "required" for f in missing},
                )
            if data["type"] not in DOCUMENT_TYPES:
                raise ValidationError(
                    f"Invalid document type: {data['type']}",
                    details={"type": f"must be one of {sorted(DOCUMENT_TYPES)}"},
                )
            try:
                expires_at = parse_datetime(data.get("expires_at"))
            except ValueError as exc:
                raise ValidationError(str(exc), details={"expires_at": "invalid datetime"}) from exc

            doc = TransactionDocument(
                transaction_id=txn.id,
                uploaded_by_id=actor_id,
                type=data["type"],
                title=data["title"],
                description=data.get("description"),
                file_name=data["file_name"],
                file_url=data["file_url"],
                file_size=data.get("file_size"),
                mime_type=data.get("mime_type"),
                requires_signature=bool(data.get("requires_signature", False)),
                expires_at=expires_at,
            )
            self.session.add(doc)
            self.session.flush()

        logger.info(
            "Document %s (%s) uploaded", doc.id, doc.type,
            extra={"event_type": "document.uploaded", "document_id": doc.id,
                   "transaction_id": transaction_id, "actor_id": actor_id},
        )
        self._invalidate(transaction_id)
        return doc.to_dict()
