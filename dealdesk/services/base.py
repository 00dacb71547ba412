"""
Shared wiring for the engine's service objects.

Services are stateless: everything they touch is injected at construction
and defaults to the app-wide handles.

    service = OfferService()                          # db.session, SQL properties, cache_service
    service = OfferService(session=s, cache=fake)     # tests / alternative wiring
"""

import logging

from flask import current_app, has_app_context

from dealdesk.models import db
from dealdesk.services import cache_service
from dealdesk.services.property_sync import SqlPropertyRepository

logger = logging.getLogger(__name__)


class EngineService:
    """Base for TransactionService, OfferService, MilestoneService, DocumentService."""

    def __init__(self, session=None, properties=None, cache=None):
        self.session = session if session is not None else db.session
        self.properties = properties if properties is not None else SqlPropertyRepository(self.session)
        self.cache = cache if cache is not None else cache_service

    def _default_currency(self):
        if has_app_context():
            return current_app.config.get("DEFAULT_CURRENCY", "EUR")
        return "EUR"

    def _invalidate(self, transaction_id):
        """Post-commit cache invalidation; failures are logged and dropped."""
        try:
            self.cache.invalidate_transaction(transaction_id)
        except Exception as exc:
            logger.warning(
                "Cache invalidation failed for transaction %s: %s", transaction_id, exc,
                extra={"event_type": "cache.invalidate_failed", "transaction_id": transaction_id},
            )

    def _cached_view(self, transaction_id, view):
        """Cached read-side view, or None on a miss or a cache failure."""
        try:
            return self.cache.get_transaction_view(transaction_id, view)
        except Exception as exc:
            logger.warning(
                "Cache read failed for transaction %s: %s", transaction_id, exc,
                extra={"event_type": "cache.read_failed", "transaction_id": transaction_id},
            )
            return None

    def _store_view(self, transaction_id, view, value):
        try:
            self.cache.set_transaction_view(transaction_id, view, value)
        except Exception as exc:
            logger.warning(
                "Cache write failed for transaction %s: %s", transaction_id, exc,
                extra={"event_type": "cache.write_failed", "transaction_id": transaction_id},
            )
