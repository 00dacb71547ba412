"""
Shared pytest fixtures for the DealDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - actor ids: owner, seller, buyer, agent, stranger
    - listed_property / lease_property: Pre-created Property rows
    - txn_service, offer_service, milestone_service, document_service,
      timeline_service: service objects on the test session
    - draft_txn: a PURCHASE transaction created by the seller
"""

import pytest

from dealdesk import create_app
from dealdesk.models import db as _db
from dealdesk.models.property import Property
from dealdesk.services import cache_service
from dealdesk.services.document_service import DocumentService
from dealdesk.services.milestone_service import MilestoneService
from dealdesk.services.offer_service import OfferService
from dealdesk.services.timeline import TimelineService
from dealdesk.services.transaction_service import TransactionService

OWNER = "user-owner"
SELLER = "user-seller"
BUYER = "user-buyer"
AGENT = "user-agent"
STRANGER = "user-stranger"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.clear_all()
        yield _db.session
        cache_service.clear_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


# ── Convenience fixtures ─────────────────────────────────────────────────


def make_property(owner_id=OWNER, title="Canal house", status="ACTIVE"):
    prop = Property(owner_id=owner_id, title=title, status=status)
    _db.session.add(prop)
    _db.session.commit()
    return prop


@pytest.fixture()
def listed_property():
    return make_property()


@pytest.fixture()
def lease_property():
    return make_property(title="Studio flat")


@pytest.fixture()
def txn_service():
    return TransactionService()


@pytest.fixture()
def offer_service():
    return OfferService()


@pytest.fixture()
def milestone_service():
    return MilestoneService()


@pytest.fixture()
def document_service():
    return DocumentService()


@pytest.fixture()
def timeline_service():
    return TimelineService()


@pytest.fixture()
def draft_txn(txn_service, listed_property):
    """DRAFT PURCHASE with seller and buyer declared, created by the seller."""
    return txn_service.create_transaction(
        {
            "property_id": listed_property.id,
            "seller_id": SELLER,
            "buyer_id": BUYER,
            "type": "PURCHASE",
            "offer_amount": 450000,
        },
        actor_id=SELLER,
    )


@pytest.fixture()
def pending_offer(offer_service, draft_txn):
    """Buyer's opening offer; moves the transaction to PENDING."""
    return offer_service.create_offer(
        {"transaction_id": draft_txn["id"], "amount": 430000}, actor_id=BUYER,
    )
