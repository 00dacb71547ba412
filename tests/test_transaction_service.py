"""
Transaction service tests:
  - create_transaction: authorization, validation, default milestones,
    anchor history row
  - get_transaction_by_id: hydrated view, not found vs unauthorized
  - get_transactions: relation-set scoping, filters, sorting, pagination
  - update_transaction: patch fields, property status sync, version check
"""

import pytest
from sqlalchemy import text

from conftest import AGENT, BUYER, OWNER, SELLER, STRANGER, make_property
from dealdesk.core.exceptions import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from dealdesk.models import db
from dealdesk.models.property import Property
from dealdesk.models.transaction import Transaction, TransactionMilestone, TransactionStatusHistory


def _create(svc, prop, actor=SELLER, **overrides):
    data = {"property_id": prop.id, "seller_id": SELLER, "type": "PURCHASE"}
    data.update(overrides)
    return svc.create_transaction(data, actor_id=actor)


def _accept(offer_service, txn_id, amount=440000):
    offer = offer_service.create_offer({"transaction_id": txn_id, "amount": amount}, actor_id=BUYER)
    offer_service.respond_to_offer(offer["id"], "ACCEPTED", SELLER)
    return offer


# ═══════════════════════════════════════════════════════════════════════════
# create_transaction
# ═══════════════════════════════════════════════════════════════════════════


class TestCreateTransaction:

    def test_creates_draft(self, txn_service, listed_property):
        txn = _create(txn_service, listed_property, buyer_id=BUYER, offer_amount="450000.00")
        assert txn["status"] == "DRAFT"
        assert txn["type"] == "PURCHASE"
        assert txn["offer_amount"] == 450000.0
        assert txn["final_amount"] is None
        assert txn["currency"] == "EUR"
        assert txn["version"] == 1

    def test_anchor_history_row(self, txn_service, listed_property):
        txn = _create(txn_service, listed_property)
        rows = TransactionStatusHistory.query.filter_by(transaction_id=txn["id"]).all()
        assert len(rows) == 1
        assert rows[0].previous_status == "DRAFT"
        assert rows[0].new_status == "DRAFT"
        assert rows[0].changed_by_id == SELLER

    def test_purchase_gets_seven_milestones(self, txn_service, listed_property):
        txn = _create(txn_service, listed_property)
        orders = [m.order for m in TransactionMilestone.query.filter_by(transaction_id=txn["id"])]
        assert sorted(orders) == list(range(1, 8))

    def test_lease_gets_six_milestones(self, txn_service, lease_property):
        txn = _create(txn_service, lease_property, type="LEASE")
        assert TransactionMilestone.query.filter_by(transaction_id=txn["id"]).count() == 6

    def test_owner_may_create(self, txn_service, listed_property):
        txn = _create(txn_service, listed_property, actor=OWNER)
        assert txn["seller_id"] == SELLER

    def test_declared_agent_may_create(self, txn_service, listed_property):
        txn = _create(txn_service, listed_property, actor=AGENT, agent_id=AGENT)
        assert txn["agent_id"] == AGENT

    def test_stranger_cannot_create(self, txn_service, listed_property):
        with pytest.raises(UnauthorizedError):
            _create(txn_service, listed_property, actor=STRANGER)
        assert Transaction.query.count() == 0

    def test_missing_property(self, txn_service):
        with pytest.raises(NotFoundError) as exc:
            txn_service.create_transaction(
                {"property_id": "nope", "seller_id": SELLER, "type": "PURCHASE"}, actor_id=SELLER,
            )
        assert exc.value.code == "PROPERTY_NOT_FOUND"

    def test_invalid_type(self, txn_service, listed_property):
        with pytest.raises(ValidationError) as exc:
            _create(txn_service, listed_property, type="BARTER")
        assert "type" in exc.value.details
        assert Transaction.query.count() == 0

    def test_negative_amount(self, txn_service, listed_property):
        with pytest.raises(ValidationError):
            _create(txn_service, listed_property, offer_amount=-1)

    def test_bad_expected_completion(self, txn_service, listed_property):
        with pytest.raises(ValidationError):
            _create(txn_service, listed_property, expected_completion="next tuesday")

    def test_failed_create_leaves_nothing(self, txn_service, listed_property):
        with pytest.raises(ValidationError):
            _create(txn_service, listed_property, offer_amount="abc")
        assert Transaction.query.count() == 0
        assert TransactionMilestone.query.count() == 0
        assert TransactionStatusHistory.query.count() == 0


# ═══════════════════════════════════════════════════════════════════════════
# get_transaction_by_id
# ═══════════════════════════════════════════════════════════════════════════


class TestGetTransaction:

    def test_hydrated_view(self, txn_service, pending_offer, draft_txn):
        view = txn_service.get_transaction_by_id(draft_txn["id"], BUYER)
        assert view["status"] == "PENDING"
        assert [o["id"] for o in view["offers"]] == [pending_offer["id"]]
        assert [m["order"] for m in view["milestones"]] == list(range(1, 8))
        assert view["documents"] == []
        assert len(view["status_history"]) == 2
        assert {h["new_status"] for h in view["status_history"]} == {"DRAFT", "PENDING"}

    def test_property_owner_can_read(self, txn_service, draft_txn):
        assert txn_service.get_transaction_by_id(draft_txn["id"], OWNER)["id"] == draft_txn["id"]

    def test_stranger_unauthorized(self, txn_service, draft_txn):
        with pytest.raises(UnauthorizedError) as exc:
            txn_service.get_transaction_by_id(draft_txn["id"], STRANGER)
        assert exc.value.code == "UNAUTHORIZED"
        assert exc.value.status == 403

    def test_missing_transaction(self, txn_service):
        with pytest.raises(NotFoundError) as exc:
            txn_service.get_transaction_by_id("missing", SELLER)
        assert exc.value.code == "TRANSACTION_NOT_FOUND"

    def test_hidden_as_not_found(self, app, monkeypatch, txn_service, draft_txn):
        monkeypatch.setitem(app.config, "HIDE_UNAUTHORIZED_AS_NOT_FOUND", True)
        with pytest.raises(NotFoundError) as exc:
            txn_service.get_transaction_by_id(draft_txn["id"], STRANGER)
        assert exc.value.code == "TRANSACTION_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# get_transactions
# ═══════════════════════════════════════════════════════════════════════════


class TestListTransactions:

    @pytest.fixture()
    def three_txns(self, txn_service, listed_property):
        a = _create(txn_service, listed_property, buyer_id=BUYER, offer_amount=100)
        b = _create(txn_service, listed_property, offer_amount=300)
        c = _create(txn_service, listed_property, type="LEASE", agent_id=AGENT, offer_amount=200)
        return a, b, c

    def test_scoped_to_relation_set(self, txn_service, three_txns):
        a, _, c = three_txns
        assert {t["id"] for t in txn_service.get_transactions({}, BUYER)["data"]} == {a["id"]}
        assert {t["id"] for t in txn_service.get_transactions({}, AGENT)["data"]} == {c["id"]}
        assert txn_service.get_transactions({}, SELLER)["pagination"]["total"] == 3
        assert txn_service.get_transactions({}, STRANGER)["data"] == []

    def test_property_owner_sees_all_on_property(self, txn_service, three_txns):
        other = make_property(owner_id="someone-else")
        _create(txn_service, other)
        assert txn_service.get_transactions({}, OWNER)["pagination"]["total"] == 3

    def test_filter_by_type_and_status(self, txn_service, three_txns):
        a, _, _ = three_txns
        txn_service.update_transaction(a["id"], {"status": "CANCELLED"}, SELLER)

        leases = txn_service.get_transactions({"type": "LEASE"}, SELLER)["data"]
        assert [t["type"] for t in leases] == ["LEASE"]

        cancelled = txn_service.get_transactions({"status": ["CANCELLED"]}, SELLER)["data"]
        assert [t["id"] for t in cancelled] == [a["id"]]

        drafts = txn_service.get_transactions({"status": "DRAFT"}, SELLER)
        assert drafts["pagination"]["total"] == 2

    def test_unknown_status_filter(self, txn_service):
        with pytest.raises(ValidationError):
            txn_service.get_transactions({"status": ["LIMBO"]}, SELLER)

    def test_filter_by_party(self, txn_service, three_txns):
        result = txn_service.get_transactions({"agent_id": AGENT}, SELLER)
        assert result["pagination"]["total"] == 1

    def test_date_window(self, txn_service, three_txns):
        assert txn_service.get_transactions({"date_from": "2999-01-01"}, SELLER)["data"] == []
        assert txn_service.get_transactions({"date_to": "2000-01-01"}, SELLER)["data"] == []
        assert txn_service.get_transactions(
            {"date_from": "2000-01-01", "date_to": "2999-01-01"}, SELLER,
        )["pagination"]["total"] == 3

    def test_sort_by_offer_amount(self, txn_service, three_txns):
        asc = txn_service.get_transactions({"sort_by": "offer_amount", "sort_order": "asc"}, SELLER)
        assert [t["offer_amount"] for t in asc["data"]] == [100.0, 200.0, 300.0]
        desc = txn_service.get_transactions({"sort_by": "offer_amount"}, SELLER)
        assert [t["offer_amount"] for t in desc["data"]] == [300.0, 200.0, 100.0]

    def test_invalid_sort(self, txn_service):
        with pytest.raises(ValidationError):
            txn_service.get_transactions({"sort_by": "buyer_id"}, SELLER)
        with pytest.raises(ValidationError):
            txn_service.get_transactions({"sort_order": "sideways"}, SELLER)

    def test_pagination(self, txn_service, three_txns):
        page1 = txn_service.get_transactions({"limit": 2, "sort_by": "offer_amount"}, SELLER)
        assert len(page1["data"]) == 2
        assert page1["pagination"] == {
            "page": 1, "limit": 2, "total": 3, "total_pages": 2,
            "has_next": True, "has_prev": False,
        }
        page2 = txn_service.get_transactions({"limit": 2, "page": 2, "sort_by": "offer_amount"}, SELLER)
        assert [t["offer_amount"] for t in page2["data"]] == [100.0]
        assert page2["pagination"]["has_next"] is False
        assert page2["pagination"]["has_prev"] is True

    def test_limit_is_clamped(self, txn_service, three_txns):
        assert txn_service.get_transactions({"limit": 1000}, SELLER)["pagination"]["limit"] == 100
        assert txn_service.get_transactions({"limit": 0}, SELLER)["pagination"]["limit"] == 10
        assert txn_service.get_transactions({"page": -3}, SELLER)["pagination"]["page"] == 1

    def test_non_integer_page(self, txn_service):
        with pytest.raises(ValidationError):
            txn_service.get_transactions({"page": "two"}, SELLER)

    def test_counts(self, txn_service, offer_service, document_service, three_txns):
        a, _, _ = three_txns
        offer_service.create_offer({"transaction_id": a["id"], "amount": 90}, actor_id=BUYER)
        document_service.upload_document(a["id"], SELLER, {
            "type": "CONTRACT", "title": "Draft contract",
            "file_name": "contract.pdf", "file_url": "s3://docs/contract.pdf",
        })
        [row] = txn_service.get_transactions({}, BUYER)["data"]
        assert row["offer_count"] == 1
        assert row["document_count"] == 1


# ═══════════════════════════════════════════════════════════════════════════
# update_transaction
# ═══════════════════════════════════════════════════════════════════════════


class TestUpdateTransaction:

    def test_patch_fields(self, txn_service, draft_txn):
        result = txn_service.update_transaction(draft_txn["id"], {
            "notes": "Keys with the concierge",
            "terms": {"deposit_pct": 10},
            "commission": "12500",
            "commission_rate": 2.5,
            "expected_completion": "2027-03-01T12:00:00Z",
        }, SELLER)
        assert result["notes"] == "Keys with the concierge"
        assert result["terms"] == {"deposit_pct": 10}
        assert result["commission"] == 12500.0
        assert result["commission_rate"] == 2.5
        assert result["expected_completion"].startswith("2027-03-01T12:00:00")
        assert result["status"] == "DRAFT"
        assert result["version"] == 2

    def test_commission_rate_bounds(self, txn_service, draft_txn):
        with pytest.raises(ValidationError):
            txn_service.update_transaction(draft_txn["id"], {"commission_rate": 120}, SELLER)
        assert db.session.get(Transaction, draft_txn["id"]).commission_rate is None

    def test_stranger_cannot_update(self, txn_service, draft_txn):
        with pytest.raises(UnauthorizedError):
            txn_service.update_transaction(draft_txn["id"], {"notes": "x"}, STRANGER)

    def test_reason_recorded(self, txn_service, draft_txn):
        txn_service.update_transaction(
            draft_txn["id"], {"status": "CANCELLED", "reason": "Buyer walked"}, BUYER,
        )
        row = TransactionStatusHistory.query.filter_by(
            transaction_id=draft_txn["id"], new_status="CANCELLED",
        ).one()
        assert row.reason == "Buyer walked"
        assert row.changed_by_id == BUYER

    def test_complete_purchase_marks_sold(self, txn_service, offer_service, draft_txn, listed_property):
        _accept(offer_service, draft_txn["id"])
        result = txn_service.update_transaction(draft_txn["id"], {"status": "COMPLETED"}, SELLER)
        assert result["status"] == "COMPLETED"
        assert result["completion_date"] is not None
        assert db.session.get(Property, listed_property.id).status == "SOLD"

    def test_complete_lease_marks_rented(self, txn_service, offer_service, lease_property):
        txn = _create(txn_service, lease_property, type="LEASE", buyer_id=BUYER)
        _accept(offer_service, txn["id"], amount=1800)
        txn_service.update_transaction(txn["id"], {"status": "COMPLETED"}, SELLER)
        assert db.session.get(Property, lease_property.id).status == "RENTED"

    def test_cancel_does_not_touch_property(self, txn_service, draft_txn, listed_property):
        txn_service.update_transaction(draft_txn["id"], {"status": "CANCELLED"}, SELLER)
        assert db.session.get(Property, listed_property.id).status == "ACTIVE"

    def test_terminal_is_frozen(self, txn_service, draft_txn):
        txn_service.update_transaction(draft_txn["id"], {"status": "CANCELLED"}, SELLER)
        with pytest.raises(ConflictError):
            txn_service.update_transaction(draft_txn["id"], {"status": "COMPLETED"}, SELLER)

    def test_expected_version_mismatch(self, txn_service, draft_txn):
        with pytest.raises(ConflictError) as exc:
            txn_service.update_transaction(draft_txn["id"], {"notes": "late"}, SELLER, expected_version=7)
        assert exc.value.code == "VERSION_CONFLICT"
        assert db.session.get(Transaction, draft_txn["id"]).notes is None

    def test_expected_version_match(self, txn_service, draft_txn):
        result = txn_service.update_transaction(
            draft_txn["id"], {"notes": "ok"}, SELLER, expected_version=draft_txn["version"],
        )
        assert result["version"] == draft_txn["version"] + 1

    def test_concurrent_writer_loses(self, txn_service, draft_txn):
        # Load v1 into the identity map, then bump the row behind the ORM's back.
        # The fixture commit expired the instance, so read the version to load it.
        txn = db.session.get(Transaction, draft_txn["id"])
        assert txn.version == draft_txn["version"]
        db.session.execute(
            text("UPDATE transactions SET version = version + 1 WHERE id = :id"),
            {"id": draft_txn["id"]},
        )
        with pytest.raises(ConflictError) as exc:
            txn_service.update_transaction(draft_txn["id"], {"notes": "stale write"}, SELLER)
        assert exc.value.code == "VERSION_CONFLICT"
        assert db.session.get(Transaction, draft_txn["id"]).notes is None
