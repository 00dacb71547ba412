"""
End-to-end negotiation: a PURCHASE from draft to a sold property.

    seller creates → buyer offers 480k → seller counters 500k →
    buyer accepts counter → parties complete milestones → seller completes

and the agent-driven variant where the buyer is only named by the first
offer the agent submits on their behalf.
"""

from conftest import AGENT, BUYER, OWNER, SELLER
from dealdesk.models import db
from dealdesk.models.property import Property
from dealdesk.models.transaction import TransactionMilestone


def test_purchase_to_sold(txn_service, offer_service, milestone_service, document_service,
                          timeline_service, listed_property):
    txn = txn_service.create_transaction({
        "property_id": listed_property.id,
        "seller_id": SELLER,
        "buyer_id": BUYER,
        "agent_id": AGENT,
        "type": "PURCHASE",
        "offer_amount": 520000,
        "terms": {"deposit_pct": 10, "fixtures_included": True},
    }, actor_id=AGENT)
    assert txn["status"] == "DRAFT"

    opening = offer_service.create_offer(
        {"transaction_id": txn["id"], "amount": 480000, "conditions": {"subject_to_survey": True}},
        actor_id=BUYER,
    )
    assert txn_service.get_transaction_by_id(txn["id"], OWNER)["status"] == "PENDING"

    counter = offer_service.respond_to_offer(
        opening["id"], "COUNTERED", SELLER, {"amount": 500000, "message": "Final price"},
    )["counter_offer"]
    offer_service.respond_to_offer(counter["id"], "ACCEPTED", BUYER)

    accepted = txn_service.get_transaction_by_id(txn["id"], SELLER)
    assert accepted["status"] == "ACCEPTED"
    assert accepted["final_amount"] == 500000.0
    assert accepted["accepted_date"] is not None

    document_service.upload_document(txn["id"], AGENT, {
        "type": "INSPECTION_REPORT", "title": "Survey",
        "file_name": "survey.pdf", "file_url": "s3://deal-docs/survey.pdf",
    })
    for milestone in TransactionMilestone.query.filter_by(transaction_id=txn["id"]).all():
        if milestone.is_required:
            milestone_service.complete_milestone(milestone.id, AGENT)

    done = txn_service.update_transaction(
        txn["id"], {"status": "COMPLETED", "commission": 15000, "reason": "Keys handed over"}, SELLER,
    )
    assert done["status"] == "COMPLETED"
    assert done["commission"] == 15000.0
    assert db.session.get(Property, listed_property.id).status == "SOLD"

    view = txn_service.get_transaction_by_id(txn["id"], BUYER)
    assert view["status_history"][0]["new_status"] == "COMPLETED"
    assert view["status_history"][0]["reason"] == "Keys handed over"
    moves = [(h["previous_status"], h["new_status"]) for h in reversed(view["status_history"])]
    assert moves == [
        ("DRAFT", "DRAFT"),
        ("DRAFT", "PENDING"),
        ("PENDING", "ACCEPTED"),
        ("ACCEPTED", "COMPLETED"),
    ]
    assert sum(1 for m in view["milestones"] if m["completed_at"]) == 6
    assert len(view["documents"]) == 1
    assert {o["status"] for o in view["offers"]} == {"COUNTERED", "ACCEPTED"}

    chain = offer_service.get_negotiation_chain(counter["id"], SELLER)
    assert [o["amount"] for o in chain] == [480000.0, 500000.0]

    timeline = timeline_service.get_transaction_timeline(txn["id"], AGENT)
    assert timeline[0]["type"] == "status_change"
    assert timeline[0]["status"] == "COMPLETED"


def test_agent_submitted_offer_names_buyer(txn_service, offer_service, listed_property):
    txn = txn_service.create_transaction({
        "property_id": listed_property.id,
        "seller_id": SELLER,
        "agent_id": AGENT,
        "type": "PURCHASE",
    }, actor_id=SELLER)
    assert txn["buyer_id"] is None

    offer = offer_service.create_offer(
        {"transaction_id": txn["id"], "amount": 500000, "offerer_id": BUYER}, actor_id=AGENT,
    )
    assert offer["offerer_id"] == BUYER
    pending = txn_service.get_transaction_by_id(txn["id"], BUYER)
    assert pending["buyer_id"] == BUYER
    assert pending["status"] == "PENDING"

    offer_service.respond_to_offer(offer["id"], "ACCEPTED", SELLER)
    done = txn_service.update_transaction(txn["id"], {"status": "COMPLETED"}, AGENT)
    assert done["status"] == "COMPLETED"
    assert done["final_amount"] == 500000.0
    assert db.session.get(Property, listed_property.id).status == "SOLD"

    history = txn_service.get_transaction_by_id(txn["id"], BUYER)["status_history"]
    assert history[0]["new_status"] == "COMPLETED"
    assert history[0]["changed_by_id"] == AGENT
