"""initial_negotiation_schema

Create properties, transactions, offers, transaction_milestones,
transaction_status_history and transaction_documents.

Revision ID: 5d1e2a7c9b30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5d1e2a7c9b30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "properties" not in existing_tables:
        op.create_table(
            "properties",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("owner_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_properties_owner_id", "properties", ["owner_id"])

    if "transactions" not in existing_tables:
        op.create_table(
            "transactions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("property_id", sa.String(length=36), nullable=False),
            sa.Column("buyer_id", sa.String(length=36), nullable=True),
            sa.Column("seller_id", sa.String(length=36), nullable=False),
            sa.Column("agent_id", sa.String(length=36), nullable=True),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("offer_amount", sa.Numeric(14, 2), nullable=True),
            sa.Column("final_amount", sa.Numeric(14, 2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
            sa.Column("commission", sa.Numeric(14, 2), nullable=True),
            sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("terms", sa.JSON(), nullable=True),
            sa.Column("expected_completion", sa.DateTime(timezone=True), nullable=True),
            sa.Column("accepted_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completion_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["property_id"], ["properties.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('DRAFT','PENDING','ACCEPTED','REJECTED','CANCELLED','COMPLETED')",
                name="ck_transaction_status",
            ),
            sa.CheckConstraint("type IN ('PURCHASE','LEASE')", name="ck_transaction_type"),
        )
        op.create_index("ix_transactions_property_id", "transactions", ["property_id"])
        op.create_index("ix_transactions_buyer_id", "transactions", ["buyer_id"])
        op.create_index("ix_transactions_seller_id", "transactions", ["seller_id"])
        op.create_index("ix_transactions_agent_id", "transactions", ["agent_id"])
        op.create_index("ix_transactions_status_created", "transactions", ["status", "created_at"])

    if "offers" not in existing_tables:
        op.create_table(
            "offers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_id", sa.String(length=36), nullable=False),
            sa.Column("offerer_id", sa.String(length=36), nullable=False),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="EUR"),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("conditions", sa.JSON(), nullable=True),
            sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("parent_offer_id", sa.String(length=36), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
            sa.ForeignKeyConstraint(["parent_offer_id"], ["offers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "status IN ('PENDING','ACCEPTED','REJECTED','COUNTERED')",
                name="ck_offer_status",
            ),
        )
        op.create_index("ix_offers_transaction_id", "offers", ["transaction_id"])
        op.create_index("ix_offers_offerer_id", "offers", ["offerer_id"])
        op.create_index("ix_offers_parent_offer_id", "offers", ["parent_offer_id"])

    if "transaction_milestones" not in existing_tables:
        op.create_table(
            "transaction_milestones",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by_id", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("transaction_id", "order", name="uq_milestone_transaction_order"),
        )
        op.create_index(
            "ix_transaction_milestones_transaction_id", "transaction_milestones", ["transaction_id"],
        )

    if "transaction_status_history" not in existing_tables:
        op.create_table(
            "transaction_status_history",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_id", sa.String(length=36), nullable=False),
            sa.Column("previous_status", sa.String(length=20), nullable=False),
            sa.Column("new_status", sa.String(length=20), nullable=False),
            sa.Column("changed_by_id", sa.String(length=36), nullable=False),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_transaction_status_history_transaction_id",
            "transaction_status_history", ["transaction_id"],
        )

    if "transaction_documents" not in existing_tables:
        op.create_table(
            "transaction_documents",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_id", sa.String(length=36), nullable=False),
            sa.Column("uploaded_by_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="UPLOADED"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("file_url", sa.String(length=1024), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=100), nullable=True),
            sa.Column("requires_signature", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_transaction_documents_transaction_id", "transaction_documents", ["transaction_id"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "transaction_documents",
        "transaction_status_history",
        "transaction_milestones",
        "offers",
        "transactions",
        "properties",
    ):
        if table in existing_tables:
            op.drop_table(table)
