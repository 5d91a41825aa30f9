"""Create labour persons, shipments reference, assignments, corrections and payments.

Revision ID: 0001
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

assignment_status = sa.Enum(
    "ASSIGNED", "DELIVERED", "COLLECTED", "SETTLED", "CANCELLED",
    name="assignmentstatus",
)


def upgrade() -> None:
    op.create_table(
        "labour_persons",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, index=True),
        sa.Column("contact_info", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "shipments",
        sa.Column("register_number", sa.String(50), primary_key=True),
        sa.Column("bility_number", sa.String(50), nullable=True, index=True),
        sa.Column("total_charges", sa.Float, nullable=False, server_default="0"),
        sa.Column("delivery_date", sa.Date, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "labour_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("labour_person_id", sa.String(36), sa.ForeignKey("labour_persons.id"), nullable=False, index=True),
        sa.Column("shipment_reference", sa.String(50), sa.ForeignKey("shipments.register_number"), nullable=False, index=True),
        sa.Column("status", assignment_status, nullable=False, server_default="ASSIGNED", index=True),
        sa.Column("station_expense", sa.Float, nullable=False, server_default="0"),
        sa.Column("bility_expense", sa.Float, nullable=False, server_default="0"),
        sa.Column("station_labour", sa.Float, nullable=False, server_default="0"),
        sa.Column("cart_labour", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_expenses", sa.Float, nullable=False, server_default="0"),
        sa.Column("collected_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("assigned_date", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("due_date", sa.Date, nullable=True),
        sa.Column("delivered_date", sa.DateTime, nullable=True),
        sa.Column("settled_date", sa.DateTime, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_labour_assignments_active_shipment",
        "labour_assignments",
        ["shipment_reference"],
        unique=True,
        postgresql_where=sa.text("status NOT IN ('SETTLED', 'CANCELLED')"),
    )

    op.create_table(
        "settlement_corrections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("assignment_id", sa.String(36), sa.ForeignKey("labour_assignments.id"), nullable=False, index=True),
        sa.Column("old_collected_amount", sa.Float, nullable=False),
        sa.Column("new_collected_amount", sa.Float, nullable=False),
        sa.Column("remaining_before", sa.Float, nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
    )

    op.create_table(
        "labour_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("labour_person_id", sa.String(36), sa.ForeignKey("labour_persons.id"), nullable=False, index=True),
        sa.Column("shipment_reference", sa.String(50), sa.ForeignKey("shipments.register_number"), nullable=False),
        sa.Column("amount_paid", sa.Float, nullable=False),
        sa.Column("payment_method", sa.String(50), server_default="CASH"),
        sa.Column("payment_date", sa.DateTime, nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("labour_payments")
    op.drop_table("settlement_corrections")
    op.drop_index("uq_labour_assignments_active_shipment", table_name="labour_assignments")
    op.drop_table("labour_assignments")
    op.drop_table("shipments")
    op.drop_table("labour_persons")
    assignment_status.drop(op.get_bind(), checkfirst=True)
