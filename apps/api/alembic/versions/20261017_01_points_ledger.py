"""Create customers, points batches, points ledger and message log tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ledger_entry_kind = sa.Enum("EARN", "REDEEM", "EXPIRY", name="points_ledger_entry_kind")
message_type = sa.Enum("WELCOME", "TXN", "EXPIRY", "PROMO", name="message_type")
message_status = sa.Enum("SENT", "FAILED", name="message_status")


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=16), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(length=10), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("points_balance >= 0", name="ck_customers_points_balance_non_negative"),
    )
    op.create_index("ix_customers_phone_number", "customers", ["phone_number"], unique=True)

    op.create_table(
        "points_batches",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            sa.String(length=16),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("earned_points", sa.Integer(), nullable=False),
        sa.Column("remaining_points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("remaining_points >= 0", name="ck_points_batches_remaining_non_negative"),
        sa.CheckConstraint("remaining_points <= earned_points", name="ck_points_batches_remaining_le_earned"),
    )
    op.create_index("ix_points_batches_customer_expiry", "points_batches", ["customer_id", "expires_at"])
    op.create_index("ix_points_batches_expiry", "points_batches", ["expires_at"])

    op.create_table(
        "points_ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "customer_id",
            sa.String(length=16),
            sa.ForeignKey("customers.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("kind", ledger_entry_kind, nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("purchase_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_points_ledger_entries_customer_created",
        "points_ledger_entries",
        ["customer_id", "created_at"],
    )
    op.create_index(
        "ix_points_ledger_entries_kind_created",
        "points_ledger_entries",
        ["kind", "created_at"],
    )

    op.create_table(
        "message_logs",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.String(length=16), nullable=False),
        sa.Column("message_type", message_type, nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", message_status, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_message_logs_customer_id", "message_logs", ["customer_id"])


def downgrade() -> None:
    op.drop_index("ix_message_logs_customer_id", table_name="message_logs")
    op.drop_table("message_logs")
    op.drop_index("ix_points_ledger_entries_kind_created", table_name="points_ledger_entries")
    op.drop_index("ix_points_ledger_entries_customer_created", table_name="points_ledger_entries")
    op.drop_table("points_ledger_entries")
    op.drop_index("ix_points_batches_expiry", table_name="points_batches")
    op.drop_index("ix_points_batches_customer_expiry", table_name="points_batches")
    op.drop_table("points_batches")
    op.drop_index("ix_customers_phone_number", table_name="customers")
    op.drop_table("customers")

    bind = op.get_bind()
    for enum in (message_status, message_type, ledger_entry_kind):
        enum.drop(bind, checkfirst=True)
