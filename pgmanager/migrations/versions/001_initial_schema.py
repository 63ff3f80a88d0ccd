"""Initial schema: PGs, rooms, members, payment attempts and leaving requests.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-09-20 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    # Create pgs table
    op.create_table(
        "pgs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, comment="Property name"),
        sa.Column("type", sa.String(length=6), nullable=False, comment="Occupancy type (womens/mens)"),
        sa.Column("location", sa.String(length=255), nullable=False, comment="Property location"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_pgs_type", "type"),
    )

    # Create rooms table
    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("room_no", sa.String(length=20), nullable=False, comment="Room number"),
        sa.Column("rent", sa.Numeric(precision=10, scale=2), nullable=False, comment="Monthly rent"),
        sa.Column(
            "electricity_charge",
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            server_default="0",
            comment="Monthly electricity charge, prorated like rent for partial months",
        ),
        sa.Column("capacity", sa.Integer(), nullable=False, comment="Number of beds"),
        sa.Column("pg_id", sa.Integer(), nullable=True, comment="Owning PG"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pg_id"], ["pgs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_rooms_pg_id", "pg_id"),
    )

    # Create members table
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_code", sa.String(length=32), nullable=False, comment="Human-facing member ID"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column(
            "telegram_chat_id",
            sa.String(length=50),
            nullable=True,
            comment="Chat used for payment notifications",
        ),
        sa.Column("photo_url", sa.String(length=500), nullable=True),
        sa.Column("document_url", sa.String(length=500), nullable=True),
        sa.Column("digital_signature", sa.String(length=500), nullable=True),
        sa.Column("rent_type", sa.String(length=10), nullable=False, server_default="LONG_TERM"),
        sa.Column(
            "price_per_day", sa.Numeric(precision=10, scale=2), nullable=True, comment="Short-term only"
        ),
        sa.Column(
            "advance_amount", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"
        ),
        sa.Column("pg_id", sa.Integer(), nullable=True),
        sa.Column("room_id", sa.Integer(), nullable=True),
        sa.Column("date_of_joining", sa.Date(), nullable=False),
        sa.Column("date_of_relieving", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pg_id"], ["pgs.id"]),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("member_code"),
        sa.Index("ix_members_pg_id", "pg_id"),
        sa.Index("ix_members_room_id", "room_id"),
        sa.Index("ix_members_is_active", "is_active"),
        sa.Index("idx_member_pg_active", "pg_id", "is_active"),
    )

    # Create payments table (one row per attempt)
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("pg_id", sa.Integer(), nullable=True),
        sa.Column("month", sa.Integer(), nullable=False, comment="Billing month 1-12"),
        sa.Column("year", sa.Integer(), nullable=False, comment="Billing year"),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column(
            "payment_method",
            sa.String(length=6),
            nullable=True,
            comment="Null for reserved records nobody has paid yet",
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("overdue_date", sa.Date(), nullable=False),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_status", sa.String(length=7), nullable=False, server_default="PENDING"),
        sa.Column("approval_status", sa.String(length=8), nullable=False, server_default="PENDING"),
        sa.Column(
            "is_overdue",
            sa.Boolean(),
            nullable=False,
            server_default="0",
            comment="Set by the overdue reconciler once overdue_date passed while unpaid",
        ),
        sa.Column("rent_proof_ref", sa.String(length=500), nullable=True),
        sa.Column("electricity_proof_ref", sa.String(length=500), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column(
            "approved_by", sa.Integer(), nullable=True, comment="Staff/admin who decided the attempt"
        ),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pg_id"], ["pgs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("member_id", "month", "year", "attempt_number", name="uq_payment_attempt"),
        sa.Index("ix_payments_member_id", "member_id"),
        sa.Index("ix_payments_pg_id", "pg_id"),
        sa.Index("ix_payments_payment_status", "payment_status"),
        sa.Index("ix_payments_approval_status", "approval_status"),
        sa.Index("idx_payment_period", "member_id", "year", "month"),
        sa.Index("idx_payment_overdue_scan", "payment_status", "is_overdue", "overdue_date"),
    )
    op.create_index(
        "uq_payment_pending_decision",
        "payments",
        ["member_id", "month", "year"],
        unique=True,
        sqlite_where=sa.text("approval_status = 'PENDING'"),
        postgresql_where=sa.text("approval_status = 'PENDING'"),
    )

    # Create leaving_requests table
    op.create_table(
        "leaving_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("pg_id", sa.Integer(), nullable=True),
        sa.Column("room_id", sa.Integer(), nullable=True),
        sa.Column("requested_leave_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=9), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "pending_dues",
            sa.Numeric(precision=10, scale=2),
            nullable=True,
            comment="Amount owed as of the leave date, floored at 0",
        ),
        sa.Column(
            "dues_credit",
            sa.Numeric(precision=10, scale=2),
            nullable=True,
            comment="Overpayment reported alongside the dues",
        ),
        sa.Column("dues_computed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_amount", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("settled_date", sa.Date(), nullable=True),
        sa.Column("settlement_method", sa.String(length=6), nullable=True),
        sa.Column("settlement_proof_ref", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pg_id"], ["pgs.id"]),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_leaving_requests_member_id", "member_id"),
        sa.Index("ix_leaving_requests_status", "status"),
        sa.Index("idx_leaving_member_status", "member_id", "status"),
    )


def downgrade() -> None:
    op.drop_table("leaving_requests")
    op.drop_index("uq_payment_pending_decision", table_name="payments")
    op.drop_table("payments")
    op.drop_table("members")
    op.drop_table("rooms")
    op.drop_table("pgs")
