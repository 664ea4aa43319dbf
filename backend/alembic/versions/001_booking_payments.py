# backend/alembic/versions/001_booking_payments.py
"""Booking payments - bookings, occurrences, status history, therapists, settings

Revision ID: 001_booking_payments
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the tables behind the payment authorization lifecycle. Booking
status and payment status are separate columns constrained to their
known values; booking_status_history is append-only.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_booking_payments"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUSES = ("requested", "confirmed", "completed", "cancelled", "declined")
PAYMENT_STATUSES = (
    "pending",
    "authorization_pending",
    "authorized",
    "authorization_failed",
    "failed",
    "captured",
    "cancelled",
)


def _in_clause(column: str, values: Sequence[str]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def upgrade() -> None:
    """Create booking payment tables."""
    print("Creating booking payment tables...")

    op.create_table(
        "therapist_profiles",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_therapist_profiles_id", "therapist_profiles", ["id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("booking_id", sa.String(64), nullable=False),
        # Customer
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        # Scheduling
        sa.Column("service_name", sa.String(255), nullable=True),
        sa.Column("therapist_id", sa.String(26), nullable=True),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        # Financial
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("therapist_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True, comment="Stripe payment intent ID"),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_payment_method_id", sa.String(255), nullable=True),
        # Lifecycle
        sa.Column("status", sa.String(20), nullable=False, server_default="requested"),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(255), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["therapist_id"], ["therapist_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(_in_clause("status", BOOKING_STATUSES), name="ck_bookings_status"),
        sa.CheckConstraint(
            _in_clause("payment_status", PAYMENT_STATUSES), name="ck_bookings_payment_status"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_booking_id", "bookings", ["booking_id"], unique=True)
    op.create_index("ix_bookings_payment_intent_id", "bookings", ["payment_intent_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "booking_occurrences",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("booking_id", sa.String(26), nullable=False),
        sa.Column("occurrence_number", sa.Integer(), nullable=False),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="requested"),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("payment_error", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "occurrence_number", name="uq_booking_occurrence_number"),
    )
    op.create_index("ix_booking_occurrences_booking_id", "booking_occurrences", ["booking_id"])

    # Append-only: rows are never updated or deleted by the application
    op.create_table(
        "booking_status_history",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("booking_id", sa.String(26), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(255), nullable=True),
        sa.Column(
            "changed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_status_history_booking_id", "booking_status_history", ["booking_id"])
    op.create_index(
        "ix_booking_status_history_booking_status",
        "booking_status_history",
        ["booking_id", "status"],
    )

    op.create_table(
        "system_settings",
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("key"),
    )
    op.bulk_insert(
        sa.table("system_settings", sa.column("key", sa.String), sa.column("value", sa.Text)),
        [
            {"key": "cancellation_hours_prior", "value": "24"},
            {"key": "business_phone", "value": "1300 302 542"},
        ],
    )

    print("Booking payment tables created successfully!")


def downgrade() -> None:
    """Drop booking payment tables."""
    print("Dropping booking payment tables...")

    op.drop_table("system_settings")
    op.drop_index("ix_booking_status_history_booking_status", table_name="booking_status_history")
    op.drop_index("ix_booking_status_history_booking_id", table_name="booking_status_history")
    op.drop_table("booking_status_history")
    op.drop_index("ix_booking_occurrences_booking_id", table_name="booking_occurrences")
    op.drop_table("booking_occurrences")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_payment_intent_id", table_name="bookings")
    op.drop_index("ix_bookings_booking_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_therapist_profiles_id", table_name="therapist_profiles")
    op.drop_table("therapist_profiles")
