"""Initial schema: users, tours, bookings with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("token_identifier", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'customer'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('customer', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_token_identifier", "users", ["token_identifier"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])

    # Tours table
    op.create_table(
        "tours",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False, server_default=sa.text("''")),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cover_image_id", sa.String(255), nullable=True),
        sa.Column("gallery_image_ids", sa.JSON(), nullable=False),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("booked_count >= 0", name="check_booked_count_non_negative"),
        sa.CheckConstraint("capacity > 0", name="check_capacity_positive"),
        sa.CheckConstraint("booked_count <= capacity", name="check_booked_lte_capacity"),
        sa.CheckConstraint("price >= 0", name="check_price_non_negative"),
    )
    op.create_index("ix_tours_id", "tours", ["id"])
    # Listings filter and sort on start date ("upcoming tours")
    op.create_index("ix_tours_start_date", "tours", ["start_date"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tour_id", sa.Integer(), sa.ForeignKey("tours.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("tour_title", sa.String(255), nullable=False),
        sa.Column("tour_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tour_price", sa.Integer(), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'holding'")),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("proof_image_id", sa.String(255), nullable=True),
        sa.Column("refund_details", sa.String(1000), nullable=True),
        sa.Column("contact_number", sa.String(50), nullable=True),
        sa.Column("admin_refund_proof_id", sa.String(255), nullable=True),
        sa.Column("redeemed_tickets", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("ticket_count > 0", name="check_booking_ticket_count_positive"),
        sa.CheckConstraint(
            "status IN ('holding', 'pending', 'confirmed', 'cancelled', 'expired', 'rejected', 'refunded')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_tour_id", "bookings", ["tour_id"])
    # The expiry sweeper scans WHERE status = 'holding' AND expires_at < now
    op.create_index("ix_bookings_status_expires_at", "bookings", ["status", "expires_at"])
    # At most one live hold per user per tour
    op.create_index(
        "uq_bookings_live_hold",
        "bookings",
        ["user_id", "tour_id"],
        unique=True,
        postgresql_where=sa.text("status = 'holding'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("tours")
    op.drop_table("users")
