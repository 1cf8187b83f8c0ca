"""
Booking model representing one customer's attempt to acquire seats on a tour.

Key design decisions:
- Rows are never deleted; status changes keep the audit trail
- Tour and user fields are snapshotted at reservation time so the record
  stays meaningful after the tour is edited or deleted
- A partial unique index allows at most one live hold per user per tour
- `version` makes the redeemed-ticket append a compare-and-set
"""

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, Enum, ForeignKey, Index, Integer, String, text

from tourbook.db.base import Base, TimestampMixin, UTCDateTime
from tourbook.domain.booking_state import BookingStatus, PaymentMethod, PaymentStatus


def _enum_column(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    ticket_count = Column(Integer, nullable=False)

    # Snapshots
    tour_title = Column(String(255), nullable=False)
    tour_date = Column(UTCDateTime(), nullable=False)
    tour_price = Column(Integer, nullable=False)
    user_name = Column(String(255), nullable=False)
    user_email = Column(String(255), nullable=False)

    status = Column(_enum_column(BookingStatus), nullable=False, default=BookingStatus.HOLDING)
    payment_method = Column(_enum_column(PaymentMethod), nullable=True)
    payment_status = Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    expires_at = Column(UTCDateTime(), nullable=True)

    # User inputs
    proof_image_id = Column(String(255), nullable=True)
    refund_details = Column(String(1000), nullable=True)
    contact_number = Column(String(50), nullable=True)

    # Admin refund for cancelled tours
    admin_refund_proof_id = Column(String(255), nullable=True)

    redeemed_tickets = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("ticket_count > 0", name="check_booking_ticket_count_positive"),
        CheckConstraint(
            "status IN ('holding', 'pending', 'confirmed', 'cancelled', 'expired', 'rejected', 'refunded')",
            name="check_booking_status",
        ),
        Index("ix_bookings_status_expires_at", "status", "expires_at"),
        Index(
            "uq_bookings_live_hold",
            "user_id",
            "tour_id",
            unique=True,
            postgresql_where=text("status = 'holding'"),
            sqlite_where=text("status = 'holding'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, tour={self.tour_id}, status={self.status})>"
