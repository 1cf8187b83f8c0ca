"""
Tour model with seat inventory tracking.

Key design decisions:
- `booked_count` counts every debited seat (holding, pending and confirmed
  bookings), so availability is `capacity - booked_count` without a COUNT
  query on bookings
- CHECK constraints keep `0 <= booked_count <= capacity` at the DB level;
  the ledger's conditional UPDATE is the first line, these are the last
- `version` column enables optimistic locking for admin edits
"""

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, Index, Integer, String

from tourbook.db.base import Base, TimestampMixin, UTCDateTime


class Tour(Base, TimestampMixin):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=False, default="")
    price = Column(Integer, nullable=False)  # minor currency units
    start_date = Column(UTCDateTime(), nullable=False)
    capacity = Column(Integer, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0)
    cover_image_id = Column(String(255), nullable=True)
    gallery_image_ids = Column(JSON, nullable=False, default=list)
    cancelled = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("booked_count >= 0", name="check_booked_count_non_negative"),
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("booked_count <= capacity", name="check_booked_lte_capacity"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_tours_start_date", "start_date"),
    )

    @property
    def available_seats(self) -> int:
        return max(self.capacity - self.booked_count, 0)

    @property
    def image_ids(self) -> list[str]:
        refs = [self.cover_image_id] if self.cover_image_id else []
        return refs + list(self.gallery_image_ids or [])

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title={self.title}, booked={self.booked_count}/{self.capacity})>"
