"""
Per-trip seat inventory.

Key design decisions:
- One row per (trip, seat label), enforced by a unique constraint so that
  seeding can be a plain insert-if-absent
- Every status change is a conditional UPDATE guarded on the prior status,
  never a read-then-write
- holder_booking_id has no foreign key: the compensating commit strategy
  claims seats before the booking row exists
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint

from seatline.db.base import Base, TimestampMixin


class SeatStatus:
    AVAILABLE = "available"
    HELD = "held"
    SOLD = "sold"
    CHECKED_IN = "checked_in"


class SeatRecord(Base, TimestampMixin):
    __tablename__ = "trip_seats"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    seat_label = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SeatStatus.AVAILABLE)
    holder_booking_id = Column(String(36), nullable=True)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("trip_id", "seat_label", name="uq_trip_seat_label"),
        CheckConstraint(
            "status IN ('available', 'held', 'sold', 'checked_in')",
            name="check_seat_status",
        ),
        CheckConstraint(
            "status = 'available' OR holder_booking_id IS NOT NULL",
            name="check_seat_holder_present",
        ),
        Index("ix_trip_seats_holder", "holder_booking_id"),
        # Reaper scans for expired holds
        Index("ix_trip_seats_status_expiry", "status", "hold_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<SeatRecord(trip={self.trip_id}, seat={self.seat_label}, status={self.status})>"
