"""
Booking model representing a passenger's purchase of seats on a trip.

Key design decisions:
- String UUID primary key generated before commit, so seat records can be
  claimed for a booking id before the booking row is written
- seat_labels is a snapshot; the seat records pointing at this booking are
  the source of truth while the booking is live
- Route, bus and time snapshots let the booking be displayed without
  joining the catalog
- user_id is optional: anonymous checkout is allowed
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index, CheckConstraint

from seatline.db.base import Base, TimestampMixin


class BookingStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    seat_labels = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING)

    passenger_name = Column(String(255), nullable=False)
    passenger_phone = Column(String(32), nullable=False, index=True)
    passenger_email = Column(String(255), nullable=True)
    passenger_note = Column(String(1000), nullable=True)

    price_per_seat = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    payment_id = Column(String(36), nullable=True)
    payment_method = Column(String(20), nullable=False)

    route_from = Column(String(255), nullable=True)
    route_to = Column(String(255), nullable=True)
    route_duration_min = Column(Integer, nullable=True)
    bus_type = Column(String(100), nullable=True)
    bus_seat_count = Column(Integer, nullable=True)
    departure_time = Column(DateTime(timezone=True), nullable=True)
    arrival_time = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        # Reaper query: pending bookings older than the cutoff
        Index("ix_bookings_status_created", "status", "created_at"),
    )

    @property
    def passenger(self) -> dict:
        return {
            "name": self.passenger_name,
            "phone": self.passenger_phone,
            "email": self.passenger_email,
            "note": self.passenger_note,
        }

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, trip={self.trip_id}, seats={self.seat_labels}, status={self.status})>"
