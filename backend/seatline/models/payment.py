"""
Payment record created in the same commit as its booking.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint

from seatline.db.base import Base, TimestampMixin


class PaymentStatus:
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    method = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    transaction_code = Column(String(64), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("method IN ('banking', 'momo', 'cod')", name="check_payment_method"),
        CheckConstraint("status IN ('success', 'pending', 'failed')", name="check_payment_status"),
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking={self.booking_id}, amount={self.amount}, status={self.status})>"
