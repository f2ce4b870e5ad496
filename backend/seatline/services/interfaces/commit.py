"""
Commit strategy interface.
Allows swapping how a checkout's seat claims and records are made durable
without changing the checkout logic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class SeatClaim:
    seat_id: int
    label: str
    hold_expires_at: Optional[datetime] = None


@dataclass
class CheckoutPlan:
    """Everything needed to commit one checkout, computed before any write."""

    booking_id: str
    payment_id: str
    trip_id: int
    user_id: Optional[int]
    seats: list[SeatClaim]
    seat_status: str  # sold, held
    hold_expires_at: Optional[datetime]
    booking_status: str  # confirmed, pending
    payment_status: str  # success, pending
    payment_method: str
    price_per_seat: int
    total_price: int
    passenger: dict
    created_at: datetime
    snapshot: dict = field(default_factory=dict)
    transaction_code: Optional[str] = None

    @property
    def seat_labels(self) -> list[str]:
        return [s.label for s in self.seats]


@dataclass
class ConfirmPlan:
    """Settle an asynchronous payment: pending booking -> confirmed, held seats -> sold."""

    booking_id: str
    payment_id: Optional[str]
    seats: list[SeatClaim]
    not_before: datetime  # booking must be created at or after this (hold not lapsed)
    settled_at: datetime


class CommitStrategy(ABC):
    """
    Interface for making a checkout durable.

    Implementations:
    - TransactionalCommit: seat CAS + booking + payment in one DB transaction
    - CompensatingCommit: every write committed on its own, failures undone by
      compensating conditional updates

    Both raise ConflictError when a seat was not in the expected state and
    InternalError on storage failure, and both leave no seat claimed after
    raising.
    """

    name: str = "abstract"

    @abstractmethod
    async def commit_checkout(self, db: AsyncSession, plan: CheckoutPlan) -> None:
        """
        Claim every seat in `plan` and write the booking and payment.

        Raises:
            ConflictError: a seat lost its compare-and-swap
            InternalError: the store failed mid-commit
        """
        pass

    @abstractmethod
    async def commit_confirmation(self, db: AsyncSession, plan: ConfirmPlan) -> None:
        """
        Move a pending booking to confirmed and its held seats to sold.

        Raises:
            ConflictError: booking not pending, hold lapsed or a seat reclaimed
            InternalError: the store failed mid-commit
        """
        pass
