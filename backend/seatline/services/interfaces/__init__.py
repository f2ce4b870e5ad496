"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .commit import CommitStrategy, CheckoutPlan, ConfirmPlan, SeatClaim

__all__ = ['CommitStrategy', 'CheckoutPlan', 'ConfirmPlan', 'SeatClaim']
