"""
Post-commit passenger notifications.

Delivery is fire-and-forget: a notification is scheduled only after the
booking change has been committed, runs as its own asyncio task, and any
failure is logged and counted. Nothing here can fail or roll back a
checkout, a cancellation or a reaper sweep.

The default Notifier writes mails to the log and keeps them in an outbox.
Real delivery belongs to the mail service, which plugs in by subclassing
Notifier and overriding send_email.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from seatline.core.metrics import record_notification
from seatline.core.logging import get_logger

logger = get_logger(__name__)


class Notifier:
    def __init__(self):
        self.outbox: list[dict] = []

    async def send_email(self, to: str, subject: str, body: str) -> None:
        self.outbox.append({
            "to": to,
            "subject": subject,
            "body": body,
            "sent_at": datetime.now(timezone.utc),
        })
        logger.info("email_sent", to=to, subject=subject)

    async def notify_booking_confirmed(self, booking: dict) -> None:
        recipient = (booking.get("passenger") or {}).get("email")
        if not recipient:
            record_notification("confirmed", "skipped")
            return
        seats = ", ".join(str(s) for s in booking.get("seats", []))
        route = booking.get("route") or {}
        body = (
            f"Booking {booking['bookingId']} is {booking.get('status', 'confirmed')}.\n"
            f"Route: {route.get('from', '-')} -> {route.get('to', '-')}\n"
            f"Seats: {seats or '-'}\n"
            f"Total: {booking.get('totalAmount', 0):,}\n"
            f"Payment method: {booking.get('paymentMethod', '-')}"
        )
        await self.send_email(recipient, "Your bus ticket booking", body)
        record_notification("confirmed", "sent")

    async def notify_booking_cancelled(self, recipient: Optional[str], summary: dict) -> None:
        if not recipient:
            record_notification("cancelled", "skipped")
            return
        seats = ", ".join(str(s) for s in summary.get("seats", []))
        body = (
            f"Booking {summary['bookingId']} has been cancelled"
            f" ({summary.get('reason', 'not paid in time')}).\n"
            f"Seats: {seats or '-'}\n"
            f"Total: {summary.get('totalAmount', 0):,}\n"
            "You are welcome to book again."
        )
        await self.send_email(recipient, "Your booking has been cancelled", body)
        record_notification("cancelled", "sent")


class PostCommitDispatcher:
    """Runs notification coroutines after commit, detached from the caller."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, kind: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        task = asyncio.get_running_loop().create_task(self._run(kind, func, *args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, kind: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await func(*args)
        except Exception as e:
            record_notification(kind, "failed")
            logger.warning("notification_failed", kind=kind, error=str(e))

    async def drain(self) -> None:
        """Wait for scheduled notifications (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_notifier: Optional[Notifier] = None
_dispatcher: Optional[PostCommitDispatcher] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier


def get_dispatcher() -> PostCommitDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = PostCommitDispatcher()
    return _dispatcher


def notify_confirmed_after_commit(booking: dict) -> None:
    get_dispatcher().dispatch("confirmed", get_notifier().notify_booking_confirmed, booking)


def notify_cancelled_after_commit(recipient: Optional[str], summary: dict) -> None:
    get_dispatcher().dispatch("cancelled", get_notifier().notify_booking_cancelled, recipient, summary)
