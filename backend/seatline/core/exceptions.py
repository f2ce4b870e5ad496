"""
Booking error taxonomy.

Services raise these instead of HTTPException so the same code paths can be
driven from the API, the reaper and tests. The API layer renders every
BookingError as {"error": message} with the status code carried here.
"""

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Missing or malformed seat list, trip id or stop pair."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookingError):
    """Trip, stop, seat label or booking does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class CapacityError(BookingError):
    """Bus capacity unknown/zero, or seat number outside 1..capacity."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(BookingError):
    """A seat or booking was not in the expected state at commit time."""

    status_code = status.HTTP_409_CONFLICT


class InternalError(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
